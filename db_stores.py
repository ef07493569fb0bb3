"""
DB-backed store classes for Cohort Academy.

Thin adapters over the request connection from database.get_db(). Rows are
returned as the dataclasses in models.py. Every write is a single statement
keyed on a composite uniqueness constraint, so no multi-step transaction is
needed; driver failures are re-raised as PersistenceError.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from database import get_db
from errors import DuplicateSubmission, PersistenceError
from models import (
    AttendanceMark,
    Enrollment,
    HomeworkSubmission,
    InstructorAssignment,
    Meeting,
    PreferenceRow,
    TrackKey,
)
from window import parse_instant

logger = logging.getLogger(__name__)

USER_STATUSES = ("pending", "approved", "rejected", "suspended")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _placeholders(values: Iterable) -> str:
    return ", ".join("?" for _ in values)


@contextmanager
def _store_errors(db, action: str):
    """Roll back and re-raise driver errors as PersistenceError."""
    try:
        yield
    except db.Error as exc:
        db.rollback()
        logger.exception("Store failure during %s", action)
        raise PersistenceError(str(exc)) from exc


# ── Students ─────────────────────────────────────────────────────────


class StudentStoreDB:
    """User rows as seen by the engine and the admin approval actions."""

    @staticmethod
    def get(user_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT id, name, email, role, status, created_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def list_by_status(status: str | None = None) -> list[dict]:
        db = get_db()
        if status:
            rows = db.execute(
                "SELECT id, name, email, role, status, created_at FROM users "
                "WHERE status = ? ORDER BY created_at DESC",
                (status,),
            ).fetchall()
        else:
            rows = db.execute(
                "SELECT id, name, email, role, status, created_at FROM users ORDER BY created_at DESC"
            ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def names(user_ids: Iterable[int]) -> dict[int, str]:
        ids = list(user_ids)
        if not ids:
            return {}
        db = get_db()
        rows = db.execute(
            f"SELECT id, name FROM users WHERE id IN ({_placeholders(ids)})", tuple(ids)
        ).fetchall()
        return {r["id"]: r["name"] for r in rows}

    @staticmethod
    def set_status(user_id: int, status: str) -> bool:
        if status not in USER_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        db = get_db()
        with _store_errors(db, "set_status"):
            cur = db.execute("UPDATE users SET status = ? WHERE id = ?", (status, user_id))
            db.commit()
        return cur.rowcount > 0


# ── Enrollments ──────────────────────────────────────────────────────


class EnrollmentStoreDB:
    """A student's (region, level) track enrollments."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def all(self) -> list[Enrollment]:
        db = get_db()
        rows = db.execute(
            "SELECT student_id, region, level FROM enrollments WHERE student_id = ? ORDER BY id",
            (self.student_id,),
        ).fetchall()
        return [Enrollment(r["student_id"], r["region"], r["level"]) for r in rows]

    def is_enrolled(self, region: str, level: str) -> bool:
        db = get_db()
        return db.execute(
            "SELECT 1 FROM enrollments WHERE student_id = ? AND region = ? AND level = ?",
            (self.student_id, region, level),
        ).fetchone() is not None

    def add(self, region: str, level: str) -> None:
        db = get_db()
        with _store_errors(db, "enroll"):
            db.execute(
                "INSERT OR IGNORE INTO enrollments (student_id, region, level, created_at) "
                "VALUES (?, ?, ?, ?)",
                (self.student_id, region, level, _now_iso()),
            )
            db.commit()

    def remove(self, region: str, level: str) -> None:
        db = get_db()
        with _store_errors(db, "unenroll"):
            db.execute(
                "DELETE FROM enrollments WHERE student_id = ? AND region = ? AND level = ?",
                (self.student_id, region, level),
            )
            db.commit()

    def toggle(self, region: str, level: str) -> bool:
        """Flip enrollment for a track; returns the new enrolled state."""
        if self.is_enrolled(region, level):
            self.remove(region, level)
            return False
        self.add(region, level)
        return True

    @staticmethod
    def roster(track: TrackKey) -> list[int]:
        """Student ids enrolled in a track, in enrollment order."""
        db = get_db()
        rows = db.execute(
            "SELECT e.student_id FROM enrollments e JOIN users u ON u.id = e.student_id "
            "WHERE e.region = ? AND e.level = ? AND u.role = 'student' ORDER BY e.id",
            (track.region, track.level),
        ).fetchall()
        return [r["student_id"] for r in rows]


# ── Meeting catalog ──────────────────────────────────────────────────


class MeetingCatalogDB:
    """Read access to the meeting catalog (``add`` is for seeding only)."""

    @staticmethod
    def _from_row(row) -> Meeting:
        return Meeting(
            id=row["id"],
            region=row["region"],
            level=row["level"],
            sequence_no=row["sequence_no"],
            title=row["title"],
            start_at=parse_instant(row["start_at"]),
            end_at=parse_instant(row["end_at"]),
        )

    @classmethod
    def all(cls) -> list[Meeting]:
        db = get_db()
        rows = db.execute("SELECT * FROM meetings ORDER BY start_at, id").fetchall()
        return [cls._from_row(r) for r in rows]

    @classmethod
    def get(cls, meeting_id: int) -> Optional[Meeting]:
        db = get_db()
        row = db.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()
        if not row:
            return None
        meeting = cls._from_row(row)
        meeting.instructors = cls.instructors_for([meeting_id]).get(meeting_id, [])
        return meeting

    @classmethod
    def for_tracks(cls, tracks: Iterable[TrackKey]) -> list[Meeting]:
        wanted = set(tracks)
        if not wanted:
            return []
        # stored region/level may carry stray whitespace; match on the trimmed key
        return [m for m in cls.all() if m.track in wanted]

    @staticmethod
    def active_pairs() -> set[TrackKey]:
        db = get_db()
        rows = db.execute("SELECT DISTINCT region, level FROM meetings").fetchall()
        return {TrackKey.of(dict(r)) for r in rows}

    @staticmethod
    def instructors_for(meeting_ids: Iterable[int]) -> dict[int, list[InstructorAssignment]]:
        ids = list(meeting_ids)
        if not ids:
            return {}
        db = get_db()
        rows = db.execute(
            "SELECT mi.meeting_id, mi.instructor_id, mi.role, mi.sort_order, u.name "
            "FROM meeting_instructors mi JOIN users u ON u.id = mi.instructor_id "
            f"WHERE mi.meeting_id IN ({_placeholders(ids)}) "
            "ORDER BY mi.meeting_id, mi.sort_order, mi.id",
            tuple(ids),
        ).fetchall()
        out: dict[int, list[InstructorAssignment]] = {}
        for r in rows:
            out.setdefault(r["meeting_id"], []).append(InstructorAssignment(
                instructor_id=r["instructor_id"], name=r["name"], role=r["role"],
                sort_order=r["sort_order"],
            ))
        return out

    @classmethod
    def assigned_to(cls, instructor_id: int) -> list[Meeting]:
        db = get_db()
        rows = db.execute(
            "SELECT m.* FROM meetings m JOIN meeting_instructors mi ON mi.meeting_id = m.id "
            "WHERE mi.instructor_id = ? ORDER BY m.start_at, m.id",
            (instructor_id,),
        ).fetchall()
        return [cls._from_row(r) for r in rows]

    @staticmethod
    def add(region: str, level: str, sequence_no: int, start_at: datetime,
            end_at: datetime | None = None, title: str = "") -> int:
        db = get_db()
        with _store_errors(db, "add_meeting"):
            cur = db.execute(
                "INSERT INTO meetings (region, level, sequence_no, title, start_at, end_at, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (region, level, sequence_no, title, start_at.isoformat(),
                 end_at.isoformat() if end_at else None, _now_iso()),
            )
            db.commit()
        return cur.lastrowid

    @staticmethod
    def assign_instructor(meeting_id: int, instructor_id: int, role: str = "main",
                          sort_order: int = 0) -> None:
        db = get_db()
        with _store_errors(db, "assign_instructor"):
            db.execute(
                "INSERT OR IGNORE INTO meeting_instructors (meeting_id, instructor_id, role, sort_order) "
                "VALUES (?, ?, ?, ?)",
                (meeting_id, instructor_id, role, sort_order),
            )
            db.commit()

    @staticmethod
    def delete(meeting_id: int) -> None:
        db = get_db()
        with _store_errors(db, "delete_meeting"):
            db.execute("DELETE FROM meetings WHERE id = ?", (meeting_id,))
            db.commit()


# ── Attendance marks ─────────────────────────────────────────────────


class AttendanceStoreDB:
    """Attendance marks, at most one per (meeting, student)."""

    @staticmethod
    def _from_row(row) -> AttendanceMark:
        return AttendanceMark(row["meeting_id"], row["student_id"], row["status"], row["checked_at"])

    @classmethod
    def upsert(cls, meeting_id: int, student_id: int, status: str, at: datetime) -> AttendanceMark:
        db = get_db()
        with _store_errors(db, "mark_attendance"):
            db.execute(
                "INSERT INTO attendance_marks (meeting_id, student_id, status, checked_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT (meeting_id, student_id) DO UPDATE SET "
                "status = excluded.status, checked_at = excluded.checked_at",
                (meeting_id, student_id, status, at.isoformat()),
            )
            db.commit()
        return AttendanceMark(meeting_id, student_id, status, at.isoformat())

    @classmethod
    def for_student(cls, student_id: int, meeting_ids: Iterable[int] | None = None) -> list[AttendanceMark]:
        db = get_db()
        if meeting_ids is None:
            rows = db.execute(
                "SELECT * FROM attendance_marks WHERE student_id = ?", (student_id,)
            ).fetchall()
        else:
            ids = list(meeting_ids)
            if not ids:
                return []
            rows = db.execute(
                f"SELECT * FROM attendance_marks WHERE student_id = ? AND meeting_id IN ({_placeholders(ids)})",
                (student_id, *ids),
            ).fetchall()
        return [cls._from_row(r) for r in rows]

    @classmethod
    def for_meeting(cls, meeting_id: int) -> list[AttendanceMark]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM attendance_marks WHERE meeting_id = ?", (meeting_id,)
        ).fetchall()
        return [cls._from_row(r) for r in rows]


# ── Homework submissions ─────────────────────────────────────────────


class HomeworkStoreDB:
    """Homework submissions, at most one per (meeting, student)."""

    @staticmethod
    def _from_row(row) -> HomeworkSubmission:
        try:
            media = json.loads(row["media_urls"] or "[]")
        except (json.JSONDecodeError, TypeError):
            media = []
        return HomeworkSubmission(
            meeting_id=row["meeting_id"],
            student_id=row["student_id"],
            submitted_at=row["submitted_at"],
            note=row["note"],
            media_urls=media,
        )

    @classmethod
    def insert(cls, meeting_id: int, student_id: int, at: datetime, note: str = "",
               media_urls: Iterable[str] = ()) -> HomeworkSubmission:
        """Insert a submission; the unique constraint decides concurrent races."""
        media = [str(u) for u in media_urls]
        db = get_db()
        with _store_errors(db, "submit_homework"):
            try:
                db.execute(
                    "INSERT INTO homework_submissions (meeting_id, student_id, submitted_at, note, media_urls) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (meeting_id, student_id, at.isoformat(), note, json.dumps(media)),
                )
            except db.IntegrityError as exc:
                db.rollback()
                if cls.get(meeting_id, student_id) is None:
                    logger.error("Homework insert rejected: meeting=%s student=%s: %s",
                                 meeting_id, student_id, exc)
                    raise PersistenceError(str(exc)) from exc
                raise DuplicateSubmission()
            db.commit()
        return HomeworkSubmission(meeting_id, student_id, at.isoformat(), note, media)

    @classmethod
    def get(cls, meeting_id: int, student_id: int) -> Optional[HomeworkSubmission]:
        db = get_db()
        row = db.execute(
            "SELECT * FROM homework_submissions WHERE meeting_id = ? AND student_id = ?",
            (meeting_id, student_id),
        ).fetchone()
        return cls._from_row(row) if row else None

    @staticmethod
    def delete(meeting_id: int, student_id: int) -> bool:
        db = get_db()
        with _store_errors(db, "delete_homework"):
            cur = db.execute(
                "DELETE FROM homework_submissions WHERE meeting_id = ? AND student_id = ?",
                (meeting_id, student_id),
            )
            db.commit()
        return cur.rowcount > 0

    @classmethod
    def for_student(cls, student_id: int, meeting_ids: Iterable[int] | None = None) -> list[HomeworkSubmission]:
        db = get_db()
        if meeting_ids is None:
            rows = db.execute(
                "SELECT * FROM homework_submissions WHERE student_id = ?", (student_id,)
            ).fetchall()
        else:
            ids = list(meeting_ids)
            if not ids:
                return []
            rows = db.execute(
                f"SELECT * FROM homework_submissions WHERE student_id = ? AND meeting_id IN ({_placeholders(ids)})",
                (student_id, *ids),
            ).fetchall()
        return [cls._from_row(r) for r in rows]

    @classmethod
    def for_meeting(cls, meeting_id: int) -> list[HomeworkSubmission]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM homework_submissions WHERE meeting_id = ?", (meeting_id,)
        ).fetchall()
        return [cls._from_row(r) for r in rows]


# ── Preferences ──────────────────────────────────────────────────────


class PreferenceStoreDB:
    """Favorite / notify flags per (student, region, level)."""

    @staticmethod
    def _from_row(row) -> PreferenceRow:
        return PreferenceRow(
            student_id=row["student_id"],
            region=row["region"],
            level=row["level"],
            is_favorite=bool(row["is_favorite"]),
            notify_enabled=bool(row["notify_enabled"]),
            updated_at=row["updated_at"],
        )

    @classmethod
    def get(cls, student_id: int, region: str, level: str) -> Optional[PreferenceRow]:
        db = get_db()
        row = db.execute(
            "SELECT * FROM preferences WHERE student_id = ? AND region = ? AND level = ?",
            (student_id, region, level),
        ).fetchone()
        return cls._from_row(row) if row else None

    @classmethod
    def for_student(cls, student_id: int) -> list[PreferenceRow]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM preferences WHERE student_id = ? ORDER BY id", (student_id,)
        ).fetchall()
        return [cls._from_row(r) for r in rows]

    @classmethod
    def notify_enabled(cls) -> list[PreferenceRow]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM preferences WHERE notify_enabled = 1 ORDER BY student_id, id"
        ).fetchall()
        return [cls._from_row(r) for r in rows]

    @classmethod
    def upsert(cls, student_id: int, region: str, level: str,
               is_favorite: bool | None = None, notify_enabled: bool | None = None) -> PreferenceRow:
        """Upsert one row, touching only the flags that were passed.

        Flags not passed keep their stored value, or start as false on insert.
        """
        updates = ["updated_at = excluded.updated_at"]
        if is_favorite is not None:
            updates.append("is_favorite = excluded.is_favorite")
        if notify_enabled is not None:
            updates.append("notify_enabled = excluded.notify_enabled")

        db = get_db()
        with _store_errors(db, "set_preference"):
            db.execute(
                "INSERT INTO preferences (student_id, region, level, is_favorite, notify_enabled, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                f"ON CONFLICT (student_id, region, level) DO UPDATE SET {', '.join(updates)}",
                (student_id, region, level, int(bool(is_favorite)), int(bool(notify_enabled)), _now_iso()),
            )
            db.commit()
        return cls.get(student_id, region, level)
