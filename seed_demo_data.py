"""
Seed Demo Data: standalone script.

Creates an admin (also assigned as instructor), four approved students and
one pending sign-up, two tracks of meetings around today (Seoul/L1 has 11
meetings, so two fall outside the 9-session quota), enrollments, a spread of
attendance marks and homework, and preferences including one for a track
that has no meetings (a stale preference).

Usage:
    python seed_demo_data.py           # Seed into the configured database
    python seed_demo_data.py --reset   # Clear demo data first
"""

from __future__ import annotations

import json
import random
import sys
from datetime import datetime, timedelta, timezone

from werkzeug.security import generate_password_hash

DEMO_ADMIN = {"name": "Admin Park", "email": "admin@demo.academy"}

DEMO_STUDENTS = [
    {"name": "Jiwoo Lee", "email": "jiwoo@demo.academy", "tracks": [("Seoul", "L1")]},
    {"name": "Minseo Choi", "email": "minseo@demo.academy", "tracks": [("Seoul", "L1"), ("Busan", "L2")]},
    {"name": "Hana Kim", "email": "hana@demo.academy", "tracks": [("Busan", "L2")]},
    {"name": "Yuna Jung", "email": "yuna@demo.academy", "tracks": [("Seoul", "L1")]},
]
DEMO_PENDING = {"name": "Doyun Han", "email": "doyun@demo.academy"}

# (region, level, meeting count, first meeting offset in days)
DEMO_TRACKS = [
    ("Seoul", "L1", 11, -42),
    ("Busan", "L2", 6, -20),
]
STALE_TRACK = ("Daegu", "L3")


def seed(db, start_uid: int = 500, rng: random.Random | None = None) -> dict:
    """Seed demo data into the database. Returns summary dict."""
    rng = rng or random.Random(7)
    now = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    created = now.isoformat()
    password = generate_password_hash("demo12345")

    admin_uid = start_uid
    db.execute(
        "INSERT OR IGNORE INTO users (id, name, email, password_hash, role, status, created_at) "
        "VALUES (?, ?, ?, ?, 'admin', 'approved', ?)",
        (admin_uid, DEMO_ADMIN["name"], DEMO_ADMIN["email"], password, created),
    )

    student_ids = []
    for i, s in enumerate(DEMO_STUDENTS, start=1):
        uid = start_uid + i
        student_ids.append(uid)
        db.execute(
            "INSERT OR IGNORE INTO users (id, name, email, password_hash, role, status, created_at) "
            "VALUES (?, ?, ?, ?, 'student', 'approved', ?)",
            (uid, s["name"], s["email"], password, created),
        )
        for region, level in s["tracks"]:
            db.execute(
                "INSERT OR IGNORE INTO enrollments (student_id, region, level, created_at) VALUES (?, ?, ?, ?)",
                (uid, region, level, created),
            )
    db.execute(
        "INSERT OR IGNORE INTO users (id, name, email, password_hash, role, status, created_at) "
        "VALUES (?, ?, ?, ?, 'student', 'pending', ?)",
        (start_uid + len(DEMO_STUDENTS) + 1, DEMO_PENDING["name"], DEMO_PENDING["email"], password, created),
    )

    meeting_ids: dict[tuple[str, str], list[int]] = {}
    for region, level, count, offset in DEMO_TRACKS:
        for seq in range(1, count + 1):
            start = now + timedelta(days=offset + 7 * (seq - 1))
            cur = db.execute(
                "INSERT INTO meetings (region, level, sequence_no, title, start_at, end_at, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (region, level, seq, f"{region} {level} #{seq}", start.isoformat(),
                 (start + timedelta(hours=2)).isoformat(), created),
            )
            meeting_ids.setdefault((region, level), []).append(cur.lastrowid)
            db.execute(
                "INSERT OR IGNORE INTO meeting_instructors (meeting_id, instructor_id, role, sort_order) "
                "VALUES (?, ?, 'main', 0)",
                (cur.lastrowid, admin_uid),
            )

    marks = submissions = 0
    for uid, s in zip(student_ids, DEMO_STUDENTS):
        for track in s["tracks"]:
            for mid, start_offset in zip(meeting_ids[track], _offsets(track)):
                if start_offset >= 0:
                    continue
                if rng.random() < 0.8:
                    db.execute(
                        "INSERT OR IGNORE INTO attendance_marks (meeting_id, student_id, status, checked_at) "
                        "VALUES (?, ?, 'present', ?)",
                        (mid, uid, (now + timedelta(days=start_offset, hours=1)).isoformat()),
                    )
                    marks += 1
                if rng.random() < 0.6:
                    db.execute(
                        "INSERT OR IGNORE INTO homework_submissions "
                        "(meeting_id, student_id, submitted_at, note, media_urls) VALUES (?, ?, ?, ?, ?)",
                        (mid, uid, (now + timedelta(days=start_offset + 1)).isoformat(), "",
                         json.dumps([])),
                    )
                    submissions += 1
            db.execute(
                "INSERT OR IGNORE INTO preferences (student_id, region, level, is_favorite, notify_enabled, updated_at) "
                "VALUES (?, ?, ?, 1, 1, ?)",
                (uid, track[0], track[1], created),
            )
        db.execute(
            "INSERT OR IGNORE INTO preferences (student_id, region, level, is_favorite, notify_enabled, updated_at) "
            "VALUES (?, ?, ?, 1, 0, ?)",
            (uid, STALE_TRACK[0], STALE_TRACK[1], created),
        )

    db.commit()
    return {
        "admin_id": admin_uid,
        "students_created": len(student_ids),
        "meetings_created": sum(len(v) for v in meeting_ids.values()),
        "attendance_marks": marks,
        "homework_submissions": submissions,
    }


def _offsets(track: tuple[str, str]) -> list[int]:
    for region, level, count, offset in DEMO_TRACKS:
        if (region, level) == track:
            return [offset + 7 * i for i in range(count)]
    return []


def clear_demo(db, start_uid: int = 500) -> None:
    """Remove all demo data."""
    uids = list(range(start_uid, start_uid + len(DEMO_STUDENTS) + 2))
    placeholders = ",".join("?" * len(uids))

    for table in ("attendance_marks", "homework_submissions", "preferences", "enrollments"):
        db.execute(f"DELETE FROM {table} WHERE student_id IN ({placeholders})", uids)
    db.execute(f"DELETE FROM meeting_instructors WHERE instructor_id IN ({placeholders})", uids)
    for region, level, _, _ in DEMO_TRACKS:
        db.execute("DELETE FROM meetings WHERE region = ? AND level = ?", (region, level))
    db.execute(f"DELETE FROM users WHERE id IN ({placeholders})", uids)
    db.commit()


if __name__ == "__main__":
    from app import create_app
    from database import get_db, init_db, run_migrations

    app = create_app()
    with app.app_context():
        init_db()
        run_migrations()
        db = get_db()
        if "--reset" in sys.argv:
            clear_demo(db)
            print("[Seed] Demo data cleared.")
        result = seed(db)
        print(f"[Seed] Done: {result}")
