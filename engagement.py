"""
Engagement & eligibility operations.

Each function is one request-scoped operation: it reads the current catalog,
enrollments and marks through db_stores, applies the pure rules from
window / quota / rates / preferences, and (for writes) gates the single
store call on the meeting's time window. Nothing is cached between calls.

All functions expect an application context.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from audit import log_event
from db_stores import (
    AttendanceStoreDB,
    EnrollmentStoreDB,
    HomeworkStoreDB,
    MeetingCatalogDB,
    PreferenceStoreDB,
    StudentStoreDB,
)
from errors import DuplicateSubmission, MeetingNotFound, Unauthenticated, WindowClosed
from models import AttendanceMark, HomeworkSubmission, Meeting, PreferenceRow, TrackKey
from preferences import Reconciliation, Reminder, active_pairs, due_reminders, merge_flags, reconcile
from quota import enrolled_tracks, in_scope_by_track, resolve_quota
from rates import (
    CohortRates,
    TrackEligibility,
    aggregate_cohort,
    assess_eligibility,
    compute_cohort_rates,
    compute_rates,
    present_meeting_ids,
    submitted_meeting_ids,
)
from window import can_mark_attendance, can_upload_homework, classify_date, get_zone, utcnow

logger = logging.getLogger(__name__)


# ── Settings ─────────────────────────────────────────────────


def _setting(name: str, default):
    return current_app.config.get(name, default)


def civil_zone():
    return get_zone(_setting("CIVIL_TIMEZONE", "Asia/Seoul"))


def sessions_per_enrollment() -> int:
    return _setting("SESSIONS_PER_ENROLLMENT", 9)


def _window_days() -> int:
    return _setting("HOMEWORK_WINDOW_DAYS", 7)


def require_identity(student_id: int | None) -> int:
    if not student_id:
        raise Unauthenticated()
    return student_id


def _load_meeting(meeting_id: int) -> Meeting:
    meeting = MeetingCatalogDB.get(meeting_id)
    if meeting is None:
        raise MeetingNotFound(f"Meeting {meeting_id} not found.")
    return meeting


# ── Marks (gated writes) ─────────────────────────────────────


def mark_attendance(student_id: int | None, meeting_id: int, status: str = "present",
                    now: datetime | None = None) -> AttendanceMark:
    sid = require_identity(student_id)
    now = now or utcnow()
    meeting = _load_meeting(meeting_id)
    if not can_mark_attendance(now, meeting):
        logger.info("attendance refused: meeting=%s student=%s window closed", meeting_id, sid)
        raise WindowClosed("Attendance closed: the meeting has ended.")
    mark = AttendanceStoreDB.upsert(meeting_id, sid, status, now)
    log_event("attendance_marked", sid, f"meeting={meeting_id} status={status}")
    return mark


def submit_homework(student_id: int | None, meeting_id: int, note: str = "",
                    media_urls: Iterable[str] = (), now: datetime | None = None) -> HomeworkSubmission:
    sid = require_identity(student_id)
    now = now or utcnow()
    meeting = _load_meeting(meeting_id)
    if not can_upload_homework(now, meeting, _window_days()):
        logger.info("homework refused: meeting=%s student=%s window closed", meeting_id, sid)
        raise WindowClosed(
            f"Homework upload is open from the end of the meeting for {_window_days()} days."
        )
    try:
        submission = HomeworkStoreDB.insert(meeting_id, sid, now, note, media_urls)
    except DuplicateSubmission:
        logger.info("homework refused: meeting=%s student=%s already submitted", meeting_id, sid)
        raise
    log_event("homework_submitted", sid, f"meeting={meeting_id}")
    return submission


def delete_homework(student_id: int | None, meeting_id: int, now: datetime | None = None) -> dict:
    """Delete a submission; also the cascade hook for deleted homework posts."""
    sid = require_identity(student_id)
    now = now or utcnow()
    meeting = _load_meeting(meeting_id)
    deleted = HomeworkStoreDB.delete(meeting_id, sid)
    if deleted:
        log_event("homework_deleted", sid, f"meeting={meeting_id}")
    return {
        "deleted": deleted,
        "can_resubmit": can_upload_homework(now, meeting, _window_days()),
    }


# ── Rates & eligibility ──────────────────────────────────────


@dataclass
class EligibilitySnapshot:
    attendance_rate: int
    homework_rate: int
    quota_denominator: int
    attended_count: int = 0
    homework_count: int = 0
    in_scope_count: int = 0
    tracks: list[TrackEligibility] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attendance_rate": self.attendance_rate,
            "homework_rate": self.homework_rate,
            "quota_denominator": self.quota_denominator,
            "attended_count": self.attended_count,
            "homework_count": self.homework_count,
            "in_scope_count": self.in_scope_count,
            "tracks": [t.to_dict() for t in self.tracks],
        }


def _scope_for(student_id: int) -> tuple[int, dict[TrackKey, list[Meeting]]]:
    enrollments = EnrollmentStoreDB(student_id).all()
    tracks = enrolled_tracks(enrollments)
    meetings = MeetingCatalogDB.for_tracks(tracks)
    per_track = sessions_per_enrollment()
    return resolve_quota(enrollments, per_track), in_scope_by_track(meetings, enrollments, per_track)


def _flatten(scope: dict[TrackKey, list[Meeting]]) -> list[Meeting]:
    seen: dict[int, Meeting] = {}
    for ms in scope.values():
        for m in ms:
            seen.setdefault(m.id, m)
    return list(seen.values())


def eligibility_snapshot(student_id: int | None, now: datetime | None = None) -> EligibilitySnapshot:
    sid = require_identity(student_id)
    now = now or utcnow()
    quota, scope = _scope_for(sid)
    in_scope = _flatten(scope)
    ids = [m.id for m in in_scope]
    attendance = AttendanceStoreDB.for_student(sid, ids)
    homework = HomeworkStoreDB.for_student(sid, ids)

    summary = compute_rates(in_scope, quota, attendance, homework)
    tracks = assess_eligibility(
        scope, attendance, homework, now,
        max_absences=_setting("MAX_ABSENCES", 2),
        max_homework_missing=_setting("MAX_HOMEWORK_MISSING", 2),
        window_days=_window_days(),
    )
    return EligibilitySnapshot(
        attendance_rate=summary.attendance_rate,
        homework_rate=summary.homework_rate,
        quota_denominator=summary.quota,
        attended_count=summary.attended_count,
        homework_count=summary.homework_count,
        in_scope_count=summary.in_scope_count,
        tracks=tracks,
    )


def meeting_board(student_id: int | None, now: datetime | None = None) -> list[dict]:
    """The student's in-scope meetings with date tags, permissions and marks."""
    sid = require_identity(student_id)
    now = now or utcnow()
    zone = civil_zone()
    _, scope = _scope_for(sid)
    meetings = sorted(_flatten(scope), key=lambda m: (m.start_at, m.id))
    ids = [m.id for m in meetings]
    attended = present_meeting_ids(AttendanceStoreDB.for_student(sid, ids))
    submitted = submitted_meeting_ids(HomeworkStoreDB.for_student(sid, ids))
    instructors = MeetingCatalogDB.instructors_for(ids)

    board = []
    for m in meetings:
        m.instructors = instructors.get(m.id, [])
        board.append({
            **m.to_dict(),
            "date": classify_date(now, m, zone).to_dict(),
            "can_mark_attendance": can_mark_attendance(now, m) and m.id not in attended,
            "can_upload_homework": can_upload_homework(now, m, _window_days()) and m.id not in submitted,
            "attended": m.id in attended,
            "submitted": m.id in submitted,
        })
    return board


def cohort_rates(meeting_id: int) -> CohortRates:
    meeting = _load_meeting(meeting_id)
    roster = EnrollmentStoreDB.roster(meeting.track)
    return compute_cohort_rates(
        meeting_id, roster,
        AttendanceStoreDB.for_meeting(meeting_id),
        HomeworkStoreDB.for_meeting(meeting_id),
    )


def instructor_overview(instructor_id: int | None) -> dict:
    iid = require_identity(instructor_id)
    cohorts = [cohort_rates(m.id) for m in MeetingCatalogDB.assigned_to(iid)]
    return {
        "meetings": [c.to_dict() for c in cohorts],
        "totals": aggregate_cohort(cohorts),
    }


# ── Preferences ──────────────────────────────────────────────


def preference_view(student_id: int | None) -> Reconciliation:
    sid = require_identity(student_id)
    rows = PreferenceStoreDB.for_student(sid)
    view = reconcile(rows, MeetingCatalogDB.active_pairs())
    if view.hidden_count:
        logger.debug("student=%s has %d stale preferences hidden", sid, view.hidden_count)
    return view


def set_preference(student_id: int | None, region: str, level: str,
                   is_favorite: bool | None = None, notify_enabled: bool | None = None) -> PreferenceRow:
    sid = require_identity(student_id)
    key = TrackKey(str(region or "").strip(), str(level or "").strip())
    if not key.is_complete:
        raise ValueError("region and level are required")
    return PreferenceStoreDB.upsert(sid, key.region, key.level,
                                    is_favorite=is_favorite, notify_enabled=notify_enabled)


def set_favorite(student_id: int | None, region: str, level: str, value: bool) -> PreferenceRow:
    return set_preference(student_id, region, level, is_favorite=value)


def set_notify(student_id: int | None, region: str, level: str, value: bool) -> PreferenceRow:
    return set_preference(student_id, region, level, notify_enabled=value)


def toggle_favorite(student_id: int | None, region: str, level: str) -> PreferenceRow:
    """Flip the favorite flag; a new row starts as favorite with notify off."""
    sid = require_identity(student_id)
    existing = PreferenceStoreDB.get(sid, str(region or "").strip(), str(level or "").strip())
    fav, _ = merge_flags(existing, is_favorite=not (existing and existing.is_favorite))
    return set_preference(sid, region, level, is_favorite=fav)


def pending_reminders(now: datetime | None = None) -> list[Reminder]:
    now = now or utcnow()
    catalog = MeetingCatalogDB.all()
    if not catalog:
        return []
    return due_reminders(now, catalog, PreferenceStoreDB.notify_enabled(),
                         zone=civil_zone(), days=_setting("REMINDER_DAYS", (7, 1)))


def catalog_with_tags(now: datetime | None = None, region: str = "", level: str = "") -> dict:
    """Full catalog (optionally filtered) with date tags and the active track list."""
    now = now or utcnow()
    zone = civil_zone()
    catalog = MeetingCatalogDB.all()
    tracks = sorted(active_pairs(catalog))
    shown = [
        m for m in catalog
        if (not region or m.region == region) and (not level or m.level == level)
    ]
    return {
        "meetings": [{**m.to_dict(), "date": classify_date(now, m, zone).to_dict()} for m in shown],
        "tracks": [t.to_dict() for t in tracks],
    }


def set_account_status(admin_id: int | None, user_id: int, status: str) -> bool:
    aid = require_identity(admin_id)
    changed = StudentStoreDB.set_status(user_id, status)
    if changed:
        log_event("account_status", aid, f"user={user_id} status={status}")
    return changed
