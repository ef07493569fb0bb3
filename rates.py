"""
Attendance / homework completion rates and eligibility verdicts.

Student rates are measured against the fixed quota from quota.py; cohort
rates (instructor view of one meeting) use the meeting's roster size as the
denominator instead.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from models import AttendanceMark, HomeworkSubmission, Meeting, TrackKey
from window import HOMEWORK_WINDOW_DAYS, has_ended, homework_window_closed

PRESENT_STATUSES = frozenset({"present", "checked", "attended"})

MAX_ABSENCES = 2
MAX_HOMEWORK_MISSING = 2


def is_present(status: str | None) -> bool:
    return str(status or "").strip().lower() in PRESENT_STATUSES


def percent(numerator: int, denominator: int) -> int:
    """Round numerator/denominator*100 half-up, exactly; 0 for an empty denominator."""
    if denominator <= 0:
        return 0
    return (200 * numerator + denominator) // (2 * denominator)


def present_meeting_ids(marks: Iterable[AttendanceMark]) -> set[int]:
    return {m.meeting_id for m in marks if is_present(m.status)}


def submitted_meeting_ids(submissions: Iterable[HomeworkSubmission]) -> set[int]:
    return {s.meeting_id for s in submissions if s.is_submitted}


@dataclass
class RateSummary:
    attendance_rate: int
    homework_rate: int
    quota: int
    attended_count: int
    homework_count: int
    in_scope_count: int

    def to_dict(self) -> dict:
        return {
            "attendance_rate": self.attendance_rate,
            "homework_rate": self.homework_rate,
            "quota": self.quota,
            "attended_count": self.attended_count,
            "homework_count": self.homework_count,
            "in_scope_count": self.in_scope_count,
        }


def compute_rates(in_scope: list[Meeting], quota: int,
                  attendance: Iterable[AttendanceMark],
                  homework: Iterable[HomeworkSubmission]) -> RateSummary:
    scope_ids = {m.id for m in in_scope}
    attended = len(scope_ids & present_meeting_ids(attendance))
    submitted = len(scope_ids & submitted_meeting_ids(homework))
    return RateSummary(
        attendance_rate=percent(attended, quota),
        homework_rate=percent(submitted, quota),
        quota=quota,
        attended_count=attended,
        homework_count=submitted,
        in_scope_count=len(scope_ids),
    )


@dataclass
class CohortRates:
    meeting_id: int
    roster_size: int
    attendance_rate: int
    homework_rate: int
    attended_count: int
    homework_count: int
    absent_ids: list[int] = field(default_factory=list)
    homework_missing_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "meeting_id": self.meeting_id,
            "roster_size": self.roster_size,
            "attendance_rate": self.attendance_rate,
            "homework_rate": self.homework_rate,
            "attended_count": self.attended_count,
            "homework_count": self.homework_count,
            "absent_ids": self.absent_ids,
            "homework_missing_ids": self.homework_missing_ids,
        }


def compute_cohort_rates(meeting_id: int, roster_ids: Iterable[int],
                         attendance: Iterable[AttendanceMark],
                         homework: Iterable[HomeworkSubmission]) -> CohortRates:
    roster = list(dict.fromkeys(roster_ids))
    attended = {m.student_id for m in attendance if m.meeting_id == meeting_id and is_present(m.status)}
    submitted = {s.student_id for s in homework if s.meeting_id == meeting_id and s.is_submitted}

    absent = [sid for sid in roster if sid not in attended]
    missing = [sid for sid in roster if sid not in submitted]
    attended_count = len(roster) - len(absent)
    homework_count = len(roster) - len(missing)
    return CohortRates(
        meeting_id=meeting_id,
        roster_size=len(roster),
        attendance_rate=percent(attended_count, len(roster)),
        homework_rate=percent(homework_count, len(roster)),
        attended_count=attended_count,
        homework_count=homework_count,
        absent_ids=absent,
        homework_missing_ids=missing,
    )


def aggregate_cohort(cohorts: Iterable[CohortRates]) -> dict:
    """Totals over several meetings: sum of completions / sum of roster sizes."""
    cohorts = list(cohorts)
    enrolled = sum(c.roster_size for c in cohorts)
    attended = sum(c.attended_count for c in cohorts)
    submitted = sum(c.homework_count for c in cohorts)
    return {
        "meeting_count": len(cohorts),
        "total_enrolled": enrolled,
        "attendance_rate": percent(attended, enrolled),
        "homework_rate": percent(submitted, enrolled),
    }


# ── Eligibility ─────────────────────────────────────────────


@dataclass
class TrackEligibility:
    track: TrackKey
    absent_count: int
    homework_missing_count: int
    eligible: bool
    at_risk: bool
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            **self.track.to_dict(),
            "absent_count": self.absent_count,
            "homework_missing_count": self.homework_missing_count,
            "eligibility": "eligible" if self.eligible else "not_eligible",
            "at_risk": self.at_risk,
            "reason": self.reason,
        }


def assess_eligibility(scope_by_track: dict[TrackKey, list[Meeting]],
                       attendance: Iterable[AttendanceMark],
                       homework: Iterable[HomeworkSubmission],
                       now: datetime,
                       max_absences: int = MAX_ABSENCES,
                       max_homework_missing: int = MAX_HOMEWORK_MISSING,
                       window_days: int = HOMEWORK_WINDOW_DAYS) -> list[TrackEligibility]:
    """Count misses per track; only meetings whose window has closed can be missed."""
    present = present_meeting_ids(attendance)
    submitted = submitted_meeting_ids(homework)

    results = []
    for track, meetings in scope_by_track.items():
        absent = sum(1 for m in meetings if has_ended(now, m) and m.id not in present)
        missing = sum(
            1 for m in meetings
            if homework_window_closed(now, m, window_days) and m.id not in submitted
        )
        reasons = []
        if absent >= max_absences:
            reasons.append(f"{absent} absences (limit {max_absences})")
        if missing >= max_homework_missing:
            reasons.append(f"{missing} missing homework (limit {max_homework_missing})")
        results.append(TrackEligibility(
            track=track,
            absent_count=absent,
            homework_missing_count=missing,
            eligible=not reasons,
            at_risk=absent >= max_absences - 1 or missing >= max_homework_missing - 1,
            reason="; ".join(reasons),
        ))
    return results
