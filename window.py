"""
Clock/window rules for meetings.

Decides whether attendance or homework is open for a meeting at a given
instant, and tags meetings as today / tomorrow / D-N / past. Day boundaries
are always taken in one fixed civil zone (``CIVIL_TIMEZONE``), never the
server's local zone, so every client sees the same "today".

All windows are closed intervals.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from models import Meeting

DEFAULT_ZONE = "Asia/Seoul"
HOMEWORK_WINDOW_DAYS = 7
RELATIVE_LABEL_DAYS = 7


def get_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or DEFAULT_ZONE)


def parse_instant(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; values without an offset are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_civil_day(instant: datetime, zone: ZoneInfo | str | None = None) -> date:
    """Calendar date of ``instant`` in the civil zone."""
    if instant.tzinfo is None:
        raise ValueError("to_civil_day() needs an aware datetime")
    if not isinstance(zone, ZoneInfo):
        zone = get_zone(zone)
    return instant.astimezone(zone).date()


def can_mark_attendance(now: datetime, meeting: Meeting) -> bool:
    if meeting.end_at is None:
        return True
    return now <= meeting.end_at


def can_upload_homework(now: datetime, meeting: Meeting,
                        window_days: int = HOMEWORK_WINDOW_DAYS) -> bool:
    if meeting.end_at is None:
        return False
    return meeting.end_at <= now <= meeting.end_at + timedelta(days=window_days)


def homework_window_closed(now: datetime, meeting: Meeting,
                           window_days: int = HOMEWORK_WINDOW_DAYS) -> bool:
    """True once the upload window has passed for good."""
    if meeting.end_at is None:
        return False
    return now > meeting.end_at + timedelta(days=window_days)


def has_ended(now: datetime, meeting: Meeting) -> bool:
    return meeting.end_at is not None and now > meeting.end_at


@dataclass
class DateClass:
    day: str  # "today", "tomorrow", "future" or "past"
    ongoing: bool
    ended: bool
    days_until: int
    label: str

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "ongoing": self.ongoing,
            "ended": self.ended,
            "days_until": self.days_until,
            "label": self.label,
        }


def classify_date(now: datetime, meeting: Meeting, zone: ZoneInfo | str | None = None) -> DateClass:
    today = to_civil_day(now, zone)
    meeting_day = to_civil_day(meeting.start_at, zone)
    days_until = (meeting_day - today).days

    if days_until == 0:
        day = "today"
    elif days_until == 1:
        day = "tomorrow"
    elif days_until > 1:
        day = "future"
    else:
        day = "past"

    ended = has_ended(now, meeting)
    ongoing = meeting.start_at <= now and not ended

    if day in ("today", "tomorrow"):
        label = day
    elif day == "past":
        label = "past"
    elif days_until <= RELATIVE_LABEL_DAYS:
        label = f"D-{days_until}"
    else:
        label = meeting_day.isoformat()

    return DateClass(day=day, ongoing=ongoing, ended=ended, days_until=days_until, label=label)
