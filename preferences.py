"""
Favorite / notification preferences keyed by (region, level).

Meetings come and go in the catalog, so a stored preference can point at a
track that no longer exists. Those rows are filtered out on every read and
counted; they are never deleted here.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from models import Meeting, PreferenceRow, TrackKey
from window import to_civil_day

REMINDER_DAYS = (7, 1)


def active_pairs(meetings: Iterable[Meeting]) -> set[TrackKey]:
    """Tracks present in the catalog; pass the full catalog, not a date slice."""
    return {TrackKey.of(m) for m in meetings}


@dataclass
class Reconciliation:
    visible: list[PreferenceRow] = field(default_factory=list)
    hidden_count: int = 0

    def to_dict(self) -> dict:
        return {
            "preferences": [p.to_dict() for p in self.visible],
            "hidden_count": self.hidden_count,
        }


def reconcile(rows: Iterable[PreferenceRow], active: set[TrackKey]) -> Reconciliation:
    rows = list(rows)
    visible = [r for r in rows if TrackKey.of(r) in active]
    return Reconciliation(visible=visible, hidden_count=len(rows) - len(visible))


def merge_flags(existing: PreferenceRow | None, is_favorite: bool | None = None,
                notify_enabled: bool | None = None) -> tuple[bool, bool]:
    """Resolve the (is_favorite, notify_enabled) pair after a partial update."""
    fav = existing.is_favorite if existing else False
    notify = existing.notify_enabled if existing else False
    if is_favorite is not None:
        fav = bool(is_favorite)
    if notify_enabled is not None:
        notify = bool(notify_enabled)
    return fav, notify


@dataclass
class Reminder:
    student_id: int
    meeting_id: int
    kind: str  # "d7" or "d1"
    region: str
    level: str
    start_at: str

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "meeting_id": self.meeting_id,
            "kind": self.kind,
            "region": self.region,
            "level": self.level,
            "start_at": self.start_at,
        }


def due_reminders(now: datetime, meetings: Iterable[Meeting], rows: Iterable[PreferenceRow],
                  zone=None, days: Iterable[int] = REMINDER_DAYS) -> list[Reminder]:
    """Reminders due today for notify-enabled, non-stale preferences."""
    meetings = list(meetings)
    today = to_civil_day(now, zone)
    wanted = set(days)

    by_track: dict[TrackKey, list[Meeting]] = {}
    for m in meetings:
        by_track.setdefault(TrackKey.of(m), []).append(m)

    visible = reconcile(rows, set(by_track)).visible
    out: list[Reminder] = []
    for pref in visible:
        if not pref.notify_enabled:
            continue
        for m in sorted(by_track[TrackKey.of(pref)], key=lambda x: x.start_at):
            diff = (to_civil_day(m.start_at, zone) - today).days
            if diff in wanted:
                out.append(Reminder(
                    student_id=pref.student_id,
                    meeting_id=m.id,
                    kind=f"d{diff}",
                    region=m.region,
                    level=m.level,
                    start_at=m.start_at.isoformat(),
                ))
    return out
