"""
Quota resolution: which meetings count toward a student's rates, and out of
how many.

Each enrolled (region, level) track is worth a fixed 9 sessions. The quota
never depends on how many meetings the catalog actually holds for a track;
a short catalog shows up as a lower rate, not a smaller denominator. Only
the first 9 meetings of a track by sequence number are in scope.
"""

from __future__ import annotations

from collections.abc import Iterable

from models import Enrollment, Meeting, TrackKey

SESSIONS_PER_ENROLLMENT = 9


def enrolled_tracks(enrollments: Iterable[Enrollment]) -> list[TrackKey]:
    """Distinct complete tracks, in first-seen order."""
    seen: dict[TrackKey, None] = {}
    for e in enrollments:
        key = TrackKey.of(e)
        if key.is_complete and key not in seen:
            seen[key] = None
    return list(seen)


def resolve_quota(enrollments: Iterable[Enrollment], per_track: int = SESSIONS_PER_ENROLLMENT) -> int:
    return per_track * len(enrolled_tracks(enrollments))


def _sequence_order(m: Meeting) -> tuple:
    return (m.sequence_no, m.start_at, m.id)


def in_scope_by_track(meetings: Iterable[Meeting], enrollments: Iterable[Enrollment],
                      per_track: int = SESSIONS_PER_ENROLLMENT) -> dict[TrackKey, list[Meeting]]:
    tracks = enrolled_tracks(enrollments)
    buckets: dict[TrackKey, list[Meeting]] = {t: [] for t in tracks}
    for m in meetings:
        key = TrackKey.of(m)
        if key in buckets:
            buckets[key].append(m)
    return {t: sorted(ms, key=_sequence_order)[:per_track] for t, ms in buckets.items()}


def select_in_scope(meetings: Iterable[Meeting], enrollments: Iterable[Enrollment],
                    per_track: int = SESSIONS_PER_ENROLLMENT) -> list[Meeting]:
    selected: list[Meeting] = []
    seen_ids: set[int] = set()
    for ms in in_scope_by_track(meetings, enrollments, per_track).values():
        for m in ms:
            if m.id not in seen_ids:
                seen_ids.add(m.id)
                selected.append(m)
    return selected
