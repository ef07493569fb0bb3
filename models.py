"""
Record types shared by the rule modules and the DB-backed stores.

Rows come out of the store layer as these dataclasses; the rule modules
(window, quota, rates, preferences) only ever see these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NamedTuple, Optional


class TrackKey(NamedTuple):
    """Composite (region, level) identity of a class track."""

    region: str
    level: str

    @classmethod
    def of(cls, obj: Any) -> "TrackKey":
        """Build a key from anything with ``region``/``level`` (object or mapping)."""
        if isinstance(obj, dict):
            region, level = obj.get("region"), obj.get("level")
        else:
            region, level = getattr(obj, "region", None), getattr(obj, "level", None)
        return cls(str(region or "").strip(), str(level or "").strip())

    @property
    def is_complete(self) -> bool:
        return bool(self.region) and bool(self.level)

    def to_dict(self) -> dict:
        return {"region": self.region, "level": self.level}


@dataclass
class InstructorAssignment:
    instructor_id: int
    name: str = ""
    role: str = "main"  # "main" or "sub"
    sort_order: int = 0


@dataclass
class Meeting:
    id: int
    region: str
    level: str
    sequence_no: int
    start_at: datetime
    end_at: Optional[datetime] = None
    title: str = ""
    instructors: list[InstructorAssignment] = field(default_factory=list)

    @property
    def track(self) -> TrackKey:
        return TrackKey.of(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "region": self.region,
            "level": self.level,
            "sequence_no": self.sequence_no,
            "title": self.title,
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "instructors": [
                {"instructor_id": i.instructor_id, "name": i.name, "role": i.role}
                for i in self.instructors
            ],
        }


@dataclass
class Enrollment:
    student_id: int
    region: str
    level: str

    @property
    def track(self) -> TrackKey:
        return TrackKey.of(self)


@dataclass
class AttendanceMark:
    meeting_id: int
    student_id: int
    status: str
    checked_at: str = ""


@dataclass
class HomeworkSubmission:
    meeting_id: int
    student_id: int
    submitted_at: Optional[str] = None
    note: str = ""
    media_urls: list[str] = field(default_factory=list)

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None


@dataclass
class PreferenceRow:
    student_id: int
    region: str
    level: str
    is_favorite: bool = False
    notify_enabled: bool = False
    updated_at: str = ""

    @property
    def track(self) -> TrackKey:
        return TrackKey.of(self)

    def to_dict(self) -> dict:
        return {
            "region": self.region,
            "level": self.level,
            "is_favorite": self.is_favorite,
            "notify_enabled": self.notify_enabled,
            "updated_at": self.updated_at,
        }
