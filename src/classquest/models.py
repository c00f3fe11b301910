"""Data records shared by the engine and the classroom host."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(str, Enum):
    LEVEL_UP = "level_up"
    BADGE_EARNED = "badge_earned"
    STREAK_MILESTONE = "streak_milestone"


class HistoryType(str, Enum):
    SCORE = "score"
    REWARD = "reward"
    SYSTEM = "system"


class TargetType(str, Enum):
    STUDENT = "student"
    GROUP = "group"
    CLASS = "class"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class GamificationRecord:
    """Per-student gamification state. Never mutated; engine returns new values."""

    student_id: str
    xp: int = 0
    level: int = 1
    current_streak: int = 0
    longest_streak: int = 0
    last_positive_scoring_date: str | None = None  # YYYY-MM-DD
    unlocked_badge_ids: tuple[str, ...] = ()
    badge_unlocked_at: dict[str, datetime] = field(default_factory=dict)
    total_positive_scores: int = 0
    score_item_counts: dict[str, int] = field(default_factory=dict)
    perfect_quiz_count: int = 0
    helping_others_count: int = 0
    reward_redeemed_count: int = 0
    attendance_days: int = 0
    last_attendance_date: str | None = None  # YYYY-MM-DD
    attendance_streak: int = 0
    longest_attendance_streak: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["unlocked_badge_ids"] = list(self.unlocked_badge_ids)
        data["badge_unlocked_at"] = {k: _dt_to_str(v) for k, v in self.badge_unlocked_at.items()}
        data["score_item_counts"] = dict(self.score_item_counts)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GamificationRecord:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["unlocked_badge_ids"] = tuple(data.get("unlocked_badge_ids", ()))
        values["badge_unlocked_at"] = {
            k: _dt_from_str(v) for k, v in (data.get("badge_unlocked_at") or {}).items()
        }
        values["score_item_counts"] = dict(data.get("score_item_counts") or {})
        return cls(**values)


def create_default_record(student_id: str) -> GamificationRecord:
    """Return the all-zero record used the first time a student is referenced."""
    return GamificationRecord(student_id=student_id)


@dataclass(frozen=True)
class NotificationEvent:
    """Ephemeral event produced by the engine for the host to queue and display."""

    type: EventType
    student_id: str
    student_name: str
    timestamp: datetime
    old_level: int | None = None
    new_level: int | None = None
    level_name: str | None = None
    level_emoji: str | None = None
    badge_id: str | None = None
    badge_name: str | None = None
    badge_emoji: str | None = None
    bonus_points: int | None = None
    streak_days: int | None = None
    streak_kind: str | None = None  # "score" or "attendance"

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["type"] = self.type.value
        data["timestamp"] = _dt_to_str(self.timestamp)
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationEvent:
        values = dict(data)
        values["type"] = EventType(data["type"])
        values["timestamp"] = _dt_from_str(data["timestamp"])
        return cls(**values)


@dataclass
class AttendanceRecord:
    id: str
    class_id: str
    student_id: str
    date: str  # YYYY-MM-DD
    status: AttendanceStatus = AttendanceStatus.PRESENT
    timestamp: datetime | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "class_id": self.class_id,
            "student_id": self.student_id,
            "date": self.date,
            "status": self.status.value,
            "timestamp": _dt_to_str(self.timestamp),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttendanceRecord:
        return cls(
            id=data["id"],
            class_id=data["class_id"],
            student_id=data["student_id"],
            date=data["date"],
            status=AttendanceStatus(data.get("status", "present")),
            timestamp=_dt_from_str(data.get("timestamp")),
            note=data.get("note"),
        )


@dataclass
class AttendanceExemption:
    """A no-class day. Exempt dates bridge streaks instead of breaking them."""

    id: str
    class_id: str
    date: str  # YYYY-MM-DD
    created_at: datetime | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "class_id": self.class_id,
            "date": self.date,
            "created_at": _dt_to_str(self.created_at),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttendanceExemption:
        return cls(
            id=data["id"],
            class_id=data["class_id"],
            date=data["date"],
            created_at=_dt_from_str(data.get("created_at")),
            note=data.get("note"),
        )


@dataclass
class Student:
    id: str
    class_id: str
    name: str
    group_id: str | None = None
    score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Student:
        return cls(**data)


@dataclass
class Group:
    id: str
    class_id: str
    name: str
    score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Group:
        return cls(**data)


@dataclass(frozen=True)
class Snapshot:
    """Deep copy of a record's state (everything but identity), taken before a mutation."""

    xp: int
    level: int
    current_streak: int
    longest_streak: int
    last_positive_scoring_date: str | None
    unlocked_badge_ids: tuple[str, ...]
    badge_unlocked_at: dict[str, datetime]
    total_positive_scores: int
    score_item_counts: dict[str, int]
    perfect_quiz_count: int
    helping_others_count: int
    reward_redeemed_count: int
    attendance_days: int
    last_attendance_date: str | None
    attendance_streak: int
    longest_attendance_streak: int

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["unlocked_badge_ids"] = list(self.unlocked_badge_ids)
        data["badge_unlocked_at"] = {k: _dt_to_str(v) for k, v in self.badge_unlocked_at.items()}
        data["score_item_counts"] = dict(self.score_item_counts)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        """Missing or null fields fall back to a fresh record's values."""
        default = create_default_record("")
        values = {}
        for f in fields(cls):
            value = data.get(f.name)
            values[f.name] = getattr(default, f.name) if value is None else value
        values["unlocked_badge_ids"] = tuple(data.get("unlocked_badge_ids") or ())
        values["badge_unlocked_at"] = {
            k: _dt_from_str(v) for k, v in (data.get("badge_unlocked_at") or {}).items()
        }
        values["score_item_counts"] = dict(data.get("score_item_counts") or {})
        return cls(**values)


@dataclass
class StudentDelta:
    """Per-student effect of a group operation, with the snapshot needed to undo it."""

    student_id: str
    delta: int
    snapshot: Snapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "delta": self.delta,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudentDelta:
        snapshot = data.get("snapshot")
        return cls(
            student_id=data["student_id"],
            delta=data["delta"],
            snapshot=Snapshot.from_dict(snapshot) if snapshot else None,
        )


@dataclass
class HistoryRecord:
    """Audit log entry. Carries whatever is needed to undo the action exactly."""

    id: str
    class_id: str
    type: HistoryType
    target_type: TargetType
    target_id: str
    target_name: str
    item_id: str
    item_name: str
    value: int
    timestamp: datetime
    note: str | None = None
    undone: bool = False
    snapshot: Snapshot | None = None
    per_student_deltas: list[StudentDelta] = field(default_factory=list)
    group_score_before: int | None = None
    attendance_meta: AttendanceRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "class_id": self.class_id,
            "type": self.type.value,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "target_name": self.target_name,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "value": self.value,
            "timestamp": _dt_to_str(self.timestamp),
            "note": self.note,
            "undone": self.undone,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "per_student_deltas": [d.to_dict() for d in self.per_student_deltas],
            "group_score_before": self.group_score_before,
            "attendance_meta": self.attendance_meta.to_dict() if self.attendance_meta else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryRecord:
        snapshot = data.get("snapshot")
        meta = data.get("attendance_meta")
        return cls(
            id=data["id"],
            class_id=data["class_id"],
            type=HistoryType(data["type"]),
            target_type=TargetType(data["target_type"]),
            target_id=data["target_id"],
            target_name=data["target_name"],
            item_id=data["item_id"],
            item_name=data["item_name"],
            value=data["value"],
            timestamp=_dt_from_str(data["timestamp"]),
            note=data.get("note"),
            undone=bool(data.get("undone", False)),
            snapshot=Snapshot.from_dict(snapshot) if snapshot else None,
            per_student_deltas=[StudentDelta.from_dict(d) for d in data.get("per_student_deltas") or []],
            group_score_before=data.get("group_score_before"),
            attendance_meta=AttendanceRecord.from_dict(meta) if meta else None,
        )
