"""Gamification snapshots for undo."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import fields

from classquest.models import GamificationRecord, Snapshot, create_default_record

_SNAPSHOT_FIELDS = tuple(f.name for f in fields(Snapshot))


def take_snapshot(record: GamificationRecord) -> Snapshot:
    """Deep-copy every field except student_id."""
    values = {name: getattr(record, name) for name in _SNAPSHOT_FIELDS}
    values["unlocked_badge_ids"] = tuple(record.unlocked_badge_ids)
    values["badge_unlocked_at"] = dict(record.badge_unlocked_at)
    values["score_item_counts"] = dict(record.score_item_counts)
    return Snapshot(**values)


def snapshot_for_student(records: Mapping[str, GamificationRecord], student_id: str) -> Snapshot:
    """Snapshot a student's record, or the all-zero default if none exists yet."""
    record = records.get(student_id) or create_default_record(student_id)
    return take_snapshot(record)


def restore_snapshot(snapshot: Snapshot, student_id: str) -> GamificationRecord:
    """Rebuild the exact record a snapshot was taken from."""
    values = {name: getattr(snapshot, name) for name in _SNAPSHOT_FIELDS}
    values["unlocked_badge_ids"] = tuple(snapshot.unlocked_badge_ids)
    values["badge_unlocked_at"] = dict(snapshot.badge_unlocked_at)
    values["score_item_counts"] = dict(snapshot.score_item_counts)
    return GamificationRecord(student_id=student_id, **values)
