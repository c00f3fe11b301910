"""Batch streak recomputation from history and attendance records.

Used whenever something retroactive happens (an exemption is added or removed,
a history entry is undone, attendance is backfilled) and the incrementally
maintained streak fields on each record can no longer be trusted.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, replace

from classquest.models import (
    AttendanceRecord,
    AttendanceStatus,
    GamificationRecord,
    HistoryRecord,
    HistoryType,
    TargetType,
    create_default_record,
)
from classquest.streaks import date_key_from_timestamp, longest_run

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakSummary:
    current: int = 0
    longest: int = 0
    last_date: str | None = None


def _summarise(days_by_student: dict[str, list[str]], exempt_dates: Collection[str]) -> dict[str, StreakSummary]:
    result: dict[str, StreakSummary] = {}
    for student_id, days in days_by_student.items():
        ordered = sorted(set(days))
        if not ordered:
            result[student_id] = StreakSummary()
            continue
        current, longest = longest_run(ordered, exempt_dates)
        result[student_id] = StreakSummary(current=current, longest=longest, last_date=ordered[-1])
    return result


def compute_score_streaks(
    history: Iterable[HistoryRecord],
    exempt_dates: Collection[str],
    student_ids: Iterable[str],
) -> dict[str, StreakSummary]:
    """Positive-scoring streaks per student, rebuilt from the history log.

    Only live (not undone), student-targeted score entries with a positive value
    count. Every id in student_ids gets a summary; students that only appear in
    the history are included too.
    """
    days: dict[str, list[str]] = {student_id: [] for student_id in student_ids}
    for entry in history:
        if entry.undone:
            continue
        if entry.type != HistoryType.SCORE or entry.target_type != TargetType.STUDENT:
            continue
        if entry.value <= 0:
            continue
        days.setdefault(entry.target_id, []).append(date_key_from_timestamp(entry.timestamp))
    return _summarise(days, exempt_dates)


def compute_attendance_streaks(
    records: Iterable[AttendanceRecord],
    exempt_dates: Collection[str],
    student_ids: Iterable[str],
) -> dict[str, StreakSummary]:
    """Attendance streaks per student, rebuilt from present attendance records."""
    days: dict[str, list[str]] = {student_id: [] for student_id in student_ids}
    for record in records:
        if record.status != AttendanceStatus.PRESENT:
            continue
        days.setdefault(record.student_id, []).append(record.date)
    return _summarise(days, exempt_dates)


def apply_streak_summaries(
    records: Mapping[str, GamificationRecord],
    student_ids: Iterable[str],
    score: Mapping[str, StreakSummary],
    attendance: Mapping[str, StreakSummary],
) -> dict[str, GamificationRecord]:
    """Overwrite the streak fields of each student's record with recomputed values.

    Returns the updated records for student_ids only; students without a record
    get a default one. Students missing from a summary keep their fields.
    """
    updated: dict[str, GamificationRecord] = {}
    for student_id in student_ids:
        record = records.get(student_id) or create_default_record(student_id)
        score_summary = score.get(student_id)
        if score_summary is not None:
            record = replace(
                record,
                current_streak=score_summary.current,
                longest_streak=score_summary.longest,
                last_positive_scoring_date=score_summary.last_date,
            )
        attendance_summary = attendance.get(student_id)
        if attendance_summary is not None:
            record = replace(
                record,
                attendance_streak=attendance_summary.current,
                longest_attendance_streak=attendance_summary.longest,
                last_attendance_date=attendance_summary.last_date,
            )
        updated[student_id] = record
    logger.debug("Recomputed streaks for %d students", len(updated))
    return updated
