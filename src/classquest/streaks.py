"""Streak date arithmetic with exempt-day bridging.

Dates are handled as YYYY-MM-DD keys and compared by whole-day count, never by
timestamp, so time of day and timezone offsets cannot shift a streak.
"""

from __future__ import annotations

import calendar
from collections.abc import Collection
from dataclasses import replace
from datetime import date, datetime, timedelta, tzinfo

from classquest.models import GamificationRecord


def parse_date_key(key: str) -> date:
    """Parse a YYYY-MM-DD string to a date object."""
    return date.fromisoformat(key)


def to_date_key(d: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return d.isoformat()


def date_key_from_timestamp(ts: datetime, tz: tzinfo | None = None) -> str:
    """Collapse a timestamp to its calendar date key.

    The date is read off the timestamp's own wall clock. With tz, an aware
    timestamp is converted to that zone first. The host's local zone is never consulted.
    """
    if tz is not None and ts.tzinfo is not None:
        ts = ts.astimezone(tz)
    return ts.date().isoformat()


def days_between(last_key: str, next_key: str) -> int:
    """Whole calendar days from last_key to next_key (negative if next is earlier)."""
    return parse_date_key(next_key).toordinal() - parse_date_key(last_key).toordinal()


def is_consecutive(last_key: str, next_key: str, exempt_dates: Collection[str] = frozenset()) -> bool:
    """Return True if next_key continues a streak ending on last_key.

    Rules:
    - next <= last is never consecutive (same-day repeats are the caller's no-op)
    - a one-day gap is consecutive
    - a longer gap is consecutive only if every day strictly between is exempt
    """
    gap = days_between(last_key, next_key)
    if gap <= 0:
        return False
    if gap == 1:
        return True
    start = parse_date_key(last_key)
    for offset in range(1, gap):
        if to_date_key(start + timedelta(days=offset)) not in exempt_dates:
            return False
    return True


def update_score_streak(
    record: GamificationRecord,
    today_key: str,
    exempt_dates: Collection[str] = frozenset(),
) -> GamificationRecord:
    """Advance the positive-scoring streak for a scoring day.

    - First scoring day ever: streak 1
    - Already scored today: record returned unchanged
    - Consecutive (bridging exempt days): streak + 1, longest raised if needed
    - Otherwise: streak resets to 1
    """
    last = record.last_positive_scoring_date
    if last is None:
        return replace(
            record,
            current_streak=1,
            longest_streak=max(record.longest_streak, 1),
            last_positive_scoring_date=today_key,
        )

    if last == today_key:
        return record

    if is_consecutive(last, today_key, exempt_dates):
        streak = record.current_streak + 1
        return replace(
            record,
            current_streak=streak,
            longest_streak=max(record.longest_streak, streak),
            last_positive_scoring_date=today_key,
        )

    return replace(
        record,
        current_streak=1,
        longest_streak=max(record.longest_streak, 1),
        last_positive_scoring_date=today_key,
    )


def next_attendance_streak(
    record: GamificationRecord,
    today_key: str,
    exempt_dates: Collection[str] = frozenset(),
) -> int:
    """Attendance streak length after checking in on today_key."""
    last = record.last_attendance_date
    if last and is_consecutive(last, today_key, exempt_dates):
        return record.attendance_streak + 1
    return 1


def weekend_dates_for_month(year: int, month: int) -> list[str]:
    """Return every Saturday and Sunday of a month as date keys."""
    _, last_day = calendar.monthrange(year, month)
    keys: list[str] = []
    for day in range(1, last_day + 1):
        d = date(year, month, day)
        if d.weekday() >= 5:
            keys.append(to_date_key(d))
    return keys


def longest_run(sorted_keys: list[str], exempt_dates: Collection[str] = frozenset()) -> tuple[int, int]:
    """Walk sorted, de-duplicated date keys and return (final_run, longest_run)."""
    if not sorted_keys:
        return (0, 0)
    current = 1
    longest = 1
    for prev, curr in zip(sorted_keys, sorted_keys[1:]):
        if is_consecutive(prev, curr, exempt_dates):
            current += 1
        else:
            current = 1
        longest = max(longest, current)
    return (current, longest)
