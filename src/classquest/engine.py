"""Gamification engine for classquest.

Pure state transitions: each apply_* function takes the current record and an
event, and returns (next_record, notification_events). Nothing here reads the
clock, touches storage or mutates its input; the caller supplies the time in
ApplyContext and persists the returned record.

Order of work inside one operation:
1. Apply the base change (XP, counters) and recompute the level.
2. Update streaks.
3. Evaluate badges against the updated record and add their bonus XP once.
4. Recompute the level from the final XP. A single level_up event compares
   the level before the operation with the level after the bonus.
Events are returned as: level_up, streak_milestone, badge_earned...
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo

from classquest.badges import BadgeDefinition, evaluate_badges, get_badge_by_id
from classquest.catalog import TRACK_HELPING_OTHERS, TRACK_PERFECT_QUIZ, ScoreItem
from classquest.levels import level_for_xp, level_from_xp
from classquest.models import EventType, GamificationRecord, NotificationEvent
from classquest.streaks import date_key_from_timestamp, next_attendance_streak, update_score_streak

logger = logging.getLogger(__name__)

SCORE_STREAK_MILESTONES: tuple[int, ...] = (3, 7, 14, 30)
ATTENDANCE_STREAK_MILESTONES: tuple[int, ...] = (3, 7, 14, 30, 50, 100)

# XP (and classroom points) granted for one day of attendance
ATTENDANCE_XP = 1

Translate = Callable[[str, str], str]
ApplyResult = tuple[GamificationRecord, list[NotificationEvent]]


def english(zh: str, en: str) -> str:
    """Default translator: always the English text."""
    return en


@dataclass(frozen=True)
class ApplyContext:
    """Everything an engine call needs besides the record itself.

    The day a call counts towards is the calendar date of now as written. An
    aware now is converted to tz first when tz is given, so the same input
    yields the same day on every machine.
    """

    student_id: str
    student_name: str
    badges: Sequence[BadgeDefinition]
    now: datetime
    exempt_dates: Collection[str] = field(default_factory=frozenset)
    translate: Translate = english
    tz: tzinfo | None = None

    @property
    def today_key(self) -> str:
        return date_key_from_timestamp(self.now, self.tz)


# ── Event builders ────────────────────────────────────────────────────────────


def _level_up_event(ctx: ApplyContext, old_xp: int, new_xp: int) -> NotificationEvent | None:
    old = level_for_xp(old_xp)
    new = level_for_xp(new_xp)
    if new.level <= old.level:
        return None
    logger.debug("%s levelled up %d -> %d", ctx.student_id, old.level, new.level)
    return NotificationEvent(
        type=EventType.LEVEL_UP,
        student_id=ctx.student_id,
        student_name=ctx.student_name,
        timestamp=ctx.now,
        old_level=old.level,
        new_level=new.level,
        level_name=ctx.translate(new.name, new.name_en),
        level_emoji=new.emoji,
    )


def _milestone_event(
    ctx: ApplyContext, streak: int, milestones: Sequence[int], kind: str
) -> NotificationEvent | None:
    """First milestone equal to the streak, checked in ascending order."""
    for milestone in sorted(milestones):
        if streak == milestone:
            return NotificationEvent(
                type=EventType.STREAK_MILESTONE,
                student_id=ctx.student_id,
                student_name=ctx.student_name,
                timestamp=ctx.now,
                streak_days=milestone,
                streak_kind=kind,
            )
    return None


def _apply_badge_rewards(
    record: GamificationRecord, ctx: ApplyContext
) -> tuple[GamificationRecord, list[NotificationEvent], int]:
    """Unlock newly satisfied badges. Returns (record, events, total_bonus_xp)."""
    new_ids = evaluate_badges(record, ctx.badges)
    if not new_ids:
        return record, [], 0

    unlocked_at = dict(record.badge_unlocked_at)
    for badge_id in new_ids:
        unlocked_at[badge_id] = ctx.now
    updated = replace(
        record,
        unlocked_badge_ids=tuple(record.unlocked_badge_ids) + tuple(new_ids),
        badge_unlocked_at=unlocked_at,
    )

    events: list[NotificationEvent] = []
    bonus = 0
    for badge_id in new_ids:
        badge = get_badge_by_id(badge_id, ctx.badges)
        if badge is None:
            continue
        if badge.bonus_points > 0:
            bonus += badge.bonus_points
        logger.debug("%s earned badge %s (+%d)", ctx.student_id, badge.id, badge.bonus_points)
        events.append(
            NotificationEvent(
                type=EventType.BADGE_EARNED,
                student_id=ctx.student_id,
                student_name=ctx.student_name,
                timestamp=ctx.now,
                badge_id=badge.id,
                badge_name=ctx.translate(badge.name, badge.name_en),
                badge_emoji=badge.emoji,
                bonus_points=badge.bonus_points,
            )
        )
    return updated, events, bonus


def _settle(
    before: GamificationRecord,
    record: GamificationRecord,
    ctx: ApplyContext,
    milestone: NotificationEvent | None = None,
) -> ApplyResult:
    """Badges, bonus XP and the final level check shared by every earning path."""
    record, badge_events, bonus = _apply_badge_rewards(record, ctx)
    if bonus > 0:
        record = replace(record, xp=record.xp + bonus)
    record = replace(record, level=level_from_xp(record.xp))

    events: list[NotificationEvent] = []
    level_up = _level_up_event(ctx, before.xp, record.xp)
    if level_up is not None:
        events.append(level_up)
    if milestone is not None:
        events.append(milestone)
    events.extend(badge_events)
    return record, events


# ── Operations ────────────────────────────────────────────────────────────────


def apply_positive_score(
    record: GamificationRecord,
    amount: int,
    ctx: ApplyContext,
    item: ScoreItem | None = None,
) -> ApplyResult:
    """Award a positive score. amount <= 0 is a no-op.

    Several positive scores on one calendar day count as a single streak day.
    When the score came from a catalog item, its per-item counter (and the
    counter it tracks, if any) is incremented before badges are checked.
    """
    if amount <= 0:
        return record, []

    item_counts = dict(record.score_item_counts)
    perfect_quiz = record.perfect_quiz_count
    helping_others = record.helping_others_count
    if item is not None:
        item_counts[item.id] = item_counts.get(item.id, 0) + 1
        if item.tracks == TRACK_PERFECT_QUIZ:
            perfect_quiz += 1
        elif item.tracks == TRACK_HELPING_OTHERS:
            helping_others += 1

    new_xp = record.xp + amount
    updated = replace(
        record,
        xp=new_xp,
        level=level_from_xp(new_xp),
        total_positive_scores=record.total_positive_scores + 1,
        score_item_counts=item_counts,
        perfect_quiz_count=perfect_quiz,
        helping_others_count=helping_others,
    )
    updated = update_score_streak(updated, ctx.today_key, ctx.exempt_dates)

    milestone = _milestone_event(ctx, updated.current_streak, SCORE_STREAK_MILESTONES, "score")

    return _settle(record, updated, ctx, milestone)


def apply_reward_redemption(record: GamificationRecord, ctx: ApplyContext) -> ApplyResult:
    """Count a reward redemption. Cost and affordability are the caller's concern."""
    updated = replace(record, reward_redeemed_count=record.reward_redeemed_count + 1)
    return _settle(record, updated, ctx)


def apply_attendance_today(record: GamificationRecord, today_key: str, ctx: ApplyContext) -> ApplyResult:
    """Check a student in for today.

    A second check-in for the date already stored in last_attendance_date is a
    no-op, so a repeated call can never double-count the day.
    """
    if record.last_attendance_date == today_key:
        logger.debug("%s already checked in on %s", ctx.student_id, today_key)
        return record, []

    streak = next_attendance_streak(record, today_key, ctx.exempt_dates)
    new_xp = record.xp + ATTENDANCE_XP
    updated = replace(
        record,
        xp=new_xp,
        level=level_from_xp(new_xp),
        attendance_days=record.attendance_days + 1,
        last_attendance_date=today_key,
        attendance_streak=streak,
        longest_attendance_streak=max(record.longest_attendance_streak, streak),
        total_positive_scores=record.total_positive_scores + 1,
    )
    # Attendance is also a positive-scoring day.
    updated = update_score_streak(updated, today_key, ctx.exempt_dates)

    milestone = _milestone_event(ctx, streak, ATTENDANCE_STREAK_MILESTONES, "attendance")
    return _settle(record, updated, ctx, milestone)


def apply_attendance_makeup(record: GamificationRecord, ctx: ApplyContext) -> ApplyResult:
    """Backfill attendance for a past day.

    The live attendance streak and last_attendance_date are left alone; the
    caller recomputes streaks from history afterwards.
    """
    new_xp = record.xp + ATTENDANCE_XP
    updated = replace(
        record,
        xp=new_xp,
        level=level_from_xp(new_xp),
        attendance_days=record.attendance_days + 1,
        total_positive_scores=record.total_positive_scores + 1,
    )
    return _settle(record, updated, ctx)


def apply_attendance_revoke(record: GamificationRecord, revoked_key: str, today_key: str) -> ApplyResult:
    """Take back one day of attendance. Counters floor at zero.

    Revoking today's check-in also steps the live attendance streak back and
    clears its anchor date. Badges are never revoked and no events are emitted.
    """
    new_xp = max(0, record.xp - ATTENDANCE_XP)
    updated = replace(
        record,
        xp=new_xp,
        level=level_from_xp(new_xp),
        attendance_days=max(0, record.attendance_days - 1),
        total_positive_scores=max(0, record.total_positive_scores - 1),
    )
    if revoked_key == today_key and record.last_attendance_date == today_key:
        updated = replace(
            updated,
            attendance_streak=max(0, record.attendance_streak - 1),
            last_attendance_date=None,
        )
    return updated, []
