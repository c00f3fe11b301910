"""Badge definitions and unlock checking for classquest.

A badge has exactly one trigger condition. Conditions are evaluated purely
against the current field values of a GamificationRecord; no history replay.
Rule sets are user-authored, so a condition this module does not understand
is treated as never satisfied instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from classquest.models import GamificationRecord

logger = logging.getLogger(__name__)


# ── Conditions ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FirstScore:
    type = "first_score"


@dataclass(frozen=True)
class TotalXp:
    xp: int
    type = "total_xp"


@dataclass(frozen=True)
class LevelReached:
    level: int
    type = "level_reached"


@dataclass(frozen=True)
class StreakDays:
    days: int
    type = "streak_days"


@dataclass(frozen=True)
class ScoreCount:
    count: int
    type = "score_count"


@dataclass(frozen=True)
class ScoreItemCount:
    item_id: str
    count: int
    type = "score_item_count"


@dataclass(frozen=True)
class RewardRedeemed:
    count: int
    type = "reward_redeemed"


@dataclass(frozen=True)
class PerfectQuizCount:
    count: int
    type = "perfect_quiz_count"


@dataclass(frozen=True)
class HelpingOthersCount:
    count: int
    type = "helping_others_count"


@dataclass(frozen=True)
class AttendanceDays:
    days: int
    type = "attendance_days"


@dataclass(frozen=True)
class UnknownCondition:
    """A condition whose type tag is not recognised. Never satisfied."""

    type: str
    raw: dict = field(default_factory=dict, compare=False)


BadgeCondition = Union[
    FirstScore,
    TotalXp,
    LevelReached,
    StreakDays,
    ScoreCount,
    ScoreItemCount,
    RewardRedeemed,
    PerfectQuizCount,
    HelpingOthersCount,
    AttendanceDays,
    UnknownCondition,
]


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    name_en: str
    emoji: str
    description: str
    description_en: str
    category: str  # streak | score | academic | social | milestone | attendance | custom
    condition: BadgeCondition
    bonus_points: int = 0
    is_custom: bool = False


@dataclass
class BadgeStatus:
    definition: BadgeDefinition
    progress: float  # 0.0 to 1.0
    unlocked: bool


# ── Current value and target per condition kind ───────────────────────────────

# Each handler returns (current_value, target) for a record.
_Measure = Callable[[Any, GamificationRecord], tuple[int, int]]

_MEASURES: dict[type, _Measure] = {
    FirstScore: lambda c, r: (r.total_positive_scores, 1),
    TotalXp: lambda c, r: (r.xp, c.xp),
    LevelReached: lambda c, r: (r.level, c.level),
    StreakDays: lambda c, r: (max(r.current_streak, r.longest_streak), c.days),
    ScoreCount: lambda c, r: (r.total_positive_scores, c.count),
    ScoreItemCount: lambda c, r: ((r.score_item_counts or {}).get(c.item_id, 0), c.count),
    RewardRedeemed: lambda c, r: (r.reward_redeemed_count, c.count),
    PerfectQuizCount: lambda c, r: (r.perfect_quiz_count, c.count),
    HelpingOthersCount: lambda c, r: (r.helping_others_count, c.count),
    AttendanceDays: lambda c, r: (r.attendance_days, c.days),
}


def _measure(condition: BadgeCondition, record: GamificationRecord) -> tuple[int, int] | None:
    handler = _MEASURES.get(type(condition))
    if handler is None:
        logger.warning("Skipping badge condition of unknown type %r", getattr(condition, "type", condition))
        return None
    return handler(condition, record)


def is_satisfied(condition: BadgeCondition, record: GamificationRecord) -> bool:
    """Return True if the record currently meets the condition."""
    measured = _measure(condition, record)
    if measured is None:
        return False
    current, target = measured
    return current >= target


def badge_progress(condition: BadgeCondition, record: GamificationRecord) -> float:
    """Progress toward the condition as min(current/target, 1.0)."""
    measured = _measure(condition, record)
    if measured is None:
        return 0.0
    current, target = measured
    if target <= 0:
        return 1.0
    return min(current / target, 1.0)


# ── Evaluation ────────────────────────────────────────────────────────────────


def evaluate_badges(record: GamificationRecord, badges: Sequence[BadgeDefinition]) -> list[str]:
    """Return ids of badges newly satisfied by the record, in rule order.

    A badge already in record.unlocked_badge_ids is never returned again.
    """
    unlocked = set(record.unlocked_badge_ids)
    newly: list[str] = []
    for badge in badges:
        if badge.id in unlocked or badge.id in newly:
            continue
        if is_satisfied(badge.condition, record):
            newly.append(badge.id)
    return newly


def get_badge_by_id(badge_id: str, badges: Sequence[BadgeDefinition]) -> BadgeDefinition | None:
    """Find a badge definition by id."""
    return next((b for b in badges if b.id == badge_id), None)


def check_badges(record: GamificationRecord, badges: Sequence[BadgeDefinition]) -> list[BadgeStatus]:
    """Return unlock state and progress for every badge in the rule set."""
    unlocked = set(record.unlocked_badge_ids)
    results: list[BadgeStatus] = []
    for badge in badges:
        is_unlocked = badge.id in unlocked
        progress = 1.0 if is_unlocked else badge_progress(badge.condition, record)
        results.append(BadgeStatus(definition=badge, progress=progress, unlocked=is_unlocked))
    return results


def get_closest_badges(statuses: list[BadgeStatus], n: int = 3) -> list[BadgeStatus]:
    """Return the N locked badges closest to being unlocked (highest progress)."""
    in_progress = [s for s in statuses if not s.unlocked]
    in_progress.sort(key=lambda s: s.progress, reverse=True)
    return in_progress[:n]


# ── Serialisation of user-authored rule sets ──────────────────────────────────

_CONDITION_TYPES: dict[str, tuple[type, tuple[str, ...]]] = {
    "first_score": (FirstScore, ()),
    "total_xp": (TotalXp, ("xp",)),
    "level_reached": (LevelReached, ("level",)),
    "streak_days": (StreakDays, ("days",)),
    "score_count": (ScoreCount, ("count",)),
    "score_item_count": (ScoreItemCount, ("item_id", "count")),
    "reward_redeemed": (RewardRedeemed, ("count",)),
    "perfect_quiz_count": (PerfectQuizCount, ("count",)),
    "helping_others_count": (HelpingOthersCount, ("count",)),
    "attendance_days": (AttendanceDays, ("days",)),
}


def condition_from_dict(data: dict[str, Any]) -> BadgeCondition:
    """Build a condition from its JSON form. Malformed input yields UnknownCondition."""
    type_tag = str(data.get("type", ""))
    entry = _CONDITION_TYPES.get(type_tag)
    if entry is None:
        return UnknownCondition(type=type_tag, raw=dict(data))
    cls, params = entry
    try:
        kwargs = {
            name: (str(data[name]) if name == "item_id" else int(data[name]))
            for name in params
        }
    except (KeyError, TypeError, ValueError):
        logger.warning("Malformed %s badge condition: %r", type_tag, data)
        return UnknownCondition(type=type_tag, raw=dict(data))
    return cls(**kwargs)


def condition_to_dict(condition: BadgeCondition) -> dict[str, Any]:
    """Inverse of condition_from_dict."""
    if isinstance(condition, UnknownCondition):
        return dict(condition.raw) or {"type": condition.type}
    _, params = _CONDITION_TYPES[condition.type]
    data: dict[str, Any] = {"type": condition.type}
    for name in params:
        data[name] = getattr(condition, name)
    return data


def badge_from_dict(data: dict[str, Any]) -> BadgeDefinition:
    return BadgeDefinition(
        id=data["id"],
        name=data.get("name", data["id"]),
        name_en=data.get("name_en", data.get("name", data["id"])),
        emoji=data.get("emoji", "🏅"),
        description=data.get("description", ""),
        description_en=data.get("description_en", data.get("description", "")),
        category=data.get("category", "custom"),
        condition=condition_from_dict(data.get("condition") or {}),
        bonus_points=int(data.get("bonus_points") or 0),
        is_custom=bool(data.get("is_custom", False)),
    )


def badge_to_dict(badge: BadgeDefinition) -> dict[str, Any]:
    return {
        "id": badge.id,
        "name": badge.name,
        "name_en": badge.name_en,
        "emoji": badge.emoji,
        "description": badge.description,
        "description_en": badge.description_en,
        "category": badge.category,
        "condition": condition_to_dict(badge.condition),
        "bonus_points": badge.bonus_points,
        "is_custom": badge.is_custom,
    }


# ── Default rule set ──────────────────────────────────────────────────────────

DEFAULT_BADGES: list[BadgeDefinition] = [
    # Milestones
    BadgeDefinition(
        id="first-score",
        name="初次得分",
        name_en="First Score",
        emoji="⭐",
        description="第一次获得分数",
        description_en="Earned your first score",
        category="milestone",
        condition=FirstScore(),
        bonus_points=5,
    ),
    BadgeDefinition(
        id="xp-100",
        name="百分学者",
        name_en="Century Scholar",
        emoji="💯",
        description="累计获得100 XP",
        description_en="Accumulated 100 XP",
        category="milestone",
        condition=TotalXp(xp=100),
        bonus_points=10,
    ),
    BadgeDefinition(
        id="xp-500",
        name="知识勇者",
        name_en="Knowledge Hero",
        emoji="🦸",
        description="累计获得500 XP",
        description_en="Accumulated 500 XP",
        category="milestone",
        condition=TotalXp(xp=500),
        bonus_points=20,
    ),
    BadgeDefinition(
        id="xp-1000",
        name="传奇学者",
        name_en="Legendary Scholar",
        emoji="🌟",
        description="累计获得1000 XP",
        description_en="Accumulated 1000 XP",
        category="milestone",
        condition=TotalXp(xp=1000),
        bonus_points=50,
    ),
    BadgeDefinition(
        id="level-3",
        name="战士觉醒",
        name_en="Warrior Awakened",
        emoji="⚔️",
        description="达到战士等级",
        description_en="Reached Warrior level",
        category="milestone",
        condition=LevelReached(level=3),
        bonus_points=15,
    ),
    BadgeDefinition(
        id="level-6",
        name="传说降临",
        name_en="Legend Arrives",
        emoji="👑",
        description="达到传说等级",
        description_en="Reached Legend level",
        category="milestone",
        condition=LevelReached(level=6),
        bonus_points=100,
    ),
    BadgeDefinition(
        id="first-reward",
        name="第一次兑换",
        name_en="First Redemption",
        emoji="🎁",
        description="第一次兑换礼物",
        description_en="Redeemed your first reward",
        category="milestone",
        condition=RewardRedeemed(count=1),
        bonus_points=5,
    ),
    # Streaks
    BadgeDefinition(
        id="streak-3",
        name="三连胜",
        name_en="3-Day Streak",
        emoji="🔥",
        description="连续3天获得正分",
        description_en="3 consecutive days of positive scoring",
        category="streak",
        condition=StreakDays(days=3),
        bonus_points=5,
    ),
    BadgeDefinition(
        id="streak-7",
        name="周冠军",
        name_en="7-Day Streak",
        emoji="🔥",
        description="连续7天获得正分",
        description_en="7 consecutive days of positive scoring",
        category="streak",
        condition=StreakDays(days=7),
        bonus_points=10,
    ),
    BadgeDefinition(
        id="streak-14",
        name="双周达人",
        name_en="14-Day Streak",
        emoji="💪",
        description="连续14天获得正分",
        description_en="14 consecutive days of positive scoring",
        category="streak",
        condition=StreakDays(days=14),
        bonus_points=20,
    ),
    BadgeDefinition(
        id="streak-30",
        name="月度之星",
        name_en="30-Day Streak",
        emoji="🏅",
        description="连续30天获得正分",
        description_en="30 consecutive days of positive scoring",
        category="streak",
        condition=StreakDays(days=30),
        bonus_points=50,
    ),
    # Academic
    BadgeDefinition(
        id="perfect-quiz-3",
        name="满分达人",
        name_en="Perfect Quiz Master",
        emoji="📝",
        description="3次测验满分",
        description_en="Got perfect quiz score 3 times",
        category="academic",
        condition=PerfectQuizCount(count=3),
        bonus_points=15,
    ),
    BadgeDefinition(
        id="score-50",
        name="积分达人",
        name_en="50 Scores Earned",
        emoji="🎯",
        description="累计获得50次加分",
        description_en="Received 50 positive scores",
        category="score",
        condition=ScoreCount(count=50),
        bonus_points=20,
    ),
    # Social
    BadgeDefinition(
        id="helper",
        name="小帮手",
        name_en="Helper",
        emoji="🤝",
        description="5次助人为乐",
        description_en="Helped others 5 times",
        category="social",
        condition=HelpingOthersCount(count=5),
        bonus_points=10,
    ),
    BadgeDefinition(
        id="team-player",
        name="团队之星",
        name_en="Team Player",
        emoji="🌈",
        description="参与10次组别活动",
        description_en="Participated in 10 group activities",
        category="social",
        condition=ScoreCount(count=10),
        bonus_points=10,
    ),
]
