"""Level table and XP progression. Pure functions, no side effects."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LevelDefinition:
    level: int
    name: str
    name_en: str
    emoji: str
    xp_required: int


@dataclass(frozen=True)
class XpProgress:
    points_into_level: int
    points_needed_for_next: int
    percent: float


LEVELS: list[LevelDefinition] = [
    LevelDefinition(1, "初心者", "Novice", "🌱", 0),
    LevelDefinition(2, "学徒", "Apprentice", "📖", 50),
    LevelDefinition(3, "战士", "Warrior", "⚔️", 150),
    LevelDefinition(4, "骑士", "Knight", "🛡️", 350),
    LevelDefinition(5, "大师", "Master", "🏆", 700),
    LevelDefinition(6, "传说", "Legend", "👑", 1200),
]

MAX_LEVEL = LEVELS[-1].level


def level_for_xp(xp: int) -> LevelDefinition:
    """Return the highest level whose threshold is <= xp (level 1 for xp <= 0)."""
    for definition in reversed(LEVELS):
        if xp >= definition.xp_required:
            return definition
    return LEVELS[0]


def level_from_xp(xp: int) -> int:
    """Given total XP, return the level number."""
    return level_for_xp(xp).level


def get_level(level: int) -> LevelDefinition:
    """Return the definition for a level number, clamped to the table."""
    level = max(1, min(level, MAX_LEVEL))
    return LEVELS[level - 1]


def xp_progress(xp: int) -> XpProgress:
    """Return progress through the current level.

    At the max level the result is degenerate: (0, 0, 100.0).
    """
    current = level_for_xp(xp)
    if current.level >= MAX_LEVEL:
        return XpProgress(points_into_level=0, points_needed_for_next=0, percent=100.0)

    following = LEVELS[current.level]
    into = max(0, xp - current.xp_required)
    needed = following.xp_required - current.xp_required
    return XpProgress(
        points_into_level=into,
        points_needed_for_next=needed,
        percent=min(100.0, into / needed * 100),
    )
