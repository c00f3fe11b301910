"""Group reward and settlement arithmetic."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from classquest.catalog import Reward
from classquest.models import Group, Student

DEFAULT_SETTLEMENT_BONUS = 5


def split_group_reward_cost(cost: int, student_count: int) -> list[int]:
    """Split a cost as evenly as possible; the remainder goes to the first students.

    >>> split_group_reward_cost(10, 3)
    [4, 3, 3]
    """
    if student_count <= 0:
        return []
    share, remainder = divmod(cost, student_count)
    return [share + (1 if i < remainder else 0) for i in range(student_count)]


def can_group_redeem_reward(reward: Reward, students: Iterable[Student]) -> bool:
    """True if the members' combined points cover the reward cost."""
    return sum(s.score for s in students) >= reward.cost


def students_in_group(students: Iterable[Student], group_id: str) -> list[Student]:
    return [s for s in students if s.group_id == group_id]


def sort_groups_by_score(groups: Iterable[Group]) -> list[Group]:
    """Highest score first. Ties keep their original order."""
    return sorted(groups, key=lambda g: g.score or 0, reverse=True)


def compute_settlement_bonuses(groups: Sequence[Group], bonuses: Sequence[int]) -> list[tuple[str, int]]:
    """Pair each ranked group with its per-student bonus.

    Rank i gets bonuses[i]; ranks past the end reuse the last bonus, and an
    empty bonus list falls back to DEFAULT_SETTLEMENT_BONUS.
    """
    result: list[tuple[str, int]] = []
    for index, group in enumerate(groups):
        if index < len(bonuses):
            bonus = bonuses[index]
        elif bonuses:
            bonus = bonuses[-1]
        else:
            bonus = DEFAULT_SETTLEMENT_BONUS
        result.append((group.id, bonus))
    return result
