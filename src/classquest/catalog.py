"""Score items and rewards a teacher can hand out."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

# Counters on the gamification record that a score item can feed.
TRACK_PERFECT_QUIZ = "perfect_quiz"
TRACK_HELPING_OTHERS = "helping_others"


@dataclass(frozen=True)
class ScoreItem:
    id: str
    name: str
    name_en: str
    value: int
    category: str  # classroom | academic | behavior | custom
    tracks: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreItem:
        return cls(**data)


@dataclass(frozen=True)
class Reward:
    id: str
    name: str
    name_en: str
    cost: int
    min_level: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reward:
        return cls(**data)


DEFAULT_SCORE_ITEMS: list[ScoreItem] = [
    ScoreItem("default-1", "积极发言", "Active Participation", 1, "classroom"),
    ScoreItem("default-2", "上课认真", "Attentive in Class", 1, "classroom"),
    ScoreItem("default-3", "迟到", "Late Arrival", -1, "classroom"),
    ScoreItem("default-4", "说话", "Talking in Class", -1, "classroom"),
    ScoreItem("default-5", "测验满分", "Perfect Quiz Score", 3, "academic", tracks=TRACK_PERFECT_QUIZ),
    ScoreItem("default-6", "作业优秀", "Excellent Homework", 2, "academic"),
    ScoreItem("default-7", "进步奖励", "Improvement Award", 2, "academic"),
    ScoreItem("default-8", "没做作业", "Missing Homework", -2, "academic"),
    ScoreItem("default-9", "助人为乐", "Helping Others", 2, "behavior", tracks=TRACK_HELPING_OTHERS),
    ScoreItem("default-10", "班级贡献", "Class Contribution", 3, "behavior"),
    ScoreItem("default-11", "违反纪律", "Discipline Violation", -2, "behavior"),
]

DEFAULT_REWARDS: list[Reward] = [
    Reward("reward-1", "贴纸/印章", "Sticker / Stamp", 10),
    Reward("reward-2", "老师表扬信", "Teacher Praise Letter", 15),
    Reward("reward-3", "选座位一天", "Choose Seat for a Day", 15),
    Reward("reward-5", "免一次作业", "Homework Pass", 30),
    Reward("reward-6", "午休多10分钟券", "Extra 10min Break", 30, min_level=2),
    Reward("reward-10", "当小老师一节课", "Be the Mini Teacher", 50, min_level=2),
    Reward("reward-12", "当班长一天", "Class Monitor for a Day", 80, min_level=3),
    Reward("reward-16", "老师请喝饮料", "Teacher Buys a Drink", 150, min_level=4),
    Reward("reward-21", "书籍/课外读物", "Book / Reading Material", 350, min_level=5),
    Reward("reward-25", "和老师一起午餐", "Lunch with Teacher", 700, min_level=6),
]


def find_score_item(item_id: str, items: list[ScoreItem] | None = None) -> ScoreItem | None:
    """Look up a score item by id."""
    for item in items if items is not None else DEFAULT_SCORE_ITEMS:
        if item.id == item_id:
            return item
    return None


def find_reward(reward_id: str, rewards: list[Reward] | None = None) -> Reward | None:
    """Look up a reward by id."""
    for reward in rewards if rewards is not None else DEFAULT_REWARDS:
        if reward.id == reward_id:
            return reward
    return None
