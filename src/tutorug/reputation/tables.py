"""Points, level and rank tables.

Pure lookups over an immutable ``ReputationConfig`` so the engine never reads
module-level mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

POINTS: Mapping[str, int] = MappingProxyType({
    "QUIZ_COMPLETED": 10,
    "QUIZ_PASSED": 25,
    "QUIZ_HIGH_SCORE": 50,
    "QUIZ_PERFECT": 100,
    "TOPIC_COMPLETED": 5,
    "SUBTOPIC_COMPLETED": 2,
    "AI_CHAT_MESSAGE": 1,
    "STUDY_STREAK_DAY": 3,
    "COMMUNITY_POST": 5,
    "HELPFUL_RESPONSE": 10,
    "QUESTION_ANSWERED": 15,
    "FIRST_QUIZ": 20,
    "WEEKLY_STREAK_7": 50,
    "MONTHLY_STREAK_30": 200,
    "SUBJECT_MASTER": 100,
    "HIGH_SCORER": 75,
})

LEVEL_THRESHOLDS: tuple[int, ...] = (0, 100, 250, 500, 1000, 1750, 2750, 4000, 5500, 7500)

# Ordered low to high.
RANK_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("learner", 0),
    ("helper", 500),
    ("tutor", 1500),
    ("expert", 3000),
    ("master", 6000),
)

RANKS: tuple[str, ...] = tuple(name for name, _ in RANK_THRESHOLDS)


@dataclass(frozen=True)
class BadgeRule:
    """Badge unlocked once ``metric`` on the record reaches ``threshold``.

    ``metric`` is one of ``streak_days``, ``longest_streak``, ``total_points``
    or ``current_level``.
    """

    slug: str
    metric: str
    threshold: int
    bonus: int = 25


@dataclass(frozen=True)
class AchievementRule:
    """Achievement unlocked once an activity count reaches ``threshold``.

    ``metric`` is one of ``quizzes_completed`` or ``perfect_scores``.
    """

    slug: str
    metric: str
    threshold: int


DEFAULT_BADGES: tuple[BadgeRule, ...] = (
    BadgeRule("week_warrior", "streak_days", 7),
    BadgeRule("month_master", "streak_days", 30),
    BadgeRule("century_streak", "longest_streak", 100),
    BadgeRule("point_hoarder_1000", "total_points", 1000),
    BadgeRule("point_hoarder_5000", "total_points", 5000),
    BadgeRule("level_5_climber", "current_level", 5),
    BadgeRule("level_10_achiever", "current_level", 10),
)

DEFAULT_ACHIEVEMENTS: tuple[AchievementRule, ...] = (
    AchievementRule("quiz_taker_10", "quizzes_completed", 10),
    AchievementRule("quiz_taker_50", "quizzes_completed", 50),
    AchievementRule("perfect_scorer_5", "perfect_scores", 5),
)


@dataclass(frozen=True)
class ReputationConfig:
    """Immutable tables handed to the engine at construction."""

    points: Mapping[str, int] = field(default_factory=lambda: POINTS)
    level_thresholds: tuple[int, ...] = LEVEL_THRESHOLDS
    rank_thresholds: tuple[tuple[str, int], ...] = RANK_THRESHOLDS
    badges: tuple[BadgeRule, ...] = DEFAULT_BADGES
    achievements: tuple[AchievementRule, ...] = DEFAULT_ACHIEVEMENTS
    weekly_points_target: int = 100
    weekly_quiz_target: int = 5


DEFAULT_CONFIG = ReputationConfig()


def compute_level(total_points: int, thresholds: tuple[int, ...] = LEVEL_THRESHOLDS) -> dict:
    """Compute level info from total points.

    Level is the 1-based index of the highest threshold reached; points past the
    last threshold stay at the max level.
    """
    index = 0
    for i, required in enumerate(thresholds):
        if total_points >= required:
            index = i

    current = thresholds[index]
    is_max = index == len(thresholds) - 1
    next_required = current if is_max else thresholds[index + 1]
    points_for_level = next_required - current

    return {
        "level": index + 1,
        "points_into_level": total_points - current,
        # At max level, avoid division by zero in progress bars
        "points_for_level": points_for_level or 1,
        "next_level": index + 1 if is_max else index + 2,
        "max_level": is_max,
    }


def compute_rank(
    total_points: int,
    thresholds: tuple[tuple[str, int], ...] = RANK_THRESHOLDS,
) -> str:
    """Highest rank whose threshold ``total_points`` reaches (ties go to the higher rank)."""
    rank = thresholds[0][0]
    for name, required in thresholds:
        if total_points >= required:
            rank = name
    return rank
