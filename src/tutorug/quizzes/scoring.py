"""Points earned for a completed quiz."""

from __future__ import annotations

from collections.abc import Mapping

from tutorug.reputation.tables import POINTS

HIGH_SCORE = 90
PERFECT_SCORE = 100


def quiz_points(score: int, passing_score: int, points: Mapping[str, int] = POINTS) -> int:
    """Completion points plus pass / high-score / perfect bonuses (they stack)."""
    earned = points["QUIZ_COMPLETED"]
    if score >= passing_score:
        earned += points["QUIZ_PASSED"]
    if score >= HIGH_SCORE:
        earned += points["QUIZ_HIGH_SCORE"]
    if score == PERFECT_SCORE:
        earned += points["QUIZ_PERFECT"]
    return earned
