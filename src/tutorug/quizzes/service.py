"""Quiz result submission: the main producer of reputation events."""

from __future__ import annotations

import logging
from datetime import datetime

from tutorug.db.models import QuizAttempt
from tutorug.db.types import utcnow
from tutorug.errors import InvalidInput
from tutorug.quizzes.activity import COMPLETED
from tutorug.quizzes.scoring import quiz_points
from tutorug.reputation.engine import ReputationEngine

logger = logging.getLogger(__name__)


def _validate_score(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise InvalidInput(f"{name} must be an integer between 0 and 100")
    return value


async def submit_quiz_result(
    engine: ReputationEngine,
    user_id: int,
    quiz_id: str,
    quiz_title: str,
    score: int,
    passing_score: int = 50,
    now: datetime | None = None,
) -> dict:
    """Record a scored attempt, advance the streak, then award points.

    The attempt is committed first so the achievement check counts it.
    """
    _validate_score("score", score)
    _validate_score("passing_score", passing_score)
    if not quiz_id:
        raise InvalidInput("quiz_id is required")
    if now is None:
        now = utcnow()

    async with engine.session_factory() as db:
        async with db.begin():
            attempt = QuizAttempt(
                user_id=user_id,
                quiz_id=quiz_id,
                quiz_title=quiz_title or quiz_id,
                score=score,
                passing_score=passing_score,
                status=COMPLETED,
                completed_at=now,
            )
            db.add(attempt)
            await db.flush()
            attempt_id = attempt.id

    streak = await engine.update_streak(user_id, now=now)
    points = quiz_points(score, passing_score, engine.config.points)
    award = await engine.award_points(user_id, points, f"Completed quiz: {quiz_title or quiz_id}", now=now)

    logger.info("User %s scored %d on quiz %s (+%d points)", user_id, score, quiz_id, points)
    return {
        "attempt_id": attempt_id,
        "score": score,
        "passed": score >= passing_score,
        "points_earned": points,
        "streak_days": streak.streak_days,
        "award": award,
    }
