"""Quiz-attempt counts for achievement checks and weekly progress."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.db.models import QuizAttempt
from tutorug.quizzes.scoring import PERFECT_SCORE

COMPLETED = "completed"


class QuizActivityCounter:
    async def counts(self, db: AsyncSession, user_id: int) -> dict[str, int]:
        result = await db.execute(
            select(
                func.count(QuizAttempt.id),
                func.coalesce(func.sum(case((QuizAttempt.score == PERFECT_SCORE, 1), else_=0)), 0),
            ).where(QuizAttempt.user_id == user_id, QuizAttempt.status == COMPLETED)
        )
        completed, perfect = result.one()
        return {"quizzes_completed": int(completed or 0), "perfect_scores": int(perfect or 0)}

    async def completed_since(self, db: AsyncSession, user_id: int, since: datetime) -> int:
        count = await db.scalar(
            select(func.count(QuizAttempt.id)).where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.status == COMPLETED,
                QuizAttempt.completed_at >= since,
            )
        )
        return int(count or 0)
