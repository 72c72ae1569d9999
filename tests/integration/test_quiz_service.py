"""Quiz submission feeding the reputation engine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tutorug.errors import InvalidInput
from tutorug.quizzes.activity import QuizActivityCounter
from tutorug.quizzes.service import submit_quiz_result
from tutorug.reputation.engine import ReputationEngine

T0 = datetime(2026, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def quiz_engine(session_factory, locks) -> ReputationEngine:
    return ReputationEngine(session_factory, activity=QuizActivityCounter(), locks=locks)


class TestSubmitQuiz:
    @pytest.mark.asyncio
    async def test_perfect_score(self, quiz_engine, make_user):
        user = await make_user(now=T0)

        result = await submit_quiz_result(quiz_engine, user.id, "bio-1", "Cells", score=100, now=T0)

        assert result["passed"] is True
        assert result["points_earned"] == 185
        assert result["streak_days"] == 1
        assert result["award"].new_total == 185
        assert result["award"].new_level == 2

    @pytest.mark.asyncio
    async def test_failed_quiz_still_earns_completion(self, quiz_engine, make_user):
        user = await make_user(now=T0)

        result = await submit_quiz_result(quiz_engine, user.id, "bio-1", "Cells", score=40, now=T0)

        assert result["passed"] is False
        assert result["points_earned"] == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", [-1, 101, 55.5, True])
    async def test_invalid_score(self, session_factory, quiz_engine, make_user, score):
        user = await make_user(now=T0)

        with pytest.raises(InvalidInput):
            await submit_quiz_result(quiz_engine, user.id, "bio-1", "Cells", score=score, now=T0)

        async with session_factory() as db:
            assert await QuizActivityCounter().counts(db, user.id) == {"quizzes_completed": 0, "perfect_scores": 0}

    @pytest.mark.asyncio
    async def test_tenth_quiz_unlocks_achievement(self, quiz_engine, make_user):
        user = await make_user(now=T0)
        for i in range(9):
            result = await submit_quiz_result(quiz_engine, user.id, f"q{i}", "Drill", score=40, now=T0)
            assert result["award"].new_achievements == []

        result = await submit_quiz_result(quiz_engine, user.id, "q9", "Drill", score=40, now=T0)

        assert result["award"].new_achievements == ["quiz_taker_10"]
        assert result["award"].new_total == 100

    @pytest.mark.asyncio
    async def test_daily_quizzes_build_streak(self, quiz_engine, make_user):
        user = await make_user(now=T0)
        for day in range(3):
            result = await submit_quiz_result(
                quiz_engine, user.id, f"day-{day}", "Daily", score=60, now=T0 + timedelta(days=day, hours=9)
            )

        assert result["streak_days"] == 3

    @pytest.mark.asyncio
    async def test_counts_completed_since(self, session_factory, quiz_engine, make_user):
        user = await make_user(now=T0)
        await submit_quiz_result(quiz_engine, user.id, "old", "Old", score=60, now=T0 - timedelta(days=10))
        await submit_quiz_result(quiz_engine, user.id, "new", "New", score=100, now=T0)

        async with session_factory() as db:
            counter = QuizActivityCounter()
            assert await counter.completed_since(db, user.id, T0 - timedelta(days=1)) == 1
            assert await counter.counts(db, user.id) == {"quizzes_completed": 2, "perfect_scores": 1}
