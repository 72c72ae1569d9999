"""Quiz result endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tutorug.auth.dependencies import require_subscription
from tutorug.db.models import User
from tutorug.dependencies import get_reputation_engine
from tutorug.quizzes.service import submit_quiz_result
from tutorug.reputation.engine import ReputationEngine
from tutorug.reputation.router import award_response
from tutorug.reputation.schemas import AwardResponse

router = APIRouter(prefix="/api/v1/quizzes", tags=["Quizzes"])


class QuizResultRequest(BaseModel):
    quiz_title: str = Field(default="", max_length=255)
    score: int = Field(ge=0, le=100)
    passing_score: int = Field(default=50, ge=0, le=100)


class QuizResultResponse(BaseModel):
    attempt_id: int
    score: int
    passed: bool
    points_earned: int
    streak_days: int
    award: AwardResponse


@router.post("/{quiz_id}/results", response_model=QuizResultResponse)
async def submit_result(
    quiz_id: str,
    body: QuizResultRequest,
    user: User = Depends(require_subscription),
    engine: ReputationEngine = Depends(get_reputation_engine),
):
    """Record a graded attempt and award quiz points."""
    result = await submit_quiz_result(
        engine,
        user.id,
        quiz_id,
        body.quiz_title,
        body.score,
        body.passing_score,
    )
    result["award"] = award_response(result["award"])
    return QuizResultResponse(**result)
