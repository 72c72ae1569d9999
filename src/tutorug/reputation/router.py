"""Reputation API endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.dependencies import get_current_user
from tutorug.database import get_session
from tutorug.db.models import User
from tutorug.dependencies import get_reputation_engine
from tutorug.reputation.engine import AwardResult, ReputationEngine
from tutorug.reputation.schemas import (
    AwardResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LevelEntry,
    LevelsResponse,
    PositionResponse,
    ReputationSummaryResponse,
    WeeklyProgressResponse,
)

router = APIRouter(prefix="/api/v1/reputation", tags=["Reputation"])


def award_response(result: AwardResult) -> AwardResponse:
    data = asdict(result)
    data.pop("previous_level", None)
    return AwardResponse(**data)


@router.get("/levels", response_model=LevelsResponse)
async def list_levels(engine: ReputationEngine = Depends(get_reputation_engine)):
    """Level and rank thresholds."""
    return LevelsResponse(
        levels=[
            LevelEntry(level=i + 1, points_required=required)
            for i, required in enumerate(engine.config.level_thresholds)
        ],
        ranks=dict(engine.config.rank_thresholds),
    )


@router.get("/me", response_model=ReputationSummaryResponse)
async def my_reputation(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    engine: ReputationEngine = Depends(get_reputation_engine),
):
    return ReputationSummaryResponse(**await engine.summary(db, user.id))


@router.get("/me/position", response_model=PositionResponse)
async def my_position(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    engine: ReputationEngine = Depends(get_reputation_engine),
):
    return PositionResponse(position=await engine.get_leaderboard_position(db, user.id))


@router.get("/me/weekly-progress", response_model=WeeklyProgressResponse)
async def my_weekly_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    engine: ReputationEngine = Depends(get_reputation_engine),
):
    return WeeklyProgressResponse(**await engine.get_weekly_progress(db, user.id))


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    timeframe: str = Query("all", pattern="^(all|weekly|monthly)$"),
    limit: int = Query(50, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    engine: ReputationEngine = Depends(get_reputation_engine),
):
    entries = await engine.get_leaderboard(db, limit=limit, timeframe=timeframe)
    return LeaderboardResponse(timeframe=timeframe, entries=[LeaderboardEntry(**e) for e in entries])


@router.get("/ranks")
async def rank_distribution(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    engine: ReputationEngine = Depends(get_reputation_engine),
) -> dict[str, int]:
    """Number of students in each rank."""
    return await engine.get_rank_distribution(db)
