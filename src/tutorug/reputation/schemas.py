"""Pydantic response models for reputation endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AwardResponse(BaseModel):
    points_added: int
    new_total: int
    level_changed: bool
    rank_changed: bool
    new_level: int
    new_rank: str
    new_badges: list[str] = []
    new_achievements: list[str] = []
    bonus_points: int = 0


class ReputationSummaryResponse(BaseModel):
    user_id: int
    total_points: int
    weekly_points: int
    monthly_points: int
    current_level: int
    points_into_level: int
    points_for_level: int
    rank: str
    streak_days: int
    longest_streak: int
    badges_earned: list[str]
    achievements_unlocked: list[str]
    last_activity_date: datetime | None = None
    leaderboard_position: int


class LeaderboardEntry(BaseModel):
    position: int
    user_id: int
    display_name: str
    current_class: str
    total_points: int
    current_level: int
    rank: str
    last_activity_date: datetime | None = None


class LeaderboardResponse(BaseModel):
    timeframe: str
    entries: list[LeaderboardEntry]


class PositionResponse(BaseModel):
    position: int


class WeeklyProgressResponse(BaseModel):
    week_start: datetime
    points_this_week: int
    quizzes_this_week: int
    target_points: int
    target_quizzes: int


class LevelEntry(BaseModel):
    level: int
    points_required: int


class LevelsResponse(BaseModel):
    levels: list[LevelEntry]
    ranks: dict[str, int]
