"""Reputation engine: points, levels, ranks, streaks, badges and achievements.

Every mutation runs inside ``serialized_transaction`` keyed on the user, so two
awards for the same user never interleave their read-modify-write.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorug.db.models import PointsLedger, User, UserAchievement, UserBadge, UserReputation
from tutorug.db.serialization import UserLockRegistry, reputation_key, serialized_transaction, user_locks
from tutorug.db.types import utcnow
from tutorug.errors import InvalidAmount, InvalidInput, NotFound
from tutorug.reputation.tables import DEFAULT_CONFIG, BadgeRule, ReputationConfig, compute_level, compute_rank
from tutorug.reputation.windows import month_start, week_start

logger = logging.getLogger(__name__)

TIMEFRAMES = {"all": None, "weekly": timedelta(days=7), "monthly": timedelta(days=30)}


class ActivityCounter(Protocol):
    """Source of activity counts for achievement checks (quiz attempts)."""

    async def counts(self, db: AsyncSession, user_id: int) -> dict[str, int]: ...

    async def completed_since(self, db: AsyncSession, user_id: int, since: datetime) -> int: ...


@dataclass
class AwardResult:
    points_added: int
    new_total: int
    level_changed: bool
    rank_changed: bool
    new_level: int
    new_rank: str
    new_badges: list[str] = field(default_factory=list)
    new_achievements: list[str] = field(default_factory=list)
    bonus_points: int = 0
    previous_level: int = 1


@dataclass
class StreakResult:
    streak_days: int
    longest_streak: int
    streak_continued: bool
    updated: bool


def validate_amount(amount: object) -> int:
    """Points must be a positive ``int`` (``bool`` is rejected)."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"Points amount must be a positive integer, got {amount!r}")
    return amount


class ReputationEngine:
    """Converts point-earning events into level / rank / streak / badge state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ReputationConfig = DEFAULT_CONFIG,
        activity: ActivityCounter | None = None,
        redis: object = None,
        locks: UserLockRegistry = user_locks,
        max_retries: int = 3,
        max_bonus_rounds: int = 10,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.activity = activity
        self.redis = redis
        self.locks = locks
        self.max_retries = max_retries
        self.max_bonus_rounds = max_bonus_rounds

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def award_points(
        self,
        user_id: int,
        amount: int,
        reason: str,
        *,
        activity_counts: dict[str, int] | None = None,
        now: datetime | None = None,
    ) -> AwardResult:
        """Award points to a user and run badge / achievement checks.

        Badges and achievements are enrichments: if checking them fails, the
        primary award is still committed and the failure is logged.
        """
        validate_amount(amount)
        if now is None:
            now = utcnow()

        async def work(db: AsyncSession) -> AwardResult:
            record = await self._get_or_create_for_update(db, user_id, now)
            old_level, old_rank = record.current_level, record.rank

            self._apply_points(db, record, amount, reason, now)
            await db.flush()

            new_badges: list[str] = []
            new_achievements: list[str] = []
            bonus = 0
            try:
                async with db.begin_nested():
                    new_badges, bonus = await self._process_badges(db, record, now)
                    new_achievements = await self._unlock_achievements(
                        db, record, activity_counts, now
                    )
            except Exception:
                logger.warning(
                    "Badge/achievement check failed for user %s, keeping base award",
                    user_id,
                    exc_info=True,
                )
                await db.refresh(record)
                new_badges, new_achievements, bonus = [], [], 0

            return AwardResult(
                points_added=amount,
                new_total=record.total_points,
                level_changed=record.current_level != old_level,
                rank_changed=record.rank != old_rank,
                new_level=record.current_level,
                new_rank=record.rank,
                new_badges=new_badges,
                new_achievements=new_achievements,
                bonus_points=bonus,
                previous_level=old_level,
            )

        result = await serialized_transaction(
            self.session_factory, self.locks, reputation_key(user_id), work, self.max_retries
        )
        await self._publish(user_id, result)
        return result

    async def update_streak(self, user_id: int, now: datetime | None = None) -> StreakResult:
        """Advance the daily streak.

        Same UTC day: no-op. Exactly yesterday: +1. Any longer gap (or no
        prior activity): restart at 1. Call this before ``award_points`` for
        the same event, since the award also moves ``last_activity_date``.
        """
        if now is None:
            now = utcnow()
        today = now.date()

        async def work(db: AsyncSession) -> StreakResult:
            record = await self._get_or_create_for_update(db, user_id, now)
            last = record.last_activity_date.date() if record.last_activity_date else None

            if last == today and record.streak_days > 0:
                return StreakResult(record.streak_days, record.longest_streak, False, False)

            continued = last == today - timedelta(days=1) and record.streak_days > 0
            record.streak_days = record.streak_days + 1 if continued else 1
            record.longest_streak = max(record.longest_streak, record.streak_days)
            record.last_activity_date = now
            return StreakResult(record.streak_days, record.longest_streak, continued, True)

        return await serialized_transaction(
            self.session_factory, self.locks, reputation_key(user_id), work, self.max_retries
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_record(self, db: AsyncSession, user_id: int) -> UserReputation | None:
        result = await db.execute(select(UserReputation).where(UserReputation.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_leaderboard_position(self, db: AsyncSession, user_id: int) -> int:
        """``1 + count(records with strictly more points)``; tied users share a position."""
        record = await self.get_record(db, user_id)
        total = record.total_points if record else 0
        higher = await db.scalar(
            select(func.count()).select_from(UserReputation).where(UserReputation.total_points > total)
        )
        return (higher or 0) + 1

    async def get_leaderboard(
        self,
        db: AsyncSession,
        limit: int = 50,
        timeframe: str = "all",
        now: datetime | None = None,
    ) -> list[dict]:
        """Top users by total points.

        ``weekly`` / ``monthly`` only include users active in the last 7 / 30
        days. Equal totals share a position; within a tie the earliest
        ``last_activity_date`` is listed first.
        """
        if timeframe not in TIMEFRAMES:
            raise InvalidInput(f"Unknown timeframe: {timeframe}")
        if now is None:
            now = utcnow()

        query = (
            select(UserReputation, User)
            .join(User, User.id == UserReputation.user_id)
            .order_by(
                UserReputation.total_points.desc(),
                UserReputation.last_activity_date.asc().nulls_last(),
                UserReputation.user_id.asc(),
            )
            .limit(limit)
        )
        window = TIMEFRAMES[timeframe]
        if window is not None:
            query = query.where(UserReputation.last_activity_date >= now - window)

        rows = (await db.execute(query)).all()

        entries: list[dict] = []
        position = 0
        previous_total: int | None = None
        for index, (record, user) in enumerate(rows):
            if record.total_points != previous_total:
                position = index + 1
                previous_total = record.total_points
            entries.append({
                "position": position,
                "user_id": record.user_id,
                "display_name": user.display_name,
                "current_class": user.current_class,
                "total_points": record.total_points,
                "current_level": record.current_level,
                "rank": record.rank,
                "last_activity_date": record.last_activity_date,
            })
        return entries

    async def get_rank_distribution(self, db: AsyncSession) -> dict[str, int]:
        """Count of records per rank; ranks nobody holds report 0."""
        result = await db.execute(
            select(UserReputation.rank, func.count(UserReputation.id)).group_by(UserReputation.rank)
        )
        counts = dict(result.tuples().all())
        return {name: int(counts.get(name, 0)) for name, _ in self.config.rank_thresholds}

    async def get_weekly_progress(
        self, db: AsyncSession, user_id: int, now: datetime | None = None
    ) -> dict:
        if now is None:
            now = utcnow()
        start = week_start(now)
        record = await self.get_record(db, user_id)

        points = 0
        # A window that has not been rolled over yet reads as empty.
        if record is not None and record.week_window_start is not None and record.week_window_start >= start:
            points = record.weekly_points

        quizzes = 0
        if self.activity is not None:
            quizzes = await self.activity.completed_since(db, user_id, start)

        return {
            "week_start": start,
            "points_this_week": points,
            "quizzes_this_week": quizzes,
            "target_points": self.config.weekly_points_target,
            "target_quizzes": self.config.weekly_quiz_target,
        }

    async def summary(self, db: AsyncSession, user_id: int) -> dict:
        record = await self.get_record(db, user_id)
        total = record.total_points if record else 0
        level_info = compute_level(total, self.config.level_thresholds)
        return {
            "user_id": user_id,
            "total_points": total,
            "weekly_points": record.weekly_points if record else 0,
            "monthly_points": record.monthly_points if record else 0,
            "current_level": level_info["level"],
            "points_into_level": level_info["points_into_level"],
            "points_for_level": level_info["points_for_level"],
            "rank": record.rank if record else compute_rank(0, self.config.rank_thresholds),
            "streak_days": record.streak_days if record else 0,
            "longest_streak": record.longest_streak if record else 0,
            "badges_earned": record.badges_earned if record else [],
            "achievements_unlocked": record.achievements_unlocked if record else [],
            "last_activity_date": record.last_activity_date if record else None,
            "leaderboard_position": await self.get_leaderboard_position(db, user_id),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get_or_create_for_update(
        self, db: AsyncSession, user_id: int, now: datetime
    ) -> UserReputation:
        """Load (row-locked) or lazily create the record, rolling windows forward."""
        result = await db.execute(
            select(UserReputation).where(UserReputation.user_id == user_id).with_for_update()
        )
        record = result.scalar_one_or_none()
        if record is None:
            if await db.get(User, user_id) is None:
                raise NotFound(f"User {user_id} not found")
            record = UserReputation(
                user_id=user_id,
                total_points=0,
                weekly_points=0,
                monthly_points=0,
                current_level=1,
                rank=compute_rank(0, self.config.rank_thresholds),
                streak_days=0,
                longest_streak=0,
                week_window_start=week_start(now),
                month_window_start=month_start(now),
                badges=[],
                achievements=[],
            )
            db.add(record)
            await db.flush()
        self._roll_windows(record, now)
        return record

    @staticmethod
    def _roll_windows(record: UserReputation, now: datetime) -> None:
        current_week = week_start(now)
        if record.week_window_start is None or record.week_window_start < current_week:
            record.weekly_points = 0
            record.week_window_start = current_week

        current_month = month_start(now)
        if record.month_window_start is None or record.month_window_start < current_month:
            record.monthly_points = 0
            record.month_window_start = current_month

    def _apply_points(
        self,
        db: AsyncSession,
        record: UserReputation,
        amount: int,
        reason: str,
        now: datetime,
    ) -> None:
        record.total_points += amount
        record.weekly_points += amount
        record.monthly_points += amount
        record.last_activity_date = now
        record.current_level = compute_level(record.total_points, self.config.level_thresholds)["level"]
        record.rank = compute_rank(record.total_points, self.config.rank_thresholds)
        db.add(PointsLedger(user_id=record.user_id, amount=amount, reason=reason, created_at=now))

    def _unlock_badges(self, record: UserReputation, now: datetime) -> list[BadgeRule]:
        """Record every newly satisfied badge; returns the rules unlocked."""
        earned = set(record.badges_earned)
        unlocked = []
        for rule in self.config.badges:
            if rule.slug in earned:
                continue
            if getattr(record, rule.metric) >= rule.threshold:
                record.badges.append(UserBadge(slug=rule.slug, earned_at=now))
                unlocked.append(rule)
        return unlocked

    async def _process_badges(
        self, db: AsyncSession, record: UserReputation, now: datetime
    ) -> tuple[list[str], int]:
        """Unlock badges and pay their bonuses from a bounded pending queue.

        A badge is recorded before its bonus is applied, so a bonus can only
        unlock *other* badges.
        """
        pending: deque[BadgeRule] = deque(self._unlock_badges(record, now))
        new_badges = [rule.slug for rule in pending]
        bonus_total = 0
        rounds = 0

        while pending:
            if rounds >= self.max_bonus_rounds:
                logger.warning(
                    "Bonus queue for user %s hit %d rounds, dropping %d pending bonuses",
                    record.user_id,
                    self.max_bonus_rounds,
                    len(pending),
                )
                break
            rule = pending.popleft()
            rounds += 1
            self._apply_points(db, record, rule.bonus, f"Badge bonus: {rule.slug}", now)
            bonus_total += rule.bonus

            unlocked = self._unlock_badges(record, now)
            pending.extend(unlocked)
            new_badges.extend(u.slug for u in unlocked)

        await db.flush()
        return new_badges, bonus_total

    async def _unlock_achievements(
        self,
        db: AsyncSession,
        record: UserReputation,
        counts: dict[str, int] | None,
        now: datetime,
    ) -> list[str]:
        if counts is None:
            counts = await self.activity.counts(db, record.user_id) if self.activity else {}

        unlocked_already = set(record.achievements_unlocked)
        new_achievements = []
        for rule in self.config.achievements:
            if rule.slug in unlocked_already:
                continue
            if counts.get(rule.metric, 0) >= rule.threshold:
                record.achievements.append(UserAchievement(slug=rule.slug, unlocked_at=now))
                new_achievements.append(rule.slug)

        if new_achievements:
            await db.flush()
        return new_achievements

    async def _publish(self, user_id: int, result: AwardResult) -> None:
        """Broadcast level-up / badge events. Best-effort, after commit."""
        if self.redis is None:
            return
        try:
            if result.new_level > result.previous_level:
                await self.redis.publish(  # type: ignore[attr-defined]
                    "pubsub:level_up",
                    json.dumps({
                        "user_id": user_id,
                        "old_level": result.previous_level,
                        "new_level": result.new_level,
                        "rank": result.new_rank,
                    }),
                )
            for slug in result.new_badges:
                await self.redis.publish(  # type: ignore[attr-defined]
                    "pubsub:badge_earned",
                    json.dumps({"user_id": user_id, "badge_slug": slug}),
                )
        except Exception:
            logger.warning("Failed to publish reputation events", exc_info=True)
