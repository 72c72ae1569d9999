"""Periodic subscription sweeps.

All sweeps are idempotent and safe to overlap with themselves: candidates are
selected without locks, then each user is re-checked inside its own serialized
transaction before anything is written. Notifications go out after commit and
are best-effort.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorug.db.models import Subscription
from tutorug.db.serialization import UserLockRegistry, serialized_transaction, subscription_key, user_locks
from tutorug.db.types import utcnow
from tutorug.errors import ConcurrencyConflict
from tutorug.notifications.service import NotificationService, Recipient
from tutorug.subscriptions.lifecycle import ACTIVE, CANCELLED, EXPIRED, TRIAL, get_subscription, is_due_for_expiry

logger = logging.getLogger(__name__)


def _recipient(sub: Subscription) -> Recipient:
    user = sub.user
    return Recipient(user.id, user.phone_number, user.email, user.first_name)


class SubscriptionSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationService | None = None,
        locks: UserLockRegistry = user_locks,
        reminder_lookahead_days: int = 3,
        renewal_lookahead_days: int = 3,
        max_retries: int = 3,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.locks = locks
        self.reminder_lookahead_days = reminder_lookahead_days
        self.renewal_lookahead_days = renewal_lookahead_days
        self.max_retries = max_retries

    async def expire_subscriptions(self, now: datetime | None = None) -> int:
        """Mark lapsed active / cancelled periods and unconverted trials ``expired``.

        Returns the number of subscriptions this run expired.
        """
        if now is None:
            now = utcnow()

        async with self.session_factory() as db:
            result = await db.execute(
                select(Subscription.user_id).where(
                    or_(
                        and_(
                            Subscription.status.in_([ACTIVE, CANCELLED]),
                            Subscription.period_end_at <= now,
                        ),
                        and_(
                            Subscription.status == TRIAL,
                            Subscription.trial_end_at <= now,
                            Subscription.plan_ever_purchased.is_(False),
                        ),
                    )
                )
            )
            candidates = list(result.scalars())

        expired = 0
        for user_id in candidates:
            try:
                recipient = await self._expire_one(user_id, now)
            except ConcurrencyConflict:
                logger.warning("Skipping user %s in expiry sweep after repeated conflicts", user_id)
                continue
            if recipient is None:
                continue
            expired += 1
            if self.notifier is not None:
                await self.notifier.notify(recipient, "subscription_expired")

        logger.info("Subscription sweep expired %d of %d candidates", expired, len(candidates))
        return expired

    async def _expire_one(self, user_id: int, now: datetime) -> Recipient | None:
        async def work(db: AsyncSession) -> Recipient | None:
            sub = await get_subscription(db, user_id, for_update=True)
            # Re-check: a payment may have landed since the candidate scan.
            if sub is None or not is_due_for_expiry(sub, now):
                return None
            sub.status = EXPIRED
            sub.updated_at = now
            return _recipient(sub)

        return await serialized_transaction(
            self.session_factory, self.locks, subscription_key(user_id), work, self.max_retries
        )

    async def send_trial_reminders(self, now: datetime | None = None) -> int:
        """Remind trial users whose trial ends within the lookahead window.

        At most one reminder per user per UTC day: the reminder date is recorded
        before the send, so a failed send is not retried the same day.
        """
        if now is None:
            now = utcnow()
        today = now.date()
        horizon = now + timedelta(days=self.reminder_lookahead_days)

        async with self.session_factory() as db:
            result = await db.execute(
                select(Subscription.user_id).where(
                    Subscription.status == TRIAL,
                    Subscription.trial_end_at > now,
                    Subscription.trial_end_at <= horizon,
                    or_(
                        Subscription.last_trial_reminder_on.is_(None),
                        Subscription.last_trial_reminder_on < today,
                    ),
                )
            )
            candidates = list(result.scalars())

        sent = 0
        for user_id in candidates:
            try:
                claimed = await self._claim_reminder(user_id, now, horizon)
            except ConcurrencyConflict:
                logger.warning("Skipping trial reminder for user %s after repeated conflicts", user_id)
                continue
            if claimed is None:
                continue
            recipient, days_left = claimed
            sent += 1
            if self.notifier is not None:
                await self.notifier.notify(recipient, "trial_ending", {"days_left": days_left})

        logger.info("Trial reminder sweep sent %d reminders", sent)
        return sent

    async def _claim_reminder(
        self, user_id: int, now: datetime, horizon: datetime
    ) -> tuple[Recipient, int] | None:
        today = now.date()

        async def work(db: AsyncSession) -> tuple[Recipient, int] | None:
            sub = await get_subscription(db, user_id, for_update=True)
            if (
                sub is None
                or sub.status != TRIAL
                or sub.trial_end_at is None
                or not (now < sub.trial_end_at <= horizon)
                or sub.last_trial_reminder_on == today
            ):
                return None
            sub.last_trial_reminder_on = today
            days_left = max(1, math.ceil((sub.trial_end_at - now).total_seconds() / 86400))
            return _recipient(sub), days_left

        return await serialized_transaction(
            self.session_factory, self.locks, subscription_key(user_id), work, self.max_retries
        )

    async def send_renewal_reminders(self, now: datetime | None = None) -> int:
        """Remind paying users whose period ends within the lookahead window.

        Cancelled subscriptions are skipped. Deduplicated per UTC day the same
        way as trial reminders.
        """
        if now is None:
            now = utcnow()
        today = now.date()
        horizon = now + timedelta(days=self.renewal_lookahead_days)

        async with self.session_factory() as db:
            result = await db.execute(
                select(Subscription.user_id).where(
                    Subscription.status == ACTIVE,
                    Subscription.period_end_at > now,
                    Subscription.period_end_at <= horizon,
                    or_(
                        Subscription.last_renewal_reminder_on.is_(None),
                        Subscription.last_renewal_reminder_on < today,
                    ),
                )
            )
            candidates = list(result.scalars())

        sent = 0
        for user_id in candidates:
            try:
                claimed = await self._claim_renewal_reminder(user_id, now, horizon)
            except ConcurrencyConflict:
                logger.warning("Skipping renewal reminder for user %s after repeated conflicts", user_id)
                continue
            if claimed is None:
                continue
            recipient, period_end_at = claimed
            sent += 1
            if self.notifier is not None:
                await self.notifier.notify(recipient, "renewal_reminder", {"period_end_at": period_end_at})

        logger.info("Renewal reminder sweep sent %d reminders", sent)
        return sent

    async def _claim_renewal_reminder(
        self, user_id: int, now: datetime, horizon: datetime
    ) -> tuple[Recipient, datetime] | None:
        today = now.date()

        async def work(db: AsyncSession) -> tuple[Recipient, datetime] | None:
            sub = await get_subscription(db, user_id, for_update=True)
            # A renewal since the scan pushes period_end_at past the horizon.
            if (
                sub is None
                or sub.status != ACTIVE
                or sub.period_end_at is None
                or not (now < sub.period_end_at <= horizon)
                or sub.last_renewal_reminder_on == today
            ):
                return None
            sub.last_renewal_reminder_on = today
            return _recipient(sub), sub.period_end_at

        return await serialized_transaction(
            self.session_factory, self.locks, subscription_key(user_id), work, self.max_retries
        )
