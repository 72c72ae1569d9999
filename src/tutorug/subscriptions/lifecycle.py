"""Subscription lifecycle: trial -> active -> cancelled / expired.

Access is evaluated lazily from timestamps, so a stored status the sweep has
not reached yet is never trusted past its end time. Only the sweep job
(``subscriptions.sweeps``) writes ``expired``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorug.db.models import Subscription
from tutorug.db.serialization import UserLockRegistry, serialized_transaction, subscription_key, user_locks
from tutorug.db.types import utcnow
from tutorug.errors import InvalidInput, NotFound
from tutorug.notifications.service import NotificationService, Recipient
from tutorug.subscriptions.plans import add_months, get_plan

logger = logging.getLogger(__name__)

TRIAL = "trial"
ACTIVE = "active"
EXPIRED = "expired"
CANCELLED = "cancelled"
STATUSES = (TRIAL, ACTIVE, EXPIRED, CANCELLED)


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def access_until(sub: Subscription | None) -> datetime | None:
    """The instant access ends for the stored status, or None if there is none."""
    if sub is None:
        return None
    if sub.status in (ACTIVE, CANCELLED):
        return sub.period_end_at
    if sub.status == TRIAL:
        return sub.trial_end_at
    return None


def has_access(sub: Subscription | None, now: datetime) -> bool:
    end = access_until(sub)
    return end is not None and now < end


def effective_status(sub: Subscription | None, now: datetime) -> str:
    """Stored status, except a lapsed window reads as ``expired``."""
    if sub is None:
        return EXPIRED
    if sub.status != EXPIRED and not has_access(sub, now):
        return EXPIRED
    return sub.status


def is_due_for_expiry(sub: Subscription, now: datetime) -> bool:
    if sub.status in (ACTIVE, CANCELLED):
        return sub.period_end_at is not None and sub.period_end_at <= now
    if sub.status == TRIAL:
        return (
            sub.trial_end_at is not None
            and sub.trial_end_at <= now
            and not sub.plan_ever_purchased
        )
    return False


def describe(sub: Subscription | None, now: datetime) -> dict:
    end = access_until(sub)
    return {
        "status": sub.status if sub else None,
        "effective_status": effective_status(sub, now),
        "plan": sub.plan if sub else None,
        "has_access": has_access(sub, now),
        "is_trial_active": bool(sub and sub.status == TRIAL and has_access(sub, now)),
        "trial_end_at": sub.trial_end_at if sub else None,
        "period_start_at": sub.period_start_at if sub else None,
        "period_end_at": sub.period_end_at if sub else None,
        "cancelled_at": sub.cancelled_at if sub else None,
        "access_until": end if has_access(sub, now) else None,
        "days_remaining": max((end - now).days, 0) if end and end > now else 0,
    }


# ---------------------------------------------------------------------------
# Stateful transitions
# ---------------------------------------------------------------------------


async def get_subscription(db: AsyncSession, user_id: int, *, for_update: bool = False) -> Subscription | None:
    query = select(Subscription).where(Subscription.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


class SubscriptionLifecycle:
    """Owns every request-time subscription transition."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationService | None = None,
        locks: UserLockRegistry = user_locks,
        trial_duration_days: int = 7,
        max_retries: int = 3,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.locks = locks
        self.trial_duration_days = trial_duration_days
        self.max_retries = max_retries

    async def start_trial(self, db: AsyncSession, user_id: int, now: datetime | None = None) -> Subscription:
        """Create the user's subscription in ``trial``. Runs in the caller's transaction."""
        if now is None:
            now = utcnow()
        sub = Subscription(
            user_id=user_id,
            status=TRIAL,
            plan=None,
            trial_end_at=now + timedelta(days=self.trial_duration_days),
            plan_ever_purchased=False,
            created_at=now,
            updated_at=now,
        )
        db.add(sub)
        await db.flush()
        return sub

    async def apply_payment(
        self,
        db: AsyncSession,
        user_id: int,
        plan_id: str,
        now: datetime | None = None,
    ) -> Subscription:
        """Move to ``active`` for a verified payment. Runs in the caller's transaction.

        An unexpired ``active`` period is extended so early renewal loses no time;
        any other state starts a fresh period at ``now``. The end is always
        ``period_start_at`` plus every month bought since, so month-end clamping
        (31 Jan + 1 month = 28 Feb) never carries over into the next renewal.
        """
        plan = get_plan(plan_id)
        if now is None:
            now = utcnow()

        sub = await get_subscription(db, user_id, for_update=True)
        if sub is None:
            sub = Subscription(user_id=user_id, status=TRIAL, plan_ever_purchased=False, created_at=now)
            db.add(sub)

        if sub.status == ACTIVE and sub.period_end_at is not None and sub.period_end_at > now:
            sub.period_months += plan.duration_months
        else:
            sub.period_start_at = now
            sub.period_months = plan.duration_months
        sub.period_end_at = add_months(sub.period_start_at, sub.period_months)

        sub.status = ACTIVE
        sub.plan = plan.id
        sub.plan_ever_purchased = True
        sub.cancelled_at = None
        sub.updated_at = now
        await db.flush()

        logger.info(
            "Subscription for user %s active on %s until %s",
            user_id,
            plan.id,
            sub.period_end_at.isoformat(),
        )
        return sub

    async def confirm_payment(self, user_id: int, plan_id: str, now: datetime | None = None) -> dict:
        """Serialized ``apply_payment`` in its own transaction."""
        get_plan(plan_id)
        if now is None:
            now = utcnow()

        async def work(db: AsyncSession) -> dict:
            return describe(await self.apply_payment(db, user_id, plan_id, now), now)

        return await serialized_transaction(
            self.session_factory, self.locks, subscription_key(user_id), work, self.max_retries
        )

    async def cancel(self, user_id: int, now: datetime | None = None) -> dict:
        """Cancel an active subscription; access continues until ``period_end_at``.

        Cancelling twice is a no-op. Anything other than an unexpired ``active``
        subscription is rejected.
        """
        if now is None:
            now = utcnow()
        recipient: list[Recipient] = []

        async def work(db: AsyncSession) -> dict:
            recipient.clear()
            sub = await get_subscription(db, user_id, for_update=True)
            if sub is None:
                raise NotFound("No subscription found")
            if sub.status == CANCELLED:
                return describe(sub, now)
            if sub.status != ACTIVE or not has_access(sub, now):
                raise InvalidInput("No active subscription to cancel")

            sub.status = CANCELLED
            sub.cancelled_at = now
            sub.updated_at = now
            user = sub.user
            recipient.append(Recipient(user.id, user.phone_number, user.email, user.first_name))
            return describe(sub, now)

        status = await serialized_transaction(
            self.session_factory, self.locks, subscription_key(user_id), work, self.max_retries
        )
        if recipient and self.notifier is not None:
            await self.notifier.notify(
                recipient[0], "subscription_cancelled", {"period_end_at": status["period_end_at"]}
            )
        return status

    async def get_status(self, db: AsyncSession, user_id: int, now: datetime | None = None) -> dict:
        if now is None:
            now = utcnow()
        return describe(await get_subscription(db, user_id), now)

    async def has_access(self, db: AsyncSession, user_id: int, now: datetime | None = None) -> bool:
        if now is None:
            now = utcnow()
        return has_access(await get_subscription(db, user_id), now)
