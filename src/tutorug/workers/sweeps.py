"""Sweep arq worker — scheduled subscription expiry, trial and renewal reminders.

Cron times are UTC. 05:00 UTC is 08:00 in Kampala.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from tutorug.config import get_settings
from tutorug.database import close_db, get_session_factory, init_db
from tutorug.notifications.service import create_notification_service
from tutorug.subscriptions.sweeps import SubscriptionSweeper

logger = logging.getLogger(__name__)


async def sweep_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the DB and build the sweeper on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    ctx["sweeper"] = SubscriptionSweeper(
        get_session_factory(),
        notifier=create_notification_service(),
        reminder_lookahead_days=settings.trial_reminder_lookahead_days,
        renewal_lookahead_days=settings.renewal_reminder_lookahead_days,
        max_retries=settings.conflict_max_retries,
    )
    logger.info("Sweep worker started")


async def sweep_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    logger.info("Sweep worker shut down")


async def subscription_sweep(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: expire lapsed subscriptions and trials every 6 hours."""
    sweeper: SubscriptionSweeper = ctx["sweeper"]
    return await sweeper.expire_subscriptions()


async def trial_reminder_sweep(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: remind trial users whose trial is about to end, daily."""
    sweeper: SubscriptionSweeper = ctx["sweeper"]
    return await sweeper.send_trial_reminders()


async def renewal_reminder_sweep(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: remind paying users whose period is about to end, daily."""
    sweeper: SubscriptionSweeper = ctx["sweeper"]
    return await sweeper.send_renewal_reminders()


class SweepWorkerSettings:
    """arq worker settings for the sweep scheduler."""

    functions = [subscription_sweep, trial_reminder_sweep, renewal_reminder_sweep]
    cron_jobs = [
        cron(subscription_sweep, hour={0, 6, 12, 18}, minute=0, unique=True),
        cron(trial_reminder_sweep, hour=5, minute=0, unique=True),
        cron(renewal_reminder_sweep, hour=5, minute=15, unique=True),
    ]
    on_startup = sweep_startup
    on_shutdown = sweep_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 2
    job_timeout = 600
