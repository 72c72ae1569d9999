"""Expiry, trial-reminder and renewal-reminder sweeps."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from tutorug.notifications.senders import SendResult
from tutorug.subscriptions.lifecycle import get_subscription
from tutorug.subscriptions.sweeps import SubscriptionSweeper

T0 = datetime(2026, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def sweeper(session_factory, notifier, locks) -> SubscriptionSweeper:
    return SubscriptionSweeper(session_factory, notifier=notifier, locks=locks)


async def _stored_status(session_factory, user_id):
    async with session_factory() as db:
        sub = await get_subscription(db, user_id)
    return sub.status


class TestExpirySweep:
    @pytest.mark.asyncio
    async def test_lapsed_trial_expires(self, session_factory, sweeper, notifier, make_user):
        user = await make_user(now=T0)

        expired = await sweeper.expire_subscriptions(now=T0 + timedelta(days=8))

        assert expired == 1
        assert await _stored_status(session_factory, user.id) == "expired"
        recipient, template_id = notifier.notify.await_args.args
        assert recipient.user_id == user.id
        assert template_id == "subscription_expired"

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, sweeper, notifier, make_user):
        await make_user(now=T0)
        later = T0 + timedelta(days=8)

        assert await sweeper.expire_subscriptions(now=later) == 1
        assert await sweeper.expire_subscriptions(now=later) == 0
        assert notifier.notify.await_count == 1

    @pytest.mark.asyncio
    async def test_running_trial_untouched(self, session_factory, sweeper, make_user):
        user = await make_user(now=T0)

        assert await sweeper.expire_subscriptions(now=T0 + timedelta(days=3)) == 0
        assert await _stored_status(session_factory, user.id) == "trial"

    @pytest.mark.asyncio
    async def test_converted_trial_stays_active(self, session_factory, lifecycle, sweeper, make_user):
        user = await make_user(now=T0)
        status = await lifecycle.confirm_payment(user.id, "monthly", now=T0 + timedelta(days=6))
        assert status["period_end_at"] == T0 + timedelta(days=6) + timedelta(days=30)

        # Trial end (day 7) has passed, paid period has not
        assert await sweeper.expire_subscriptions(now=T0 + timedelta(days=8)) == 0
        assert await _stored_status(session_factory, user.id) == "active"

    @pytest.mark.asyncio
    async def test_lapsed_paid_period_expires(self, session_factory, lifecycle, sweeper, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)

        assert await sweeper.expire_subscriptions(now=datetime(2026, 6, 30, tzinfo=timezone.utc)) == 0
        assert await sweeper.expire_subscriptions(now=datetime(2026, 7, 1, tzinfo=timezone.utc)) == 1
        assert await _stored_status(session_factory, user.id) == "expired"

    @pytest.mark.asyncio
    async def test_cancelled_expires_at_period_end(self, session_factory, lifecycle, sweeper, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        await lifecycle.cancel(user.id, now=T0 + timedelta(days=3))

        assert await sweeper.expire_subscriptions(now=T0 + timedelta(days=20)) == 0
        assert await sweeper.expire_subscriptions(now=datetime(2026, 7, 2, tzinfo=timezone.utc)) == 1
        assert await _stored_status(session_factory, user.id) == "expired"

    @pytest.mark.asyncio
    async def test_payment_after_expiry_reactivates(self, session_factory, lifecycle, sweeper, make_user):
        user = await make_user(now=T0)
        await sweeper.expire_subscriptions(now=T0 + timedelta(days=8))
        paid_at = T0 + timedelta(days=10)

        status = await lifecycle.confirm_payment(user.id, "monthly", now=paid_at)

        assert status["status"] == "active"
        assert status["period_start_at"] == paid_at


class TestTrialReminders:
    @pytest.mark.asyncio
    async def test_reminder_inside_window(self, session_factory, sweeper, notifier, make_user):
        user = await make_user(now=T0)
        now = datetime(2026, 6, 5, 10, 0, tzinfo=timezone.utc)  # trial ends 8 June 00:00

        sent = await sweeper.send_trial_reminders(now=now)

        assert sent == 1
        recipient, template_id, params = notifier.notify.await_args.args
        assert recipient.user_id == user.id
        assert template_id == "trial_ending"
        assert params == {"days_left": 3}
        async with session_factory() as db:
            sub = await get_subscription(db, user.id)
        assert sub.last_trial_reminder_on == date(2026, 6, 5)

    @pytest.mark.asyncio
    async def test_once_per_day(self, sweeper, notifier, make_user):
        await make_user(now=T0)
        morning = datetime(2026, 6, 5, 5, 0, tzinfo=timezone.utc)

        assert await sweeper.send_trial_reminders(now=morning) == 1
        assert await sweeper.send_trial_reminders(now=morning + timedelta(hours=6)) == 0
        assert await sweeper.send_trial_reminders(now=morning + timedelta(days=1)) == 1
        assert notifier.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_outside_window(self, sweeper, notifier, make_user):
        await make_user(now=T0)

        assert await sweeper.send_trial_reminders(now=T0 + timedelta(days=1)) == 0
        # Already ended
        assert await sweeper.send_trial_reminders(now=T0 + timedelta(days=7)) == 0
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_paid_users_not_reminded(self, lifecycle, sweeper, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0 + timedelta(days=1))

        assert await sweeper.send_trial_reminders(now=T0 + timedelta(days=5)) == 0
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_send_not_retried_same_day(self, session_factory, locks, make_user):
        flaky = MagicMock()
        flaky.notify = AsyncMock(return_value={"sms": SendResult(success=False, error="gateway down")})
        sweeper = SubscriptionSweeper(session_factory, notifier=flaky, locks=locks)
        await make_user(now=T0)
        now = datetime(2026, 6, 6, 8, 0, tzinfo=timezone.utc)

        await sweeper.send_trial_reminders(now=now)
        await sweeper.send_trial_reminders(now=now + timedelta(minutes=30))

        assert flaky.notify.await_count == 1


class TestRenewalReminders:
    @pytest.mark.asyncio
    async def test_reminder_before_period_end(self, session_factory, lifecycle, sweeper, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)  # paid until 1 July
        now = datetime(2026, 6, 28, 5, 0, tzinfo=timezone.utc)

        sent = await sweeper.send_renewal_reminders(now=now)

        assert sent == 1
        recipient, template_id, params = notifier.notify.await_args.args
        assert recipient.user_id == user.id
        assert template_id == "renewal_reminder"
        assert params == {"period_end_at": datetime(2026, 7, 1, tzinfo=timezone.utc)}
        async with session_factory() as db:
            sub = await get_subscription(db, user.id)
        assert sub.last_renewal_reminder_on == date(2026, 6, 28)

    @pytest.mark.asyncio
    async def test_once_per_day(self, lifecycle, sweeper, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        morning = datetime(2026, 6, 28, 5, 0, tzinfo=timezone.utc)

        assert await sweeper.send_renewal_reminders(now=morning) == 1
        assert await sweeper.send_renewal_reminders(now=morning + timedelta(hours=6)) == 0
        assert await sweeper.send_renewal_reminders(now=morning + timedelta(days=1)) == 1
        assert notifier.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_outside_window(self, lifecycle, sweeper, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)

        assert await sweeper.send_renewal_reminders(now=datetime(2026, 6, 27, 5, 0, tzinfo=timezone.utc)) == 0
        # Period already over
        assert await sweeper.send_renewal_reminders(now=datetime(2026, 7, 1, 5, 0, tzinfo=timezone.utc)) == 0
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_and_trial_users_skipped(self, lifecycle, sweeper, notifier, make_user):
        cancelled = await make_user(now=T0)
        await lifecycle.confirm_payment(cancelled.id, "monthly", now=T0)
        await lifecycle.cancel(cancelled.id, now=T0 + timedelta(days=3))
        await make_user(now=datetime(2026, 6, 25, tzinfo=timezone.utc))  # trial ends 2 July
        notifier.notify.reset_mock()

        assert await sweeper.send_renewal_reminders(now=datetime(2026, 6, 28, 5, 0, tzinfo=timezone.utc)) == 0
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_early_renewal_clears_reminder(self, lifecycle, sweeper, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=datetime(2026, 6, 27, tzinfo=timezone.utc))

        assert await sweeper.send_renewal_reminders(now=datetime(2026, 6, 28, 5, 0, tzinfo=timezone.utc)) == 0
        notifier.notify.assert_not_awaited()
