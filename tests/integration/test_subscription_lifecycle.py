"""Subscription transitions: trial, payment, renewal, cancellation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tutorug.auth.service import create_user
from tutorug.errors import InvalidInput, InvalidPlan, NotFound
from tutorug.subscriptions.lifecycle import get_subscription

T0 = datetime(2026, 6, 1, tzinfo=timezone.utc)


async def _status(session_factory, lifecycle, user_id, now):
    async with session_factory() as db:
        return await lifecycle.get_status(db, user_id, now=now)


class TestTrial:
    @pytest.mark.asyncio
    async def test_new_user_starts_trial(self, session_factory, lifecycle, make_user):
        user = await make_user(now=T0)

        status = await _status(session_factory, lifecycle, user.id, T0 + timedelta(days=1))

        assert status["status"] == "trial"
        assert status["is_trial_active"] is True
        assert status["has_access"] is True
        assert status["trial_end_at"] == T0 + timedelta(days=7)
        assert status["plan"] is None

    @pytest.mark.asyncio
    async def test_trial_access_ends_at_trial_end(self, session_factory, lifecycle, make_user):
        user = await make_user(now=T0)

        async with session_factory() as db:
            assert await lifecycle.has_access(db, user.id, now=T0 + timedelta(days=7) - timedelta(seconds=1))
            assert not await lifecycle.has_access(db, user.id, now=T0 + timedelta(days=7))

        status = await _status(session_factory, lifecycle, user.id, T0 + timedelta(days=8))
        # Reads never write expired
        assert status["status"] == "trial"
        assert status["effective_status"] == "expired"

    @pytest.mark.asyncio
    async def test_duplicate_phone_rejected(self, session_factory, lifecycle, make_user):
        user = await make_user(now=T0)

        async with session_factory() as db:
            async with db.begin():
                with pytest.raises(InvalidInput):
                    await create_user(db, lifecycle, user.phone_number.replace("+256", "0"), now=T0)

    @pytest.mark.asyncio
    async def test_invalid_phone_rejected(self, session_factory, lifecycle):
        async with session_factory() as db:
            async with db.begin():
                with pytest.raises(InvalidInput):
                    await create_user(db, lifecycle, "not-a-phone", now=T0)


class TestPayment:
    @pytest.mark.asyncio
    async def test_payment_during_trial_activates(self, lifecycle, make_user):
        user = await make_user(now=T0)
        paid_at = T0 + timedelta(days=4)

        status = await lifecycle.confirm_payment(user.id, "monthly", now=paid_at)

        assert status["status"] == "active"
        assert status["plan"] == "monthly"
        assert status["period_start_at"] == paid_at
        assert status["period_end_at"] == datetime(2026, 7, 5, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_early_renewal_extends_from_period_end(self, lifecycle, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0 + timedelta(days=4))

        status = await lifecycle.confirm_payment(user.id, "monthly", now=datetime(2026, 6, 20, tzinfo=timezone.utc))

        assert status["period_end_at"] == datetime(2026, 8, 5, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_chained_renewals_from_month_end_keep_every_day(self, session_factory, lifecycle, make_user):
        start = datetime(2025, 12, 31, tzinfo=timezone.utc)
        user = await make_user(now=start)

        ends = []
        for paid_at in (start, datetime(2026, 1, 10, tzinfo=timezone.utc), datetime(2026, 2, 10, tzinfo=timezone.utc)):
            status = await lifecycle.confirm_payment(user.id, "monthly", now=paid_at)
            ends.append(status["period_end_at"])

        assert ends == [
            datetime(2026, 1, 31, tzinfo=timezone.utc),
            datetime(2026, 2, 28, tzinfo=timezone.utc),
            datetime(2026, 3, 31, tzinfo=timezone.utc),
        ]
        async with session_factory() as db:
            sub = await get_subscription(db, user.id)
        assert sub.period_start_at == start
        assert sub.period_months == 3

    @pytest.mark.asyncio
    async def test_annual_plan(self, lifecycle, make_user):
        user = await make_user(now=T0)

        status = await lifecycle.confirm_payment(user.id, "annual", now=T0)

        assert status["period_end_at"] == datetime(2027, 6, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_payment_after_lapse_starts_fresh(self, lifecycle, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        resumed_at = datetime(2026, 8, 15, tzinfo=timezone.utc)

        status = await lifecycle.confirm_payment(user.id, "monthly", now=resumed_at)

        assert status["period_start_at"] == resumed_at
        assert status["period_end_at"] == datetime(2026, 9, 15, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_unknown_plan(self, lifecycle, make_user):
        user = await make_user(now=T0)
        with pytest.raises(InvalidPlan):
            await lifecycle.confirm_payment(user.id, "lifetime", now=T0)

    @pytest.mark.asyncio
    async def test_marks_plan_ever_purchased(self, session_factory, lifecycle, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)

        async with session_factory() as db:
            sub = await get_subscription(db, user.id)
        assert sub.plan_ever_purchased is True
        assert sub.version >= 2


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_keeps_access_until_period_end(self, session_factory, lifecycle, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        cancelled_at = T0 + timedelta(days=9)

        status = await lifecycle.cancel(user.id, now=cancelled_at)

        assert status["status"] == "cancelled"
        assert status["cancelled_at"] == cancelled_at
        assert status["has_access"] is True
        end = datetime(2026, 7, 1, tzinfo=timezone.utc)
        async with session_factory() as db:
            assert await lifecycle.has_access(db, user.id, now=end - timedelta(seconds=1))
            assert not await lifecycle.has_access(db, user.id, now=end)

        notifier.notify.assert_awaited_once()
        recipient, template_id, params = notifier.notify.await_args.args
        assert recipient.user_id == user.id
        assert template_id == "subscription_cancelled"
        assert params == {"period_end_at": end}

    @pytest.mark.asyncio
    async def test_cancel_twice_is_noop(self, lifecycle, notifier, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        first = await lifecycle.cancel(user.id, now=T0 + timedelta(days=2))

        second = await lifecycle.cancel(user.id, now=T0 + timedelta(days=3))

        assert second["cancelled_at"] == first["cancelled_at"]
        assert notifier.notify.await_count == 1

    @pytest.mark.asyncio
    async def test_cancel_trial_rejected(self, lifecycle, make_user):
        user = await make_user(now=T0)
        with pytest.raises(InvalidInput):
            await lifecycle.cancel(user.id, now=T0 + timedelta(days=1))

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, lifecycle):
        with pytest.raises(NotFound):
            await lifecycle.cancel(999_999, now=T0)

    @pytest.mark.asyncio
    async def test_payment_after_cancel_starts_fresh(self, lifecycle, make_user):
        user = await make_user(now=T0)
        await lifecycle.confirm_payment(user.id, "monthly", now=T0)
        await lifecycle.cancel(user.id, now=T0 + timedelta(days=9))
        resubscribed_at = T0 + timedelta(days=11)

        status = await lifecycle.confirm_payment(user.id, "monthly", now=resubscribed_at)

        assert status["status"] == "active"
        assert status["cancelled_at"] is None
        assert status["period_start_at"] == resubscribed_at
        assert status["period_end_at"] == datetime(2026, 7, 12, tzinfo=timezone.utc)
