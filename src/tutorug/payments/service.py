"""
Payment business logic.

A subscription only becomes active after the gateway confirms the charge, and
the payment row flips to ``completed`` in the same transaction as the
subscription transition: either both are visible or neither is.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorug.db.models import Payment, User
from tutorug.db.serialization import UserLockRegistry, serialized_transaction, subscription_key, user_locks
from tutorug.db.types import utcnow
from tutorug.errors import Forbidden, InvalidInput, NotFound
from tutorug.notifications.service import NotificationService, Recipient
from tutorug.payments.gateway import BasePaymentGateway, ChargeCustomer, Verification
from tutorug.subscriptions.lifecycle import SubscriptionLifecycle
from tutorug.subscriptions.plans import PLANS, get_plan

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"


def make_transaction_id(user_id: int, now: datetime) -> str:
    """``TUG-<epoch ms>-<user id>``."""
    return f"TUG-{int(now.timestamp() * 1000)}-{user_id}"


def _payment_dict(payment: Payment) -> dict:
    return {
        "transaction_id": payment.transaction_id,
        "plan_id": payment.plan_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "failure_reason": payment.failure_reason,
        "created_at": payment.created_at,
        "completed_at": payment.completed_at,
    }


async def get_payment(db: AsyncSession, transaction_id: str, *, for_update: bool = False) -> Payment | None:
    query = select(Payment).where(Payment.transaction_id == transaction_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


class PaymentService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: BasePaymentGateway,
        lifecycle: SubscriptionLifecycle,
        notifier: NotificationService | None = None,
        locks: UserLockRegistry = user_locks,
        max_retries: int = 3,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.locks = locks
        self.max_retries = max_retries

    @staticmethod
    def list_plans() -> list[dict]:
        return [
            {
                "id": plan.id,
                "name": plan.name,
                "amount": plan.amount,
                "currency": plan.currency,
                "duration_months": plan.duration_months,
                "description": plan.description,
            }
            for plan in PLANS.values()
        ]

    async def initiate(self, user: User, plan_id: str, now: datetime | None = None) -> dict:
        """Create a gateway charge and record it as a pending payment.

        Allowed while a paid period is still running: confirming it renews from
        the current period end.
        """
        plan = get_plan(plan_id)
        if now is None:
            now = utcnow()
        transaction_id = make_transaction_id(user.id, now)

        charge = await self.gateway.create_charge(
            ChargeCustomer(
                user_id=user.id,
                phone_number=user.phone_number,
                email=user.email,
                name=user.display_name,
            ),
            plan,
            transaction_id,
        )

        async with self.session_factory() as db:
            async with db.begin():
                db.add(Payment(
                    user_id=user.id,
                    transaction_id=transaction_id,
                    gateway_ref=charge.gateway_ref,
                    plan_id=plan.id,
                    amount=plan.amount,
                    currency=plan.currency,
                    status=PENDING,
                    created_at=now,
                ))

        logger.info("Payment %s initiated for user %s (%s)", transaction_id, user.id, plan.id)
        return {
            "payment_url": charge.payment_url,
            "transaction_id": transaction_id,
            "amount": plan.amount,
            "currency": plan.currency,
            "plan_id": plan.id,
        }

    async def verify_and_activate(
        self,
        transaction_id: str,
        user_id: int | None = None,
        now: datetime | None = None,
    ) -> dict:
        """Verify with the gateway, then complete the payment and activate.

        ``user_id`` restricts the call to the payment's owner (API callers);
        the webhook passes None. Already-completed payments are returned as-is,
        so webhook redelivery never extends a subscription twice.
        """
        if now is None:
            now = utcnow()

        async with self.session_factory() as db:
            payment = await get_payment(db, transaction_id)
            if payment is None:
                raise NotFound("Payment not found")
            if user_id is not None and payment.user_id != user_id:
                raise Forbidden("Payment belongs to another user")
            if payment.status == COMPLETED:
                return {**_payment_dict(payment), "activated": False}
            owner_id = payment.user_id

        # Outside any transaction: a timeout here raises before state is touched.
        verification = await self.gateway.verify_transaction(transaction_id)
        recipient: list[Recipient] = []

        async def work(db: AsyncSession) -> dict:
            recipient.clear()
            payment = await get_payment(db, transaction_id, for_update=True)
            if payment is None:
                raise NotFound("Payment not found")
            if payment.status == COMPLETED:
                return {**_payment_dict(payment), "activated": False}

            failure = self._failure_reason(payment, verification)
            if failure is not None:
                payment.status = FAILED
                payment.failure_reason = failure
                return {**_payment_dict(payment), "activated": False}

            payment.status = COMPLETED
            payment.completed_at = now
            payment.failure_reason = None
            sub = await self.lifecycle.apply_payment(db, payment.user_id, payment.plan_id, now)
            user = await db.get(User, payment.user_id)
            if user is not None:
                recipient.append(Recipient(user.id, user.phone_number, user.email, user.first_name))
            return {
                **_payment_dict(payment),
                "activated": True,
                "period_end_at": sub.period_end_at,
            }

        result = await serialized_transaction(
            self.session_factory, self.locks, subscription_key(owner_id), work, self.max_retries
        )

        if result["activated"]:
            logger.info("Payment %s completed, subscription active for user %s", transaction_id, owner_id)
            if recipient and self.notifier is not None:
                plan = get_plan(result["plan_id"])
                await self.notifier.notify(
                    recipient[0],
                    "subscription_confirmed",
                    {"plan_name": plan.name, "period_end_at": result["period_end_at"]},
                )
        elif result["status"] == FAILED:
            logger.warning("Payment %s failed verification: %s", transaction_id, result["failure_reason"])
        return result

    @staticmethod
    def _failure_reason(payment: Payment, verification: Verification) -> str | None:
        if not verification.succeeded:
            return verification.gateway_status or "Payment verification failed"
        if verification.amount is not None and verification.amount < payment.amount:
            return f"Amount mismatch: paid {verification.amount}, expected {payment.amount}"
        if verification.currency is not None and verification.currency != payment.currency:
            return f"Currency mismatch: paid {verification.currency}, expected {payment.currency}"
        return None

    async def handle_webhook(self, payload: dict) -> dict:
        """Process a signature-verified gateway event.

        Only ``charge.completed`` with ``successful`` triggers activation, and
        even then the charge is re-verified with the gateway first.
        """
        event = payload.get("event")
        data = payload.get("data") or {}
        if event != "charge.completed" or data.get("status") != "successful":
            logger.info("Ignoring payment webhook event %s (%s)", event, data.get("status"))
            return {"status": "ignored", "event": event}

        transaction_id = data.get("tx_ref")
        if not transaction_id:
            raise InvalidInput("Webhook payload has no tx_ref")

        try:
            result = await self.verify_and_activate(transaction_id)
        except NotFound:
            logger.warning("Webhook for unknown transaction %s", transaction_id)
            return {"status": "ignored", "event": event}
        return {"status": "processed", "event": event, "payment_status": result["status"]}

    async def history(self, db: AsyncSession, user_id: int, limit: int = 20) -> list[dict]:
        result = await db.execute(
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(limit)
        )
        return [_payment_dict(p) for p in result.scalars()]
