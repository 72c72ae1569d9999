"""Shared FastAPI dependencies.

Services are built per request from process-wide resources (session factory,
Redis pool, per-user lock registry). Tests swap them via
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from tutorug.config import get_settings
from tutorug.database import get_session_factory
from tutorug.notifications.service import NotificationService, create_notification_service
from tutorug.payments.gateway import create_payment_gateway
from tutorug.payments.service import PaymentService
from tutorug.quizzes.activity import QuizActivityCounter
from tutorug.redis_client import get_optional_redis
from tutorug.reputation.engine import ReputationEngine
from tutorug.reputation.tables import DEFAULT_CONFIG
from tutorug.subscriptions.lifecycle import SubscriptionLifecycle
from tutorug.tutor.chat_service import ChatService
from tutorug.tutor.llm import LLMProvider, create_llm_provider


def get_reputation_engine() -> ReputationEngine:
    settings = get_settings()
    return ReputationEngine(
        get_session_factory(),
        DEFAULT_CONFIG,
        activity=QuizActivityCounter(),
        redis=get_optional_redis(),
        max_retries=settings.conflict_max_retries,
        max_bonus_rounds=settings.max_bonus_rounds,
    )


def get_notification_service() -> NotificationService:
    return create_notification_service()


def get_subscription_lifecycle(
    notifier: NotificationService = Depends(get_notification_service),
) -> SubscriptionLifecycle:
    settings = get_settings()
    return SubscriptionLifecycle(
        get_session_factory(),
        notifier=notifier,
        trial_duration_days=settings.trial_duration_days,
        max_retries=settings.conflict_max_retries,
    )


def get_payment_service(
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
    notifier: NotificationService = Depends(get_notification_service),
) -> PaymentService:
    return PaymentService(
        get_session_factory(),
        gateway=create_payment_gateway(),
        lifecycle=lifecycle,
        notifier=notifier,
        max_retries=get_settings().conflict_max_retries,
    )


@lru_cache
def get_llm_provider() -> LLMProvider:
    """One SDK client per process (it pools connections)."""
    return create_llm_provider()


def get_chat_service(
    llm: LLMProvider = Depends(get_llm_provider),
    reputation: ReputationEngine = Depends(get_reputation_engine),
) -> ChatService:
    return ChatService(llm, reputation)
