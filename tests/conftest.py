"""Shared test fixtures.

Every test gets its own SQLite database file (aiosqlite) with the schema built
from the ORM metadata. Outbound providers (SMS, email, payment gateway, LLM)
are replaced with mocks; nothing leaves the process.
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorug.auth.jwt import create_access_token
from tutorug.auth.service import create_user
from tutorug.config import get_settings
from tutorug.database import close_db, get_engine, get_session_factory, init_db
from tutorug.db.base import Base
from tutorug.db.models import User
from tutorug.db.serialization import UserLockRegistry
from tutorug.payments.gateway import ChargeResult, Verification
from tutorug.reputation.engine import ReputationEngine
from tutorug.reputation.tables import ReputationConfig
from tutorug.subscriptions.lifecycle import SubscriptionLifecycle
from tutorug.tutor.llm import Completion, LLMProvider

WEBHOOK_SECRET = "whsec-test-secret"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Point settings at a throwaway SQLite file and known secrets."""
    monkeypatch.setenv("TUTORUG_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'tutorug_test.db'}")
    monkeypatch.setenv("TUTORUG_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
    monkeypatch.setenv("TUTORUG_PAYMENT_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("TUTORUG_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Initialised engine with a freshly created schema."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_session_factory()
    await close_db()


@pytest.fixture
def locks() -> UserLockRegistry:
    return UserLockRegistry()


@pytest.fixture
def notifier() -> MagicMock:
    """Stands in for ``NotificationService``; assert on ``notify.await_args_list``."""
    mock = MagicMock()
    mock.notify = AsyncMock(return_value={})
    return mock


@pytest.fixture
def lifecycle(session_factory, notifier, locks) -> SubscriptionLifecycle:
    return SubscriptionLifecycle(session_factory, notifier=notifier, locks=locks)


@pytest.fixture
def flat_config() -> ReputationConfig:
    """No badges or achievements, so totals are exactly the sum of awards."""
    return ReputationConfig(badges=(), achievements=())


@pytest.fixture
def engine(session_factory, locks) -> ReputationEngine:
    return ReputationEngine(session_factory, locks=locks)


@pytest_asyncio.fixture
async def make_user(session_factory, lifecycle) -> Callable[..., Awaitable[User]]:
    """Factory creating committed users (each with a trial starting at ``now``)."""
    counter = itertools.count(1)

    async def _make(now: datetime | None = None, **kwargs: object) -> User:
        phone = f"07{next(counter):08d}"
        async with session_factory() as db:
            async with db.begin():
                user = await create_user(db, lifecycle, phone, now=now, **kwargs)
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.phone_number)}"}

    return _headers


class FakeGateway:
    """Gateway double: charges always succeed, verification is configurable."""

    def __init__(self) -> None:
        self.create_charge = AsyncMock(side_effect=self._charge)
        self.verify_transaction = AsyncMock(
            return_value=Verification(succeeded=True, amount=25000, currency="UGX", gateway_status="successful")
        )

    async def _charge(self, customer, plan, transaction_id) -> ChargeResult:
        return ChargeResult(
            payment_url=f"https://checkout.example/pay/{transaction_id}",
            transaction_id=transaction_id,
            gateway_ref=f"FLW-{transaction_id}",
        )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


class FakeLLM(LLMProvider):
    """Deterministic tutor; set ``fail_with`` or ``flag`` to simulate problems."""

    def __init__(self, reply: str = "Photosynthesis turns light into chemical energy.") -> None:
        self.reply = reply
        self.fail_with: Exception | None = None
        self.flag = False
        self.calls: list[tuple[str, list[dict[str, str]]]] = []

    async def complete(self, system_prompt: str, history: list[dict[str, str]]) -> Completion:
        self.calls.append((system_prompt, history))
        if self.fail_with is not None:
            raise self.fail_with
        return Completion(text=self.reply, tokens_used=42, model_id="gpt-test")

    async def moderate(self, text: str) -> bool:
        return self.flag


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest_asyncio.fixture
async def client(session_factory, notifier, gateway, llm) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, with providers swapped for test doubles."""
    from tutorug.dependencies import get_llm_provider, get_notification_service, get_payment_service
    from tutorug.main import create_app
    from tutorug.payments.service import PaymentService

    app = create_app()
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_llm_provider] = lambda: llm
    app.dependency_overrides[get_payment_service] = lambda: PaymentService(
        session_factory,
        gateway=gateway,
        lifecycle=SubscriptionLifecycle(session_factory, notifier=notifier),
        notifier=notifier,
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
