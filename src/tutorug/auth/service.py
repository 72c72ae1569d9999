"""
Account business logic.

Every account is created together with its trial subscription.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from tutorug.auth.phone_validation import normalize_phone_number
from tutorug.db.models import User
from tutorug.db.types import utcnow
from tutorug.errors import AlreadyRegistered, InvalidInput

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from tutorug.subscriptions.lifecycle import SubscriptionLifecycle

logger = structlog.get_logger()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_phone(db: AsyncSession, phone_number: str) -> User | None:
    """Fetch a user by phone number (any accepted format)."""
    result = await db.execute(select(User).where(User.phone_number == normalize_phone_number(phone_number)))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    lifecycle: SubscriptionLifecycle,
    phone_number: str,
    first_name: str | None = None,
    last_name: str | None = None,
    email: str | None = None,
    current_class: str = "S1",
    now: datetime | None = None,
) -> User:
    """
    Create a user and start their trial in the caller's transaction.

    Raises:
        InvalidInput: If the phone number is invalid.
        AlreadyRegistered: If the phone number is already registered.
    """
    try:
        normalized = normalize_phone_number(phone_number)
    except ValueError as e:
        raise InvalidInput(str(e)) from e

    if await get_user_by_phone(db, normalized) is not None:
        raise AlreadyRegistered("Phone number is already registered")

    if now is None:
        now = utcnow()
    user = User(
        phone_number=normalized,
        email=email.lower() if email else None,
        first_name=first_name,
        last_name=last_name,
        current_class=current_class,
        is_banned=False,
        created_at=now,
    )
    db.add(user)
    await db.flush()
    await lifecycle.start_trial(db, user.id, now)

    logger.info("user_created", user_id=user.id)
    return user
