"""Subscription API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.dependencies import get_current_user
from tutorug.database import get_session
from tutorug.db.models import User
from tutorug.dependencies import get_subscription_lifecycle
from tutorug.subscriptions.lifecycle import SubscriptionLifecycle
from tutorug.subscriptions.schemas import SubscriptionStatusResponse

router = APIRouter(prefix="/api/v1/subscriptions", tags=["Subscriptions"])


@router.get("/me", response_model=SubscriptionStatusResponse)
async def my_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
):
    """Stored and effective status; never mutates (sweeps own expiry)."""
    return SubscriptionStatusResponse(**await lifecycle.get_status(db, user.id))


@router.post("/cancel", response_model=SubscriptionStatusResponse)
async def cancel_subscription(
    user: User = Depends(get_current_user),
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
):
    """Cancel; access continues until the end of the paid period."""
    return SubscriptionStatusResponse(**await lifecycle.cancel(user.id))
