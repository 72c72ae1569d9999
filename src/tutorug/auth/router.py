"""Account router — all /api/v1/auth/* endpoints."""

from __future__ import annotations

import jwt
import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.dependencies import get_current_user
from tutorug.auth.jwt import create_access_token, create_refresh_token, verify_token
from tutorug.auth.schemas import RefreshRequest, RegisterRequest, TokenResponse, UserResponse
from tutorug.auth.service import create_user, get_user_by_id
from tutorug.config import get_settings
from tutorug.database import get_session
from tutorug.db.models import User
from tutorug.db.serialization import is_unique_violation
from tutorug.dependencies import get_notification_service, get_subscription_lifecycle
from tutorug.errors import AlreadyRegistered, Forbidden, Unauthenticated
from tutorug.notifications.service import NotificationService, Recipient
from tutorug.subscriptions.lifecycle import SubscriptionLifecycle

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        phone_number=user.phone_number,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        display_name=user.display_name,
        current_class=user.current_class,
        created_at=user.created_at,
    )


def _issue_tokens(user: User) -> TokenResponse:
    """Create an access + refresh token pair."""
    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(user.id, user.phone_number),
        refresh_token=create_refresh_token(user.id, user.phone_number),
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_user_response(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
    notifier: NotificationService = Depends(get_notification_service),
) -> TokenResponse:
    """Create the account and its trial, then send the welcome message."""
    try:
        async with db.begin():
            user = await create_user(
                db,
                lifecycle,
                body.phone_number,
                first_name=body.first_name,
                last_name=body.last_name,
                email=body.email,
                current_class=body.current_class,
            )
    except IntegrityError as e:
        # Lost a race with a concurrent sign-up for the same phone or email.
        if is_unique_violation(e):
            raise AlreadyRegistered("Phone number or email is already registered") from e
        raise

    try:
        await notifier.notify(
            Recipient(user.id, user.phone_number, user.email, user.first_name),
            "welcome",
            {"trial_days": lifecycle.trial_duration_days},
        )
    except Exception:
        logger.exception("welcome_notification_failed", user_id=user.id)

    logger.info("user_registered", user_id=user.id)
    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise Unauthenticated(str(e) or "Invalid refresh token") from e

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise Unauthenticated("User not found")
    if user.is_banned:
        raise Forbidden("Account is banned")
    return _issue_tokens(user)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return _user_response(user)
