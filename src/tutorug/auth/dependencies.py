"""FastAPI access-control dependencies.

401 (``Unauthenticated``) means "log in"; 403 (``SubscriptionRequired``) means
"renew"; clients route on the ``code`` field of the error body.
"""

from __future__ import annotations

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.jwt import verify_token
from tutorug.auth.service import get_user_by_id
from tutorug.database import get_session
from tutorug.db.models import User
from tutorug.db.types import utcnow
from tutorug.errors import Forbidden, SubscriptionRequired, Unauthenticated
from tutorug.subscriptions.lifecycle import get_subscription, has_access

# auto_error=False so a missing header is our 401, not FastAPI's 403.
_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Extract and verify the bearer JWT, return the User."""
    if credentials is None:
        raise Unauthenticated("Missing bearer token")
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise Unauthenticated(str(e) or "Invalid token") from e

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise Unauthenticated("User not found")
    if user.is_banned:
        raise Forbidden("Account is banned")
    return user


async def require_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Like ``get_current_user`` but also requires trial or paid access right now."""
    if not has_access(await get_subscription(db, user.id), utcnow()):
        raise SubscriptionRequired("Your trial or subscription has ended")
    return user


def ensure_owner(resource_owner_id: int, user: User) -> None:
    """Raise ``Forbidden`` unless ``user`` owns the resource."""
    if resource_owner_id != user.id:
        raise Forbidden("This resource belongs to another user")
