"""Per-user serialization of read-modify-write transactions.

Two layers:

1. ``UserLockRegistry``: an in-process ``asyncio.Lock`` per key, so concurrent
   requests for the same user inside one worker queue up instead of racing.
2. Optimistic versioning (``version_id_col`` on the models): catches writers in
   other processes. A stale write raises ``StaleDataError`` at flush; the whole
   transaction is retried with ``tenacity`` and surfaced as
   ``ConcurrencyConflict`` once retries run out.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from tutorug.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UserLockRegistry:
    """Hands out one ``asyncio.Lock`` per key; unused locks are garbage collected."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.lock_for(key)
        async with lock:
            yield


# Shared by every service in the process.
user_locks = UserLockRegistry()


UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True for a duplicate-key race (two writers creating the same row).

    Foreign-key and check-constraint failures are caller errors, never retried.
    """
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        sqlstate = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
        if sqlstate:
            return sqlstate == UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(exc.orig)


def is_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    return isinstance(exc, IntegrityError) and is_unique_violation(exc)


def reputation_key(user_id: int) -> str:
    return f"reputation:{user_id}"


def subscription_key(user_id: int) -> str:
    return f"subscription:{user_id}"


async def serialized_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    locks: UserLockRegistry,
    key: str,
    work: Callable[[AsyncSession], Awaitable[T]],
    max_retries: int = 3,
) -> T:
    """Run ``work`` in its own committed transaction while holding ``key``.

    ``work`` must be safe to re-run from scratch: each attempt gets a fresh
    session and nothing from a failed attempt is committed.
    """
    async with locks.hold(key):
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_retries + 1),
                wait=wait_exponential(multiplier=0.01, max=0.5),
                retry=retry_if_exception(is_conflict),
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "Retrying %s after conflict (attempt %d)",
                            key,
                            attempt.retry_state.attempt_number,
                        )
                    async with session_factory() as db:
                        async with db.begin():
                            result = await work(db)
        except RetryError as exc:
            logger.warning("Giving up on %s after %d attempts", key, max_retries + 1)
            raise ConcurrencyConflict(f"Concurrent update on {key}, please retry") from exc
    return result
