"""
Per-mentor serialisation for read-check-write sequences.

A mentor's schedule has a single logical owner: every booking, completion
and incremental rating update for one mentor runs inside ``mentor_lock``.
The in-process lock covers concurrent requests in this worker; callers also
``SELECT ... FOR UPDATE`` the mentor row so PostgreSQL serialises writers
across workers. Storage-level contention is retried by ``retry_on_contention``.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError

from config import settings
from exceptions import ConflictException

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Storage errors a fresh attempt under the mentor lock can clear
CONTENTION_ERRORS = (OperationalError, IntegrityError)

_MENTOR_LOCKS: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(mentor_id: uuid.UUID) -> asyncio.Lock:
    lock = _MENTOR_LOCKS.get(mentor_id)
    if lock is None:
        lock = asyncio.Lock()
        _MENTOR_LOCKS[mentor_id] = lock
    return lock


@asynccontextmanager
async def mentor_lock(mentor_id: uuid.UUID) -> AsyncIterator[None]:
    lock = _lock_for(mentor_id)
    async with lock:
        yield


def retry_on_contention(operation: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retry an async unit of work when the database reports lock contention
    or a concurrent writer got to a unique row first.

    The wrapped callable must take the ``AsyncSession`` as its first
    argument; the session is rolled back before each retry. After
    ``booking_max_retries`` attempts the failure surfaces as a conflict.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(session, *args, **kwargs) -> T:
            attempts = max(1, settings.booking_max_retries)
            for attempt in range(1, attempts + 1):
                try:
                    return await func(session, *args, **kwargs)
                except CONTENTION_ERRORS as exc:
                    await session.rollback()
                    logger.warning(
                        "contention_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "error": str(exc.orig) if exc.orig else str(exc),
                        },
                    )
                    if attempt == attempts:
                        raise ConflictException(
                            f"Could not complete {operation}: the schedule is busy, please retry",
                            code="SCHEDULE_BUSY",
                            details={"attempts": attempts},
                        ) from exc
                    await asyncio.sleep(settings.booking_retry_backoff_seconds * attempt)
            raise AssertionError("unreachable")

        return wrapper

    return decorator
