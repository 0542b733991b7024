"""
Per-key serialization for inventory and booking mutations.

Every mutating operation acquires the full set of keys it touches before
opening its transaction: the booking, its hold token and one key per
(room type, date). Keys are always taken in the same global order so two
operations with overlapping key sets cannot deadlock. On PostgreSQL the same
keys are additionally taken as transaction-scoped advisory locks so several
application processes serialize against each other.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, TypeVar
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lock acquisition order by key kind
_KIND_ORDER = {"external": 0, "booking": 1, "hold": 2, "inventory": 3, "sweep": 4}

# SQLSTATEs for serialization failure, deadlock and lock_not_available
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


def booking_key(booking_id: UUID | str) -> str:
    return f"booking:{booking_id}"


def hold_key(hold_token: str) -> str:
    return f"hold:{hold_token}"


def inventory_key(room_type_id: UUID | str, day: date) -> str:
    return f"inventory:{room_type_id}:{day.isoformat()}"


def external_reservation_key(source: str, external_reservation_id: str) -> str:
    return f"external:{source}:{external_reservation_id}"


def _sort_key(key: str) -> tuple[int, str]:
    kind = key.split(":", 1)[0]
    return _KIND_ORDER.get(kind, len(_KIND_ORDER)), key


def ordered_keys(keys: Iterable[str]) -> list[str]:
    """Deduplicate and sort keys into the global acquisition order."""
    return sorted(set(keys), key=_sort_key)


class KeyedLockRegistry:
    """
    In-process registry of asyncio locks, one per key.

    Locks are created on first use and dropped once nobody holds or waits
    for them, so the registry only ever contains contended keys.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
            self._users[key] = 0
        self._users[key] += 1
        return lock

    def _checkin(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, keys: Iterable[str], timeout: float | None = None) -> AsyncIterator[list[str]]:
        """
        Acquire every key in global order, waiting at most ``timeout`` per key.

        Raises:
            ConcurrencyConflictError: If any key could not be acquired in time
        """
        wait = self.timeout_seconds if timeout is None else timeout
        acquired: list[str] = []
        keys = ordered_keys(keys)
        try:
            for key in keys:
                lock = self._checkout(key)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=wait)
                except asyncio.TimeoutError:
                    self._checkin(key)
                    logger.warning(
                        "Timed out waiting for lock",
                        extra={"lock_key": key, "timeout_seconds": wait},
                    )
                    raise ConcurrencyConflictError(
                        detail=f"Timed out waiting for {key}", resource=key
                    ) from None
                except asyncio.CancelledError:
                    self._checkin(key)
                    raise
                acquired.append(key)
            yield keys
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._checkin(key)

    @asynccontextmanager
    async def try_hold(self, key: str) -> AsyncIterator[bool]:
        """Non-blocking single-key acquisition; yields False if the key is busy."""
        lock = self._checkout(key)
        if lock.locked():
            self._checkin(key)
            yield False
            return
        await lock.acquire()
        try:
            yield True
        finally:
            lock.release()
            self._checkin(key)


async def acquire_advisory_locks(session: AsyncSession, keys: Iterable[str]) -> None:
    """
    Take PostgreSQL transaction-scoped advisory locks for the given keys.

    The locks are released automatically when the transaction ends. Other
    dialects (SQLite in tests) rely on the in-process registry alone.
    """
    if not is_postgresql(session):
        return
    for key in ordered_keys(keys):
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
            {"lock_key": key},
        )


async def try_session_advisory_lock(session: AsyncSession, key: str) -> bool:
    """Session-scoped, non-blocking advisory lock (PostgreSQL only, otherwise always True)."""
    if not is_postgresql(session):
        return True
    result = await session.execute(
        text("SELECT pg_try_advisory_lock(hashtext(:lock_key))"), {"lock_key": key}
    )
    return bool(result.scalar())


async def release_session_advisory_lock(session: AsyncSession, key: str) -> None:
    if not is_postgresql(session):
        return
    await session.execute(
        text("SELECT pg_advisory_unlock(hashtext(:lock_key))"), {"lock_key": key}
    )


def is_postgresql(session: AsyncSession) -> bool:
    return bool(session.bind and session.bind.dialect.name == "postgresql")


def is_contention_error(exc: DBAPIError) -> bool:
    """True for serialization failures, deadlocks and busy SQLite databases."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_seconds: float,
    name: str,
) -> T:
    """
    Run ``operation`` retrying on concurrency conflicts with exponential backoff.

    Database contention errors are translated into ConcurrencyConflictError.
    Any other error propagates immediately.
    """
    attempt = 1
    while True:
        try:
            try:
                return await operation()
            except DBAPIError as exc:
                if not is_contention_error(exc):
                    raise
                raise ConcurrencyConflictError(
                    detail=f"{name} hit a database conflict, please retry"
                ) from exc
        except ConcurrencyConflictError:
            if attempt >= attempts:
                logger.warning(
                    "Concurrency conflict persisted after retries",
                    extra={"operation": name, "attempts": attempt},
                )
                raise
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.info(
                "Retrying after concurrency conflict",
                extra={"operation": name, "attempt": attempt, "delay_seconds": delay},
            )
            attempt += 1
            await asyncio.sleep(delay)
