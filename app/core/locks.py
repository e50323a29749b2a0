"""Keyed mutual exclusion for scheduling writes.

Booking, rescheduling and waiting-list promotion for one doctor on one date
must run their overlap check and insert under the same key. Two backends are
available: in-process asyncio locks for a single worker, and redis locks when
several workers share the database.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import date
from typing import Protocol
from uuid import UUID

import structlog
from redis.exceptions import LockError

from app.config import settings
from app.core.exceptions import LockTimeoutException
from app.core.redis_client import get_async_redis_client

logger = structlog.get_logger(__name__)


def booking_lock_key(doctor_id: UUID, on_date: date) -> str:
    """Serialization key for bookings of one doctor on one date."""
    return f"lock:booking:{doctor_id}:{on_date.isoformat()}"


def waiting_list_lock_key(facility_id: UUID) -> str:
    """Serialization key for the active waiting-list queue of one facility."""
    return f"lock:waiting-list:{facility_id}"


class LockManager(Protocol):
    """Hands out exclusive, blocking locks by key."""

    def hold(self, key: str) -> AbstractAsyncContextManager[None]:  # pragma: no cover
        ...


class LocalLockManager:
    """In-process keyed locks backed by ``asyncio.Lock``."""

    def __init__(self, wait_seconds: float | None = None):
        self.wait_seconds = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Block until ``key`` is free, then hold it for the duration of the block."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except TimeoutError:
                logger.warning("lock_wait_timeout", key=key, backend="local")
                raise LockTimeoutException(key) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # Nobody is waiting; drop the lock so the table does not grow unbounded.
                del self._holders[key]
                del self._locks[key]

    def is_held(self, key: str) -> bool:
        """Return True while some task holds ``key``."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class RedisLockManager:
    """Distributed keyed locks using redis ``SET NX PX`` leases."""

    def __init__(self, client, lease_seconds: float, wait_seconds: float):
        self.client = client
        self.lease_seconds = lease_seconds
        self.wait_seconds = wait_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Block until ``key`` is free, then hold it for the duration of the block."""
        lock = self.client.lock(
            key,
            timeout=self.lease_seconds,
            blocking_timeout=self.wait_seconds,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("lock_wait_timeout", key=key, backend="redis")
            raise LockTimeoutException(key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # The lease expired before release; the write has already committed or rolled back.
                logger.error("lock_release_failed", key=key, error=str(e))


_lock_manager: LocalLockManager | RedisLockManager | None = None


def get_lock_manager() -> LocalLockManager | RedisLockManager:
    """
    Get or create the configured lock manager.

    Returns:
        Lock manager for the ``BOOKING_LOCK_BACKEND`` setting
    """
    global _lock_manager

    if _lock_manager is None:
        if settings.booking_lock_backend == "redis":
            _lock_manager = RedisLockManager(
                get_async_redis_client(),
                lease_seconds=settings.booking_lock_timeout_seconds,
                wait_seconds=settings.booking_lock_wait_seconds,
            )
        else:
            _lock_manager = LocalLockManager(wait_seconds=settings.booking_lock_wait_seconds)

    return _lock_manager
