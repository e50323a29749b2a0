"""Tests for keyed scheduling locks and transition tables."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.core.exceptions import IllegalTransitionException, LockTimeoutException
from app.core.locks import (
    LocalLockManager,
    RedisLockManager,
    booking_lock_key,
    waiting_list_lock_key,
)
from app.core.state_machine import TransitionTable
from app.services.appointment_service import APPOINTMENT_TRANSITIONS


def test_lock_keys_are_scoped():
    doctor = uuid4()
    assert booking_lock_key(doctor, date(2026, 3, 2)) == f"lock:booking:{doctor}:2026-03-02"
    assert booking_lock_key(doctor, date(2026, 3, 2)) != booking_lock_key(doctor, date(2026, 3, 3))
    assert waiting_list_lock_key(doctor).startswith("lock:waiting-list:")


@pytest.mark.asyncio
async def test_local_lock_serializes_same_key():
    locks = LocalLockManager(wait_seconds=1)
    order: list[str] = []

    async def worker(name: str):
        async with locks.hold("lock:booking:a"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("first"), worker("second"))

    assert order == ["first-in", "first-out", "second-in", "second-out"]
    assert not locks.is_held("lock:booking:a")


@pytest.mark.asyncio
async def test_local_lock_does_not_block_other_keys():
    locks = LocalLockManager(wait_seconds=1)

    async with locks.hold("lock:booking:a"):
        async with locks.hold("lock:booking:b"):
            assert locks.is_held("lock:booking:a")
            assert locks.is_held("lock:booking:b")


@pytest.mark.asyncio
async def test_local_lock_times_out():
    locks = LocalLockManager(wait_seconds=0.05)

    async with locks.hold("lock:booking:a"):
        with pytest.raises(LockTimeoutException) as exc_info:
            async with locks.hold("lock:booking:a"):
                pass

    assert exc_info.value.status_code == 503
    assert not locks.is_held("lock:booking:a")


@pytest.mark.asyncio
async def test_redis_lock_acquires_and_releases():
    redis_lock = MagicMock()
    redis_lock.acquire = AsyncMock(return_value=True)
    redis_lock.release = AsyncMock()
    client = MagicMock()
    client.lock.return_value = redis_lock
    locks = RedisLockManager(client, lease_seconds=30, wait_seconds=5)

    async with locks.hold("lock:booking:a"):
        redis_lock.release.assert_not_awaited()

    client.lock.assert_called_once_with("lock:booking:a", timeout=30, blocking_timeout=5)
    redis_lock.release.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_lock_wait_timeout():
    redis_lock = MagicMock()
    redis_lock.acquire = AsyncMock(return_value=False)
    client = MagicMock()
    client.lock.return_value = redis_lock
    locks = RedisLockManager(client, lease_seconds=30, wait_seconds=0)

    with pytest.raises(LockTimeoutException):
        async with locks.hold("lock:booking:a"):
            pass


def test_transition_table_rejects_unknown_pairs():
    table = TransitionTable("widget", {"new": {"open"}, "open": {"closed"}})

    table.ensure("new", "open")
    with pytest.raises(IllegalTransitionException) as exc_info:
        table.ensure("closed", "open", action="reopen")

    assert exc_info.value.details == {
        "entity": "widget",
        "from_status": "closed",
        "to_status": "open",
        "action": "reopen",
    }
    assert "cannot reopen: widget is already closed" in exc_info.value.message
    assert table.is_terminal("closed")


def test_appointment_walks():
    assert APPOINTMENT_TRANSITIONS.is_legal_walk(
        ["scheduled", "confirmed", "checked_in", "in_progress", "completed"], "scheduled"
    )
    assert not APPOINTMENT_TRANSITIONS.is_legal_walk(["scheduled", "checked_in"], "scheduled")
    assert not APPOINTMENT_TRANSITIONS.is_legal_walk(["completed", "cancelled"], "completed")
