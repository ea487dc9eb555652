"""Tests for the per-date booking lock registry."""

import asyncio
from datetime import date

import pytest

from dental_os.scheduling.locks import BookingLockRegistry


async def test_same_date_is_serialized():
    registry = BookingLockRegistry()
    day = date(2026, 10, 20)
    events = []

    async def worker(name):
        async with registry.hold(day):
            events.append(f"{name}:in")
            await asyncio.sleep(0.01)
            events.append(f"{name}:out")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a:in", "a:out", "b:in", "b:out"],
        ["b:in", "b:out", "a:in", "a:out"],
    )
    assert len(registry) == 0


async def test_different_dates_do_not_block():
    registry = BookingLockRegistry()
    inside = asyncio.Event()

    async def holder():
        async with registry.hold(date(2026, 10, 20)):
            await inside.wait()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)
    async with registry.hold(date(2026, 10, 21)):
        assert len(registry) == 2
        inside.set()
    await task
    assert len(registry) == 0


async def test_lock_released_on_error():
    registry = BookingLockRegistry()
    day = date(2026, 10, 20)

    with pytest.raises(RuntimeError):
        async with registry.hold(day):
            raise RuntimeError("boom")

    async with registry.hold(day):
        assert len(registry) == 1
    assert len(registry) == 0
