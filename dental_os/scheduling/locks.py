"""In-process critical sections for the booking write path."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date


class BookingLockRegistry:
    """One ``asyncio.Lock`` per booking date.

    Serializes the read-check-write sequence of concurrent requests inside
    one worker process. Cross-process serialization comes from the row
    locks taken by ``DentistScheduleRepository.lock_for_date``. Locks are
    dropped once nobody holds or awaits them, so the registry stays small
    and no lock outlives the event loop that created it.
    """

    def __init__(self) -> None:
        self._locks: dict[date, asyncio.Lock] = {}
        self._users: dict[date, int] = {}

    @asynccontextmanager
    async def hold(self, day: date) -> AsyncIterator[None]:
        lock = self._locks.setdefault(day, asyncio.Lock())
        self._users[day] = self._users.get(day, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[day] -= 1
            if self._users[day] == 0:
                del self._users[day]
                del self._locks[day]

    def __len__(self) -> int:
        return len(self._locks)


booking_locks = BookingLockRegistry()
