"""30-minute booking grid and block arithmetic."""

import math
from datetime import time
from typing import Iterator

from dental_os.scheduling.exceptions import InvalidStartTimeError

BLOCK_MINUTES = 30

# Lunch is process-wide, not configurable per clinic.
LUNCH_START = time(12, 0)
LUNCH_END = time(13, 0)

_MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < _MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    return from_minutes(to_minutes(value) + minutes)


def parse_time(value: str) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a time truncated to minutes."""
    text = value.strip()
    if len(text) not in (5, 8) or text[2] != ":":
        raise ValueError(f"Invalid time: {value!r}")
    parsed = time.fromisoformat(text)
    if parsed.tzinfo is not None:
        raise ValueError(f"Invalid time: {value!r}")
    return parsed.replace(second=0, microsecond=0)


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def parse_time_slot(value: str) -> tuple[time, time]:
    """Parse ``"HH:MM-HH:MM"`` into a (start, end) pair."""
    if "-" not in value:
        raise ValueError(f"Invalid time slot: {value!r}")
    start_raw, end_raw = value.split("-", 1)
    return parse_time(start_raw), parse_time(end_raw)


def format_time_slot(start: time, end: time) -> str:
    return f"{format_time(start)}-{format_time(end)}"


def is_lunch(block: time) -> bool:
    return LUNCH_START <= block < LUNCH_END


def blocks_for_minutes(minutes: int | None) -> int:
    """Number of blocks a service of *minutes* occupies (at least one)."""
    return max(1, math.ceil((minutes or BLOCK_MINUTES) / BLOCK_MINUTES))


def build_blocks(open_time: time, close_time: time) -> list[time]:
    """Return bookable block starts between *open_time* and *close_time*.

    A start is kept only when a full block fits before closing, and starts
    falling in the lunch window are dropped. ``open >= close`` gives ``[]``.
    """
    blocks: list[time] = []
    cursor = to_minutes(open_time)
    close = to_minutes(close_time)
    while cursor + BLOCK_MINUTES <= close:
        block = from_minutes(cursor)
        if not is_lunch(block):
            blocks.append(block)
        cursor += BLOCK_MINUTES
    return blocks


def block_run(start: time, count: int) -> list[time]:
    """Return the *count* consecutive block starts beginning at *start*."""
    if count < 1:
        raise ValueError("a run needs at least one block")
    first = to_minutes(start)
    last_end = first + count * BLOCK_MINUTES
    if last_end >= _MINUTES_PER_DAY:
        raise InvalidStartTimeError("Selected time is outside clinic hours.")
    return [from_minutes(first + i * BLOCK_MINUTES) for i in range(count)]


def run_end(start: time, count: int) -> time:
    return add_minutes(start, count * BLOCK_MINUTES)


def expand_time_slot(start: time, end: time) -> Iterator[time]:
    """Yield every block a booking from *start* to *end* occupies."""
    cursor = to_minutes(start)
    stop = to_minutes(end)
    while cursor < stop:
        yield from_minutes(cursor)
        cursor += BLOCK_MINUTES


def next_block_after(moment: time) -> time | None:
    """First grid boundary strictly after the current block.

    ``10:00 -> 10:30`` and ``13:16 -> 13:30``; None once the day is over.
    """
    minutes = ((to_minutes(moment) + BLOCK_MINUTES) // BLOCK_MINUTES) * BLOCK_MINUTES
    if minutes >= _MINUTES_PER_DAY:
        return None
    return from_minutes(minutes)
