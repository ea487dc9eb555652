"""Block occupancy built from the current booking set."""

import uuid
from typing import Iterable, Optional

from dental_os.scheduling.grid import expand_time_slot
from dental_os.scheduling.models import OCCUPYING_STATUSES, BookedSlot, SlotUsage


class SlotUsageIndex:
    """Aggregates bookings for one date into per-block counts.

    Build a fresh index for every availability read and inside every write
    critical section; bookings change concurrently, so an index is only
    valid for the snapshot it was built from.
    """

    @staticmethod
    def build(
        bookings: Iterable[BookedSlot],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> SlotUsage:
        usage = SlotUsage()
        for booking in bookings:
            if booking.status not in OCCUPYING_STATUSES:
                continue
            if exclude_id is not None and booking.id == exclude_id:
                continue
            for block in expand_time_slot(booking.start, booking.end):
                usage.global_counts[block] = usage.global_counts.get(block, 0) + 1
                if booking.dentist_id is not None:
                    usage.per_dentist.setdefault(booking.dentist_id, set()).add(block)
        return usage
