"""Slot availability engine for DentalOS."""

import logging
import uuid
from datetime import time
from typing import Iterable, Optional

from dental_os.scheduling.availability import covers
from dental_os.scheduling.exceptions import InvalidStartTimeError
from dental_os.scheduling.grid import block_run, build_blocks, run_end
from dental_os.scheduling.models import (
    AvailabilityResult,
    ClinicDaySnapshot,
    DentistProfile,
    SlotUsage,
)

logger = logging.getLogger(__name__)


def contiguous_run(
    start: time, duration_blocks: int, grid: set[time]
) -> Optional[list[time]]:
    """The run from *start* if every block is on the grid, else None.

    Runs that would cross lunch or closing are rejected rather than
    truncated or stretched.
    """
    try:
        run = block_run(start, duration_blocks)
    except InvalidStartTimeError:
        return None
    if any(block not in grid for block in run):
        return None
    return run


def overlaps(start: time, end: time, other_start: time, other_end: time) -> bool:
    return start < other_end and end > other_start


class SlotAvailabilityEngine:
    """Computes the bookable start times for a date and service length.

    All inputs are values: the day snapshot, the dentist roster and a usage
    index built by the caller from the latest committed bookings.
    """

    # ------------------------------------------------------------------
    # Preference resolution
    # ------------------------------------------------------------------

    @staticmethod
    def preference(
        snapshot: ClinicDaySnapshot,
        honor_preferred: bool,
        preferred_dentist_id: Optional[uuid.UUID],
    ) -> tuple[bool, bool]:
        """Return ``(preferred_active, effective_honor)`` for the snapshot."""
        preferred_active = (
            preferred_dentist_id is not None
            and preferred_dentist_id in snapshot.active_dentist_ids
        )
        return preferred_active, bool(honor_preferred and preferred_active)

    # ------------------------------------------------------------------
    # Available starts
    # ------------------------------------------------------------------

    def available_starts(
        self,
        snapshot: ClinicDaySnapshot,
        dentists: Iterable[DentistProfile],
        usage: SlotUsage,
        duration_blocks: int,
        honor_preferred: bool = True,
        preferred_dentist_id: Optional[uuid.UUID] = None,
        not_before: Optional[time] = None,
        patient_busy: Iterable[tuple[time, time]] = (),
    ) -> AvailabilityResult:
        """Return every start whose whole run can be booked.

        With an effective preference only the preferred dentist's hours and
        bookings are considered; otherwise a start qualifies when at least
        one active dentist covers and is free for the entire run. Global
        capacity applies in both modes. *not_before* drops earlier starts
        (same-day booking) and *patient_busy* drops starts overlapping the
        patient's own bookings.
        """
        preferred_active, effective_honor = self.preference(
            snapshot, honor_preferred, preferred_dentist_id
        )
        result = AvailabilityResult(
            date=snapshot.date,
            preferred_dentist_id=preferred_dentist_id,
            preferred_dentist_active=preferred_active,
            requested_honor_preferred_dentist=honor_preferred,
            effective_honor_preferred_dentist=effective_honor,
        )
        if not snapshot.is_open:
            return result

        grid = build_blocks(snapshot.open_time, snapshot.close_time)
        if not grid:
            return result

        roster = {d.id: d for d in dentists}
        if effective_honor:
            candidates = [roster[preferred_dentist_id]] if preferred_dentist_id in roster else []
        else:
            candidates = [
                roster[dentist_id]
                for dentist_id in sorted(snapshot.active_dentist_ids)
                if dentist_id in roster
            ]

        busy = list(patient_busy)
        grid_set = set(grid)
        capacity = snapshot.effective_capacity
        slots: list[time] = []

        for start in grid:
            if not_before is not None and start < not_before:
                continue
            run = contiguous_run(start, duration_blocks, grid_set)
            if run is None:
                continue
            end = run_end(start, duration_blocks)
            if not usage.global_free(run, capacity):
                continue
            if not any(
                covers(dentist, snapshot, start, end) and usage.dentist_free(dentist.id, run)
                for dentist in candidates
            ):
                continue
            if any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy):
                continue
            slots.append(start)

        logger.debug(
            "Available starts on %s (blocks=%d, honor=%s): %d",
            snapshot.date,
            duration_blocks,
            effective_honor,
            len(slots),
        )
        return result.model_copy(update={"slots": slots})
