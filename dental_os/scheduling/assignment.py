"""Pick a concrete dentist for a requested start time."""

import logging
import uuid
from datetime import time
from typing import Iterable, Optional

from dental_os.scheduling.availability import covers
from dental_os.scheduling.engine import SlotAvailabilityEngine, contiguous_run
from dental_os.scheduling.exceptions import (
    ClinicClosedError,
    InvalidStartTimeError,
    NoDentistAvailableError,
    SlotFullError,
)
from dental_os.scheduling.grid import build_blocks, run_end
from dental_os.scheduling.models import (
    AssignmentDecision,
    ClinicDaySnapshot,
    DentistProfile,
    SlotUsage,
)

logger = logging.getLogger(__name__)


class DentistAssignmentResolver:
    """Decides which dentist takes a run of blocks.

    The decision is pure. Callers must build *usage* inside the same
    critical section that persists the booking, then persist immediately.
    """

    def validate_run(
        self, snapshot: ClinicDaySnapshot, start: time, duration_blocks: int
    ) -> list[time]:
        """Return the run for *start*, or raise if it is not bookable at all."""
        if not snapshot.is_open:
            raise ClinicClosedError()
        grid = build_blocks(snapshot.open_time, snapshot.close_time)
        if start not in grid:
            raise InvalidStartTimeError()
        run = contiguous_run(start, duration_blocks, set(grid))
        if run is None:
            try:
                end = run_end(start, duration_blocks)
            except ValueError:
                raise InvalidStartTimeError("Selected time is outside clinic hours.")
            if end > snapshot.close_time:
                raise InvalidStartTimeError("Selected time is outside clinic hours.")
            raise InvalidStartTimeError("Selected time overlaps the clinic's lunch break.")
        return run

    def assign(
        self,
        snapshot: ClinicDaySnapshot,
        dentists: Iterable[DentistProfile],
        usage: SlotUsage,
        start: time,
        duration_blocks: int,
        honor_preferred: bool = True,
        preferred_dentist_id: Optional[uuid.UUID] = None,
        force_dentist_id: Optional[uuid.UUID] = None,
    ) -> AssignmentDecision:
        run = self.validate_run(snapshot, start, duration_blocks)
        end = run_end(start, duration_blocks)
        if not snapshot.active_dentist_ids:
            raise NoDentistAvailableError()

        full_at = usage.first_full_block(run, snapshot.effective_capacity)
        if full_at is not None:
            raise SlotFullError(full_at)

        roster = {d.id: d for d in dentists}
        _, effective_honor = SlotAvailabilityEngine.preference(
            snapshot, honor_preferred, preferred_dentist_id
        )

        if force_dentist_id is not None:
            order = [force_dentist_id]
            effective_honor = False
        else:
            order = sorted(snapshot.active_dentist_ids)
            if effective_honor:
                order.remove(preferred_dentist_id)
                order.insert(0, preferred_dentist_id)

        eligible = [
            roster[dentist_id]
            for dentist_id in order
            if dentist_id in roster
            and dentist_id in snapshot.active_dentist_ids
            and covers(roster[dentist_id], snapshot, start, end)
        ]
        if not eligible:
            raise NoDentistAvailableError()

        for dentist in eligible:
            if usage.dentist_free(dentist.id, run):
                honored = effective_honor and dentist.id == preferred_dentist_id
                if effective_honor and not honored:
                    logger.info(
                        "Preferred dentist %s busy at %s on %s; assigning %s",
                        preferred_dentist_id,
                        start,
                        snapshot.date,
                        dentist.id,
                    )
                return AssignmentDecision(
                    dentist_id=dentist.id,
                    preferred_honored=honored,
                    start=start,
                    end=end,
                    blocks=run,
                )

        raise SlotFullError(start)
