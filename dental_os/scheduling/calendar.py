"""Resolve a date into the clinic's opening, capacity and dentist roster."""

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from dental_os.scheduling.availability import is_working
from dental_os.scheduling.exceptions import InvalidDateError
from dental_os.scheduling.models import (
    CalendarException,
    ClinicDayTemplate,
    ClinicDaySnapshot,
    DentistProfile,
    Weekday,
)

logger = logging.getLogger(__name__)


def parse_date(value: object) -> date:
    """Parse a ``YYYY-MM-DD`` value, raising InvalidDateError on anything else."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError("Invalid or missing date.")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidDateError(f"Invalid date: {value!r}. Expected YYYY-MM-DD.")


class ClinicCalendarResolver:
    """Combines weekly templates and one-off calendar exceptions.

    An exception for the exact date wins over the weekly template for
    opening, hours and per-block cap. When an exception opens a day without
    giving hours, the template's hours are used.
    """

    def __init__(
        self,
        templates: Iterable[ClinicDayTemplate],
        exceptions: Iterable[CalendarException] = (),
    ) -> None:
        self._templates = {t.weekday: t for t in templates}
        self._exceptions = {e.date: e for e in exceptions}

    def template_for(self, day: date) -> Optional[ClinicDayTemplate]:
        return self._templates.get(Weekday.of(day))

    def exception_for(self, day: date) -> Optional[CalendarException]:
        return self._exceptions.get(day)

    def resolve(self, day: date, dentists: Iterable[DentistProfile]) -> ClinicDaySnapshot:
        template = self.template_for(day)
        override = self.exception_for(day)

        is_open = template.is_open if template else False
        open_time = template.open_time if template else None
        close_time = template.close_time if template else None
        max_per_block = template.max_per_block if template else None

        if override is not None:
            is_open = override.is_open
            open_time = override.open_time or open_time
            close_time = override.close_time or close_time
            if override.max_per_block is not None:
                max_per_block = override.max_per_block

        if not is_open or open_time is None or close_time is None:
            return ClinicDaySnapshot.closed(day)
        if open_time >= close_time:
            logger.warning(
                "Ignoring inverted clinic hours on %s: %s-%s", day, open_time, close_time
            )
            return ClinicDaySnapshot.closed(day)

        active = {d.id for d in dentists if is_working(d, day)}
        if override is not None and override.dentist_ids is not None:
            active &= set(override.dentist_ids)

        capacity = len(active)
        if max_per_block is not None:
            capacity = min(capacity, max_per_block)

        return ClinicDaySnapshot(
            date=day,
            is_open=True,
            open_time=open_time,
            close_time=close_time,
            effective_capacity=capacity,
            active_dentist_ids=frozenset(active),
            max_per_block=max_per_block,
        )
