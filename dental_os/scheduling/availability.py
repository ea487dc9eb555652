"""Per-dentist working days and custom hours."""

from datetime import date, time
from typing import Optional

from dental_os.scheduling.models import (
    ClinicDaySnapshot,
    DentistHours,
    DentistProfile,
    DentistStatus,
    Weekday,
)


def is_working(dentist: DentistProfile, day: date) -> bool:
    """True if the dentist counts toward the roster on *day*.

    The weekday must be on, the dentist active, and any contract still
    running on that date.
    """
    if dentist.status != DentistStatus.ACTIVE:
        return False
    if Weekday.of(day) not in dentist.weekly:
        return False
    if dentist.contract_end_date is not None and dentist.contract_end_date < day:
        return False
    return True


def hours_for(dentist: DentistProfile, day: date) -> Optional[DentistHours]:
    """Custom hours for *day*, or None meaning "all clinic hours"."""
    return dentist.weekly.get(Weekday.of(day))


def effective_hours(
    dentist: DentistProfile, snapshot: ClinicDaySnapshot
) -> Optional[tuple[time, time]]:
    """The window the dentist can actually take patients on the snapshot's date.

    Returns None if the dentist is not working or the clinic is closed.
    Custom hours are used as stored, even outside clinic hours; the grid
    keeps such runs from ever matching.
    """
    if not snapshot.is_open or not is_working(dentist, snapshot.date):
        return None
    custom = hours_for(dentist, snapshot.date)
    if custom is None:
        return snapshot.open_time, snapshot.close_time
    return custom.start, custom.end


def covers(
    dentist: DentistProfile, snapshot: ClinicDaySnapshot, start: time, end: time
) -> bool:
    """True if the run ``[start, end)`` lies inside the dentist's effective hours."""
    window = effective_hours(dentist, snapshot)
    if window is None:
        return False
    window_start, window_end = window
    return start >= window_start and end <= window_end
