"""Slot allocation and dentist assignment for DentalOS."""

from dental_os.scheduling.assignment import DentistAssignmentResolver
from dental_os.scheduling.calendar import ClinicCalendarResolver
from dental_os.scheduling.engine import SlotAvailabilityEngine
from dental_os.scheduling.exceptions import SchedulingError
from dental_os.scheduling.locks import BookingLockRegistry
from dental_os.scheduling.models import (
    AppointmentStatus,
    AvailabilityResult,
    BookingRequest,
    ClinicDaySnapshot,
    DentistProfile,
    Weekday,
)
from dental_os.scheduling.usage import SlotUsageIndex

__all__ = [
    "AppointmentStatus",
    "AvailabilityResult",
    "BookingLockRegistry",
    "BookingRequest",
    "ClinicCalendarResolver",
    "ClinicDaySnapshot",
    "DentistAssignmentResolver",
    "DentistProfile",
    "SchedulingError",
    "SlotAvailabilityEngine",
    "SlotUsageIndex",
    "Weekday",
]
