"""Pydantic models for the scheduling core."""

import uuid
from datetime import date, time
from enum import Enum, IntEnum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from dental_os.scheduling.grid import format_time_slot


class Weekday(IntEnum):
    """Day of week, numbered like ``date.weekday()``."""

    MON = 0
    TUE = 1
    WED = 2
    THU = 3
    FRI = 4
    SAT = 5
    SUN = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that occupy a block. Pending counts so that bookings awaiting staff
# approval cannot be overbooked.
OCCUPYING_STATUSES: frozenset[AppointmentStatus] = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.APPROVED, AppointmentStatus.COMPLETED}
)


class PaymentMethod(str, Enum):
    CASH = "cash"
    MAYA = "maya"
    HMO = "hmo"


class DentistStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BookingActor(str, Enum):
    """Who is placing a booking; staff may book for the current day."""

    PATIENT = "patient"
    STAFF = "staff"


class CancellationReason(str, Enum):
    PATIENT_REQUEST = "patient_request"
    ADMIN_CANCELLATION = "admin_cancellation"
    HEALTH_SAFETY_CONCERN = "health_safety_concern"
    CLINIC_CANCELLATION = "clinic_cancellation"
    MEDICAL_CONTRAINDICATION = "medical_contraindication"
    OTHER = "other"


class DentistHours(BaseModel):
    """A custom working window for one weekday."""

    model_config = ConfigDict(frozen=True)

    start: time
    end: time


class DentistProfile(BaseModel):
    """Scheduling view of a dentist record.

    ``weekly`` holds one entry per working weekday. ``None`` as the value
    means the dentist works the full clinic hours that day.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    code: Optional[str] = None
    name: str
    status: DentistStatus = DentistStatus.ACTIVE
    contract_end_date: Optional[date] = None
    weekly: dict[Weekday, Optional[DentistHours]] = Field(default_factory=dict)


class ClinicDayTemplate(BaseModel):
    """Weekly default opening for one weekday."""

    model_config = ConfigDict(frozen=True)

    weekday: Weekday
    is_open: bool = False
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    max_per_block: Optional[int] = Field(default=None, ge=0)


class CalendarException(BaseModel):
    """A one-off override of the weekly template for a specific date."""

    model_config = ConfigDict(frozen=True)

    date: date
    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    max_per_block: Optional[int] = Field(default=None, ge=0)
    dentist_ids: Optional[list[uuid.UUID]] = None
    note: Optional[str] = None


class ClinicDaySnapshot(BaseModel):
    """Derived clinic state for one date. Computed per query, never stored."""

    model_config = ConfigDict(frozen=True)

    date: date
    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    effective_capacity: int = Field(default=0, ge=0)
    active_dentist_ids: frozenset[uuid.UUID] = frozenset()
    max_per_block: Optional[int] = None

    @model_validator(mode="after")
    def _check_hours(self) -> "ClinicDaySnapshot":
        if self.is_open:
            if self.open_time is None or self.close_time is None:
                raise ValueError("open snapshot requires open_time and close_time")
            if self.open_time >= self.close_time:
                raise ValueError("open_time must be before close_time")
        return self

    @classmethod
    def closed(cls, day: date) -> "ClinicDaySnapshot":
        return cls(date=day, is_open=False)


class BookedSlot(BaseModel):
    """Scheduling view of an existing booking."""

    model_config = ConfigDict(frozen=True)

    id: Optional[uuid.UUID] = None
    date: date
    start: time
    end: time
    status: AppointmentStatus = AppointmentStatus.PENDING
    dentist_id: Optional[uuid.UUID] = None
    patient_id: Optional[uuid.UUID] = None


class SlotUsage(BaseModel):
    """Block occupancy for one date, per dentist and clinic-wide."""

    per_dentist: dict[uuid.UUID, set[time]] = Field(default_factory=dict)
    global_counts: dict[time, int] = Field(default_factory=dict)

    def dentist_free(self, dentist_id: uuid.UUID, blocks: Iterable[time]) -> bool:
        taken = self.per_dentist.get(dentist_id, set())
        return not any(block in taken for block in blocks)

    def first_full_block(self, blocks: Iterable[time], capacity: int) -> Optional[time]:
        """Return the first block at or above *capacity*, or None if all fit."""
        for block in blocks:
            if self.global_counts.get(block, 0) >= capacity:
                return block
        return None

    def global_free(self, blocks: Iterable[time], capacity: int) -> bool:
        return self.first_full_block(blocks, capacity) is None


class DentistSummary(BaseModel):
    id: uuid.UUID
    code: Optional[str] = None
    name: str


class AvailabilityResult(BaseModel):
    """Feasible start times for a date plus how the preference was applied."""

    date: date
    slots: list[time] = []
    preferred_dentist_id: Optional[uuid.UUID] = None
    preferred_dentist_active: bool = False
    requested_honor_preferred_dentist: bool = True
    effective_honor_preferred_dentist: bool = False
    preferred_dentist: Optional[DentistSummary] = None


class AssignmentDecision(BaseModel):
    """The dentist chosen for a run of blocks. Carries no side effects."""

    model_config = ConfigDict(frozen=True)

    dentist_id: uuid.UUID
    preferred_honored: bool
    start: time
    end: time
    blocks: list[time]

    @property
    def time_slot(self) -> str:
        return format_time_slot(self.start, self.end)


class BookingRequest(BaseModel):
    """Request to book (or reschedule into) a start time."""

    model_config = ConfigDict(frozen=True)

    patient_id: uuid.UUID
    service_id: uuid.UUID
    date: date
    start_time: time
    honor_preferred_dentist: bool = True
    payment_method: PaymentMethod = PaymentMethod.CASH
    teeth_count: Optional[int] = Field(default=None, ge=1, le=32)
    notes: Optional[str] = None


class DayBoardEntry(BaseModel):
    """An approved or completed booking shown on the day board."""

    id: uuid.UUID
    patient_name: str
    service_name: str
    time_slot: str
    status: AppointmentStatus
    reference_code: str
    dentist_id: Optional[uuid.UUID] = None


class DayBoardBlock(BaseModel):
    time: time
    appointments: list[DayBoardEntry] = []

    @computed_field
    @property
    def count(self) -> int:
        return len(self.appointments)


class DayBoard(BaseModel):
    """The clinic's blocks for one date with the bookings starting in each."""

    date: date
    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    capacity: int = 0
    blocks: list[DayBoardBlock] = []
