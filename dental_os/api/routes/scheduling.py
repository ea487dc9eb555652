"""Scheduling API endpoints: availability, bookings and dentist hours."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from dental_os.api.dependencies import get_booking_service
from dental_os.core.database import get_db
from dental_os.core.models import AppointmentDB, DentistSchedule
from dental_os.core.repository import DentistScheduleRepository, PatientRepository
from dental_os.scheduling.calendar import parse_date
from dental_os.scheduling.exceptions import (
    AppointmentNotFoundError,
    DentistNotFoundError,
    InvalidStartTimeError,
)
from dental_os.scheduling.grid import format_time, parse_time
from dental_os.scheduling.models import (
    BookingActor,
    BookingRequest,
    CancellationReason,
    ClinicDaySnapshot,
    DayBoard,
    DentistHours,
    PaymentMethod,
    Weekday,
)
from dental_os.scheduling.service import BookingService

router = APIRouter(prefix="/scheduling")


# ---------------------------------------------------------------------------
# Pydantic request/response schemas
# ---------------------------------------------------------------------------

class ServiceResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    price: float
    estimated_minutes: int
    per_teeth_service: bool = False
    per_tooth_minutes: int | None = None


class AvailableServicesResponse(BaseModel):
    date: str
    is_open: bool
    message: str | None = None
    services: list[ServiceResponse] = []


class PreferredDentistOut(BaseModel):
    id: str
    code: str | None = None
    name: str


class SlotMetadata(BaseModel):
    preferred_dentist_id: str | None = None
    preferred_dentist_active: bool = False
    requested_honor_preferred_dentist: bool = True
    effective_honor_preferred_dentist: bool = False
    preferred_dentist: PreferredDentistOut | None = None


class AvailableSlotsResponse(BaseModel):
    slots: list[str] = []
    metadata: SlotMetadata


class AppointmentCreate(BaseModel):
    patient_id: str
    service_id: str
    date: str
    start_time: str
    honor_preferred_dentist: bool = True
    payment_method: PaymentMethod = PaymentMethod.CASH
    teeth_count: int | None = Field(default=None, ge=1, le=32)
    notes: str | None = Field(default=None, max_length=1000)


class StaffAppointmentCreate(AppointmentCreate):
    """Staff booking; links an existing patient or registers a walk-in."""

    patient_id: str | None = None
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    contact_number: str | None = Field(default=None, max_length=20)
    email: str | None = None

    @model_validator(mode="after")
    def _patient_or_walk_in(self) -> "StaffAppointmentCreate":
        if self.patient_id is None and not (self.first_name and self.last_name and self.contact_number):
            raise ValueError("patient_id or first_name, last_name and contact_number are required")
        return self


class RescheduleRequest(BaseModel):
    date: str
    start_time: str
    honor_preferred_dentist: bool | None = None
    actor: BookingActor = BookingActor.PATIENT


class RejectRequest(BaseModel):
    note: str = Field(min_length=1, max_length=1000)
    cancellation_reason: CancellationReason | None = None


class CancelRequest(BaseModel):
    cancellation_reason: CancellationReason | None = None
    actor: BookingActor = BookingActor.PATIENT


class AppointmentResponse(BaseModel):
    id: str
    reference_code: str
    patient_id: str
    service_id: str
    dentist_schedule_id: str | None = None
    date: str
    time_slot: str
    status: str
    payment_method: str
    payment_status: str
    honor_preferred_dentist: bool = True
    teeth_count: int | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class WeeklyHoursIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None


class WeeklyHoursOut(BaseModel):
    day_of_week: int
    start_time: str | None = None
    end_time: str | None = None


class DentistHoursResponse(BaseModel):
    dentist_id: str
    dentist_code: str | None = None
    dentist_name: str
    weekly: list[WeeklyHoursOut] = []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _appt_to_response(appt: AppointmentDB) -> AppointmentResponse:
    return AppointmentResponse(
        id=str(appt.id),
        reference_code=appt.reference_code,
        patient_id=str(appt.patient_id),
        service_id=str(appt.service_id),
        dentist_schedule_id=str(appt.dentist_schedule_id) if appt.dentist_schedule_id else None,
        date=appt.date.isoformat(),
        time_slot=appt.time_slot,
        status=appt.status,
        payment_method=appt.payment_method,
        payment_status=appt.payment_status,
        honor_preferred_dentist=appt.honor_preferred_dentist,
        teeth_count=appt.teeth_count,
        notes=appt.notes,
        cancellation_reason=appt.cancellation_reason,
        created_at=appt.created_at,
        updated_at=appt.updated_at,
    )


def _hours_to_response(dentist: DentistSchedule) -> DentistHoursResponse:
    rows = sorted(dentist.weekly_hours, key=lambda r: r.day_of_week)
    return DentistHoursResponse(
        dentist_id=str(dentist.id),
        dentist_code=dentist.dentist_code,
        dentist_name=dentist.dentist_name,
        weekly=[
            WeeklyHoursOut(
                day_of_week=r.day_of_week,
                start_time=format_time(r.start_time) if r.start_time else None,
                end_time=format_time(r.end_time) if r.end_time else None,
            )
            for r in rows
        ],
    )


def _parse_uuid(value: str, name: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")


def _parse_start(value: str):
    try:
        return parse_time(value)
    except ValueError:
        raise InvalidStartTimeError(f"Invalid start time: {value!r}. Expected HH:MM.")


def _booking_request(body: AppointmentCreate, patient_id: uuid.UUID) -> BookingRequest:
    return BookingRequest(
        patient_id=patient_id,
        service_id=_parse_uuid(body.service_id, "service_id"),
        date=parse_date(body.date),
        start_time=_parse_start(body.start_time),
        honor_preferred_dentist=body.honor_preferred_dentist,
        payment_method=body.payment_method,
        teeth_count=body.teeth_count,
        notes=body.notes,
    )


# ---------------------------------------------------------------------------
# Availability (read path)
# ---------------------------------------------------------------------------

@router.get("/available-services", response_model=AvailableServicesResponse)
async def available_services(
    date: str = Query(...),
    service: BookingService = Depends(get_booking_service),
) -> AvailableServicesResponse:
    """Active services bookable on a date."""
    day = parse_date(date)
    snapshot, services = await service.available_services(day)
    if not snapshot.is_open:
        return AvailableServicesResponse(
            date=day.isoformat(), is_open=False, message="Clinic is closed on the selected date."
        )
    return AvailableServicesResponse(
        date=day.isoformat(),
        is_open=True,
        services=[
            ServiceResponse(
                id=str(s.id),
                name=s.name,
                description=s.description,
                price=s.price,
                estimated_minutes=s.estimated_minutes,
                per_teeth_service=s.per_teeth_service,
                per_tooth_minutes=s.per_tooth_minutes,
            )
            for s in services
        ],
    )


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def available_slots(
    date: str = Query(...),
    service_id: str = Query(...),
    patient_id: Optional[str] = Query(None),
    honor_preferred_dentist: bool = Query(True),
    teeth_count: Optional[int] = Query(None, ge=1, le=32),
    service: BookingService = Depends(get_booking_service),
) -> AvailableSlotsResponse:
    """Start times whose whole service run can still be booked."""
    result = await service.available_slots(
        parse_date(date),
        _parse_uuid(service_id, "service_id"),
        patient_id=_parse_uuid(patient_id, "patient_id") if patient_id else None,
        honor_preferred=honor_preferred_dentist,
        teeth_count=teeth_count,
    )
    preferred = result.preferred_dentist
    return AvailableSlotsResponse(
        slots=[format_time(s) for s in result.slots],
        metadata=SlotMetadata(
            preferred_dentist_id=str(result.preferred_dentist_id) if result.preferred_dentist_id else None,
            preferred_dentist_active=result.preferred_dentist_active,
            requested_honor_preferred_dentist=result.requested_honor_preferred_dentist,
            effective_honor_preferred_dentist=result.effective_honor_preferred_dentist,
            preferred_dentist=(
                PreferredDentistOut(id=str(preferred.id), code=preferred.code, name=preferred.name)
                if preferred
                else None
            ),
        ),
    )


@router.get("/clinic-calendar/resolve", response_model=ClinicDaySnapshot)
async def resolve_clinic_day(
    date: str = Query(...),
    service: BookingService = Depends(get_booking_service),
) -> ClinicDaySnapshot:
    return await service.resolve_day(parse_date(date))


@router.get("/days/{day}/blocks", response_model=DayBoard)
async def day_blocks(
    day: str,
    service: BookingService = Depends(get_booking_service),
) -> DayBoard:
    """Blocks of the day with the approved and completed bookings starting in each."""
    return await service.day_board(parse_date(day))


# ---------------------------------------------------------------------------
# Book / get / reschedule / approve / reject / cancel
# ---------------------------------------------------------------------------

@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    body: AppointmentCreate,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """Patient booking: tomorrow up to the end of the booking window."""
    request = _booking_request(body, _parse_uuid(body.patient_id, "patient_id"))
    appt = await service.book(request, BookingActor.PATIENT)
    return _appt_to_response(appt)


@router.post("/appointments/staff", response_model=AppointmentResponse, status_code=201)
async def book_appointment_for_staff(
    body: StaffAppointmentCreate,
    service: BookingService = Depends(get_booking_service),
    db: AsyncSession = Depends(get_db),
) -> AppointmentResponse:
    """Staff booking: today allowed; a walk-in patient is only kept if the booking succeeds."""
    if body.patient_id:
        patient_id = _parse_uuid(body.patient_id, "patient_id")
    else:
        patient = await PatientRepository(db).create(
            first_name=body.first_name,
            last_name=body.last_name,
            contact_number=body.contact_number,
            email=body.email,
        )
        patient_id = patient.id
    appt = await service.book(_booking_request(body, patient_id), BookingActor.STAFF)
    return _appt_to_response(appt)


@router.get("/appointments/by-reference/{reference_code}", response_model=AppointmentResponse)
async def get_appointment_by_reference(
    reference_code: str,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """Look a booking up by its reference code; case and separators are ignored."""
    appt = await service.appointments.get_by_reference(reference_code)
    if not appt:
        raise AppointmentNotFoundError(reference_code)
    return _appt_to_response(appt)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    aid = _parse_uuid(appointment_id, "appointment_id")
    appt = await service.appointments.get_by_id(aid)
    if not appt:
        raise AppointmentNotFoundError(aid)
    return _appt_to_response(appt)


@router.put("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    body: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    appt = await service.reschedule(
        _parse_uuid(appointment_id, "appointment_id"),
        parse_date(body.date),
        _parse_start(body.start_time),
        honor_preferred=body.honor_preferred_dentist,
        actor=body.actor,
    )
    return _appt_to_response(appt)


@router.post("/appointments/{appointment_id}/approve", response_model=AppointmentResponse)
async def approve_appointment(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    appt = await service.approve(_parse_uuid(appointment_id, "appointment_id"))
    return _appt_to_response(appt)


@router.post("/appointments/{appointment_id}/reject", response_model=AppointmentResponse)
async def reject_appointment(
    appointment_id: str,
    body: RejectRequest,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    appt = await service.reject(
        _parse_uuid(appointment_id, "appointment_id"), body.note, body.cancellation_reason
    )
    return _appt_to_response(appt)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    body: CancelRequest | None = None,
    service: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    body = body or CancelRequest()
    appt = await service.cancel(
        _parse_uuid(appointment_id, "appointment_id"), body.cancellation_reason, body.actor
    )
    return _appt_to_response(appt)


# ---------------------------------------------------------------------------
# Dentist weekly hours
# ---------------------------------------------------------------------------

@router.get("/dentists/{dentist_id}/hours", response_model=DentistHoursResponse)
async def get_dentist_hours(
    dentist_id: str,
    db: AsyncSession = Depends(get_db),
) -> DentistHoursResponse:
    did = _parse_uuid(dentist_id, "dentist_id")
    dentist = await DentistScheduleRepository(db).get_by_id(did)
    if not dentist:
        raise DentistNotFoundError(did)
    return _hours_to_response(dentist)


@router.put("/dentists/{dentist_id}/hours", response_model=DentistHoursResponse)
async def set_dentist_hours(
    dentist_id: str,
    rules: list[WeeklyHoursIn],
    db: AsyncSession = Depends(get_db),
) -> DentistHoursResponse:
    """Replace the dentist's working weekdays; omitted weekdays are turned off."""
    did = _parse_uuid(dentist_id, "dentist_id")
    weekly: dict[Weekday, DentistHours | None] = {}
    for rule in rules:
        try:
            start = parse_time(rule.start_time) if rule.start_time else None
            end = parse_time(rule.end_time) if rule.end_time else None
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        if start and end and start >= end:
            raise HTTPException(status_code=422, detail="start_time must be before end_time")
        weekly[Weekday(rule.day_of_week)] = DentistHours(start=start, end=end) if start and end else None

    dentist = await DentistScheduleRepository(db).set_weekly_hours(did, weekly)
    if not dentist:
        raise DentistNotFoundError(did)
    return _hours_to_response(dentist)
