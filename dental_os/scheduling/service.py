"""Booking orchestration: the read path and the serialized write path."""

import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from dental_os.config import Settings, get_settings
from dental_os.core.models import AppointmentDB, Patient, Service
from dental_os.core.repository import (
    AppointmentRepository,
    ClinicCalendarRepository,
    DentistScheduleRepository,
    PatientRepository,
    ServiceRepository,
    preferred_dentist_id,
)
from dental_os.scheduling.assignment import DentistAssignmentResolver
from dental_os.scheduling.calendar import ClinicCalendarResolver
from dental_os.scheduling.engine import SlotAvailabilityEngine, overlaps
from dental_os.scheduling.exceptions import (
    AppointmentNotFoundError,
    InvalidDateError,
    InvalidStartTimeError,
    InvalidTransitionError,
    PatientNotFoundError,
    PatientOverlapError,
    SchedulingError,
    ServiceNotFoundError,
)
from dental_os.scheduling.grid import (
    blocks_for_minutes,
    build_blocks,
    expand_time_slot,
    next_block_after,
    parse_time_slot,
)
from dental_os.scheduling.locks import BookingLockRegistry, booking_locks
from dental_os.scheduling.models import (
    AppointmentStatus,
    AssignmentDecision,
    AvailabilityResult,
    BookingActor,
    BookingRequest,
    CancellationReason,
    ClinicDaySnapshot,
    DayBoard,
    DayBoardBlock,
    DayBoardEntry,
    DentistProfile,
    DentistSummary,
)
from dental_os.scheduling.usage import SlotUsageIndex

logger = logging.getLogger(__name__)

_RESCHEDULABLE = {AppointmentStatus.PENDING, AppointmentStatus.APPROVED}
_CANCELLABLE = {AppointmentStatus.PENDING, AppointmentStatus.APPROVED}
_ON_BOARD = [AppointmentStatus.APPROVED, AppointmentStatus.COMPLETED]


class BookingService:
    """Answers availability queries and books, moves and transitions appointments.

    Every write that claims blocks runs inside ``locks.hold(date)`` and a
    transaction that has locked the active dentist rows; usage is read again
    inside that section and the transaction is committed before the lock is
    released. Losers of a race get the same errors as any other full slot.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[BookingLockRegistry] = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self._clock = clock
        self.locks = locks or booking_locks
        self.engine = SlotAvailabilityEngine()
        self.assigner = DentistAssignmentResolver()

        self.patients = PatientRepository(session)
        self.services = ServiceRepository(session)
        self.dentists = DentistScheduleRepository(session)
        self.calendar = ClinicCalendarRepository(session)
        self.appointments = AppointmentRepository(session)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        """Current wall time in the clinic's timezone."""
        if self._clock is not None:
            return self._clock()
        return datetime.now(ZoneInfo(self.settings.clinic_timezone))

    def today(self) -> date:
        return self.now().date()

    def _not_before(self, day: date) -> Optional[time]:
        """Earliest start still bookable on *day*.

        ``time.max`` means nothing is left (past dates, or today after the
        last block boundary).
        """
        today = self.today()
        if day < today:
            return time.max
        if day > today:
            return None
        return next_block_after(self.now().time()) or time.max

    # ------------------------------------------------------------------
    # Day resolution
    # ------------------------------------------------------------------

    async def _snapshot(self, day: date, dentists: Sequence[DentistProfile]) -> ClinicDaySnapshot:
        templates = await self.calendar.list_templates()
        exception = await self.calendar.get_exception(day)
        resolver = ClinicCalendarResolver(templates, [exception] if exception else [])
        return resolver.resolve(day, dentists)

    async def resolve_day(self, day: date) -> ClinicDaySnapshot:
        dentists = await self.dentists.list_profiles()
        return await self._snapshot(day, dentists)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def available_services(self, day: date) -> tuple[ClinicDaySnapshot, Sequence[Service]]:
        """Active services for *day*; none when the clinic is closed."""
        snapshot = await self.resolve_day(day)
        if not snapshot.is_open:
            return snapshot, []
        return snapshot, await self.services.list_active()

    async def available_slots(
        self,
        day: date,
        service_id: uuid.UUID,
        patient_id: Optional[uuid.UUID] = None,
        honor_preferred: bool = True,
        teeth_count: Optional[int] = None,
    ) -> AvailabilityResult:
        service = await self._require_service(service_id)
        duration = blocks_for_minutes(service.calculate_estimated_minutes(teeth_count))

        dentists = await self.dentists.list_profiles()
        snapshot = await self._snapshot(day, dentists)
        usage = SlotUsageIndex.build(await self.appointments.list_for_date(day))

        preferred_id = None
        patient_busy: list[tuple[time, time]] = []
        if patient_id is not None:
            preferred_id = await preferred_dentist_id(self.session, patient_id, day)
            own = await self.appointments.list_for_patient_date(patient_id, day)
            patient_busy = [(b.start, b.end) for b in own]

        result = self.engine.available_starts(
            snapshot,
            dentists,
            usage,
            duration,
            honor_preferred=honor_preferred,
            preferred_dentist_id=preferred_id,
            not_before=self._not_before(day),
            patient_busy=patient_busy,
        )
        profile = next((d for d in dentists if d.id == preferred_id), None)
        if profile is not None:
            result = result.model_copy(
                update={"preferred_dentist": DentistSummary(id=profile.id, code=profile.code, name=profile.name)}
            )
        return result

    async def day_board(self, day: Optional[date] = None) -> DayBoard:
        """Blocks of *day* (default today) with approved and completed bookings."""
        day = day or self.today()
        snapshot = await self.resolve_day(day)
        if not snapshot.is_open:
            return DayBoard(date=day, is_open=False)

        rows = await self.appointments.list_rows_for_date(day, _ON_BOARD)
        by_start: dict[time, list[DayBoardEntry]] = {}
        for row in rows:
            start, _ = parse_time_slot(row.time_slot)
            patient = await self.session.get(Patient, row.patient_id)
            service = await self.session.get(Service, row.service_id)
            by_start.setdefault(start, []).append(
                DayBoardEntry(
                    id=row.id,
                    patient_name=patient.full_name if patient else "",
                    service_name=service.name if service else "",
                    time_slot=row.time_slot,
                    status=AppointmentStatus(row.status),
                    reference_code=row.reference_code,
                    dentist_id=row.dentist_schedule_id,
                )
            )

        return DayBoard(
            date=day,
            is_open=True,
            open_time=snapshot.open_time,
            close_time=snapshot.close_time,
            capacity=snapshot.effective_capacity,
            blocks=[
                DayBoardBlock(time=block, appointments=by_start.get(block, []))
                for block in build_blocks(snapshot.open_time, snapshot.close_time)
            ],
        )

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def book(self, request: BookingRequest, actor: BookingActor = BookingActor.PATIENT) -> AppointmentDB:
        """Validate, assign a dentist and persist a new pending booking."""
        self._check_window(request.date, actor)
        self._check_not_past(request.date, request.start_time)
        patient = await self._require_patient(request.patient_id)
        service = await self._require_service(request.service_id)
        duration = blocks_for_minutes(service.calculate_estimated_minutes(request.teeth_count))
        preferred_id = await preferred_dentist_id(self.session, patient.id, request.date)

        async with self.locks.hold(request.date):
            try:
                decision = await self._decide(
                    request.date,
                    request.start_time,
                    duration,
                    honor_preferred=request.honor_preferred_dentist,
                    preferred_id=preferred_id,
                    patient_id=patient.id,
                )
                appointment = await self.appointments.persist(
                    day=request.date,
                    time_slot=decision.time_slot,
                    dentist_id=decision.dentist_id,
                    patient_id=patient.id,
                    service_id=service.id,
                    payment_method=request.payment_method,
                    honor_preferred_dentist=request.honor_preferred_dentist,
                    teeth_count=request.teeth_count,
                    notes=request.notes,
                )
                await self.session.commit()
            except SchedulingError:
                await self.session.rollback()
                raise

        logger.info(
            "Booked %s on %s %s with dentist %s (actor=%s, preferred_honored=%s)",
            appointment.reference_code,
            appointment.date,
            appointment.time_slot,
            decision.dentist_id,
            actor.value,
            decision.preferred_honored,
        )
        return appointment

    async def reschedule(
        self,
        appointment_id: uuid.UUID,
        day: date,
        start: time,
        honor_preferred: Optional[bool] = None,
        actor: BookingActor = BookingActor.PATIENT,
    ) -> AppointmentDB:
        """Move a pending or approved booking; it goes back to pending."""
        appointment = await self._require_appointment(appointment_id)
        if AppointmentStatus(appointment.status) not in _RESCHEDULABLE:
            raise InvalidTransitionError("This appointment cannot be rescheduled.")
        self._check_window(day, actor)
        self._check_not_past(day, start)

        service = await self._require_service(appointment.service_id)
        duration = blocks_for_minutes(service.calculate_estimated_minutes(appointment.teeth_count))
        honor = appointment.honor_preferred_dentist if honor_preferred is None else honor_preferred
        preferred_id = await preferred_dentist_id(self.session, appointment.patient_id, day)
        old_slot = (appointment.date, appointment.time_slot)

        async with self.locks.hold(day):
            try:
                decision = await self._decide(
                    day,
                    start,
                    duration,
                    honor_preferred=honor,
                    preferred_id=preferred_id,
                    patient_id=appointment.patient_id,
                    exclude_id=appointment.id,
                )
                await self.appointments.update(
                    appointment.id,
                    date=day,
                    time_slot=decision.time_slot,
                    status=AppointmentStatus.PENDING.value,
                    dentist_schedule_id=decision.dentist_id,
                    honor_preferred_dentist=honor,
                )
                await self.session.commit()
            except SchedulingError:
                await self.session.rollback()
                raise

        logger.info(
            "Rescheduled %s from %s %s to %s %s (dentist %s)",
            appointment.reference_code,
            old_slot[0],
            old_slot[1],
            day,
            decision.time_slot,
            decision.dentist_id,
        )
        return appointment

    async def approve(self, appointment_id: uuid.UUID) -> AppointmentDB:
        """Approve a pending booking after re-checking its blocks."""
        appointment = await self._require_appointment(appointment_id)
        if appointment.status != AppointmentStatus.PENDING.value:
            raise InvalidTransitionError("Appointment already processed.")

        day, slot = appointment.date, appointment.time_slot
        start, end = parse_time_slot(slot)
        duration = max(1, len(list(expand_time_slot(start, end))))
        preferred_id = appointment.dentist_schedule_id
        if preferred_id is None:
            preferred_id = await preferred_dentist_id(self.session, appointment.patient_id, day)

        async with self.locks.hold(day):
            try:
                decision = await self._decide(
                    day,
                    start,
                    duration,
                    honor_preferred=appointment.honor_preferred_dentist,
                    preferred_id=preferred_id,
                    force_dentist_id=appointment.dentist_schedule_id,
                    exclude_id=appointment.id,
                )
                changes = {"status": AppointmentStatus.APPROVED.value}
                if appointment.dentist_schedule_id is None:
                    changes["dentist_schedule_id"] = decision.dentist_id
                await self.appointments.update(appointment.id, **changes)
                await self.session.commit()
            except SchedulingError:
                await self.session.rollback()
                logger.warning("Approval of %s failed on %s %s", appointment_id, day, slot)
                raise

        logger.info("Approved %s (dentist %s)", appointment.reference_code, appointment.dentist_schedule_id)
        return appointment

    async def reject(
        self,
        appointment_id: uuid.UUID,
        note: str,
        reason: Optional[CancellationReason] = None,
    ) -> AppointmentDB:
        appointment = await self._require_appointment(appointment_id)
        if appointment.status != AppointmentStatus.PENDING.value:
            raise InvalidTransitionError("Appointment already processed.")
        if not note or not note.strip():
            raise InvalidTransitionError("A note is required to reject an appointment.")

        await self.appointments.update(
            appointment.id,
            status=AppointmentStatus.REJECTED.value,
            notes=note.strip(),
            cancellation_reason=(reason or CancellationReason.HEALTH_SAFETY_CONCERN).value,
            payment_status="unpaid",
        )
        await self.session.commit()
        logger.info("Rejected %s", appointment.reference_code)
        return appointment

    async def cancel(
        self,
        appointment_id: uuid.UUID,
        reason: Optional[CancellationReason] = None,
        actor: BookingActor = BookingActor.PATIENT,
    ) -> AppointmentDB:
        appointment = await self._require_appointment(appointment_id)
        if AppointmentStatus(appointment.status) not in _CANCELLABLE:
            raise InvalidTransitionError(
                "This appointment cannot be canceled. "
                "Only pending appointments or approved appointments can be canceled."
            )
        if reason is None:
            reason = (
                CancellationReason.ADMIN_CANCELLATION
                if actor == BookingActor.STAFF
                else CancellationReason.PATIENT_REQUEST
            )

        await self.appointments.update(
            appointment.id,
            status=AppointmentStatus.CANCELLED.value,
            cancellation_reason=reason.value,
        )
        await self.session.commit()
        logger.info("Cancelled %s (actor=%s, reason=%s)", appointment.reference_code, actor.value, reason.value)
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _decide(
        self,
        day: date,
        start: time,
        duration: int,
        honor_preferred: bool,
        preferred_id: Optional[uuid.UUID],
        patient_id: Optional[uuid.UUID] = None,
        exclude_id: Optional[uuid.UUID] = None,
        force_dentist_id: Optional[uuid.UUID] = None,
    ) -> AssignmentDecision:
        """Assign a dentist from state read under the date lock.

        Must be called while holding ``self.locks.hold(day)``.
        """
        dentists = await self.dentists.lock_for_date(day)
        snapshot = await self._snapshot(day, dentists)
        usage = SlotUsageIndex.build(await self.appointments.list_for_date(day), exclude_id=exclude_id)
        decision = self.assigner.assign(
            snapshot,
            dentists,
            usage,
            start,
            duration,
            honor_preferred=honor_preferred,
            preferred_dentist_id=preferred_id,
            force_dentist_id=force_dentist_id,
        )
        if patient_id is not None:
            own = await self.appointments.list_for_patient_date(patient_id, day, exclude_id=exclude_id)
            if any(overlaps(decision.start, decision.end, b.start, b.end) for b in own):
                raise PatientOverlapError()
        return decision

    def _check_window(self, day: date, actor: BookingActor) -> None:
        today = self.today()
        horizon = today + timedelta(days=self.settings.booking_window_days)
        if actor == BookingActor.STAFF:
            if day < today or day > horizon:
                raise InvalidDateError(
                    f"Date is outside the booking window (today to {self.settings.booking_window_days} days)."
                )
        elif day <= today or day > horizon:
            raise InvalidDateError("Date is outside the booking window.")

    def _check_not_past(self, day: date, start: time) -> None:
        cutoff = self._not_before(day)
        if cutoff is not None and start < cutoff:
            raise InvalidStartTimeError("Selected time has already passed.")

    async def _require_patient(self, patient_id: uuid.UUID) -> Patient:
        patient = await self.patients.get_by_id(patient_id)
        if not patient or not patient.active:
            raise PatientNotFoundError(patient_id)
        return patient

    async def _require_service(self, service_id: uuid.UUID) -> Service:
        service = await self.services.get_by_id(service_id)
        if not service or not service.active:
            raise ServiceNotFoundError(service_id)
        return service

    async def _require_appointment(self, appointment_id: uuid.UUID) -> AppointmentDB:
        appointment = await self.appointments.get_by_id(appointment_id)
        if not appointment:
            raise AppointmentNotFoundError(appointment_id)
        return appointment
