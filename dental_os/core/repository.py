"""Repositories for the clinic scheduling tables."""

from __future__ import annotations

import re
import secrets
import string
import uuid
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dental_os.core.models import (
    AppointmentDB,
    ClinicCalendarDay,
    ClinicWeeklySchedule,
    DentistSchedule,
    DentistWeeklyHours,
    Patient,
    PatientVisit,
    Service,
)
from dental_os.scheduling.grid import parse_time_slot
from dental_os.scheduling.models import (
    OCCUPYING_STATUSES,
    AppointmentStatus,
    BookedSlot,
    CalendarException,
    ClinicDayTemplate,
    DentistHours,
    DentistProfile,
    DentistStatus,
    PaymentMethod,
    Weekday,
)

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits

_OCCUPYING_VALUES = [status.value for status in OCCUPYING_STATUSES]


def normalize_reference_code(code: str) -> str:
    """Uppercase *code* and drop anything that is not a letter or digit."""
    return re.sub(r"[^A-Za-z0-9]", "", code).upper()


class PatientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Patient:
        patient = Patient(**kwargs)
        self.session.add(patient)
        await self.session.flush()
        return patient

    async def get_by_id(self, patient_id: uuid.UUID) -> Optional[Patient]:
        return await self.session.get(Patient, patient_id)


class ServiceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Service:
        service = Service(**kwargs)
        self.session.add(service)
        await self.session.flush()
        return service

    async def get_by_id(self, service_id: uuid.UUID) -> Optional[Service]:
        return await self.session.get(Service, service_id)

    async def list_active(self) -> Sequence[Service]:
        stmt = select(Service).where(Service.active.is_(True)).order_by(Service.name)
        result = await self.session.execute(stmt)
        return result.scalars().all()


class DentistScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        weekly: Optional[dict[Weekday, Optional[DentistHours]]] = None,
        **kwargs,
    ) -> DentistSchedule:
        dentist = DentistSchedule(**kwargs)
        dentist.weekly_hours = [_hours_row(day, hours) for day, hours in (weekly or {}).items()]
        self.session.add(dentist)
        await self.session.flush()
        return dentist

    async def get_by_id(self, dentist_id: uuid.UUID) -> Optional[DentistSchedule]:
        return await self.session.get(DentistSchedule, dentist_id)

    async def list_profiles(self) -> list[DentistProfile]:
        stmt = select(DentistSchedule).order_by(DentistSchedule.id)
        result = await self.session.execute(stmt)
        return [to_profile(d) for d in result.scalars().all()]

    async def lock_for_date(self, day: date) -> list[DentistProfile]:
        """Lock the active dentist rows and return fresh profiles.

        ``FOR UPDATE`` serializes concurrent writers across processes on
        databases that support it; SQLite ignores the clause. Rows come back
        in primary-key order so every writer locks them in the same order.
        """
        stmt = (
            select(DentistSchedule)
            .where(DentistSchedule.status == DentistStatus.ACTIVE.value)
            .order_by(DentistSchedule.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [to_profile(d) for d in result.scalars().all()]

    async def set_weekly_hours(
        self,
        dentist_id: uuid.UUID,
        weekly: dict[Weekday, Optional[DentistHours]],
    ) -> Optional[DentistSchedule]:
        """Replace the dentist's working weekdays and custom hours."""
        dentist = await self.get_by_id(dentist_id)
        if not dentist:
            return None
        existing = {row.day_of_week: row for row in dentist.weekly_hours}
        for day, hours in weekly.items():
            row = existing.get(int(day))
            if row is None:
                dentist.weekly_hours.append(_hours_row(day, hours))
            else:
                row.start_time = hours.start if hours else None
                row.end_time = hours.end if hours else None
        for day_of_week, row in existing.items():
            if Weekday(day_of_week) not in weekly:
                dentist.weekly_hours.remove(row)
        dentist.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return dentist


def _hours_row(day: Weekday, hours: Optional[DentistHours]) -> DentistWeeklyHours:
    return DentistWeeklyHours(
        day_of_week=int(day),
        start_time=hours.start if hours else None,
        end_time=hours.end if hours else None,
    )


def to_profile(dentist: DentistSchedule) -> DentistProfile:
    """Scheduling view of a dentist row.

    A weekday row with only one of start/end set is treated as full clinic
    hours.
    """
    weekly: dict[Weekday, Optional[DentistHours]] = {}
    for row in dentist.weekly_hours:
        if row.start_time is not None and row.end_time is not None:
            weekly[Weekday(row.day_of_week)] = DentistHours(start=row.start_time, end=row.end_time)
        else:
            weekly[Weekday(row.day_of_week)] = None
    return DentistProfile(
        id=dentist.id,
        code=dentist.dentist_code,
        name=dentist.dentist_name,
        status=DentistStatus(dentist.status),
        contract_end_date=dentist.contract_end_date,
        weekly=weekly,
    )


class ClinicCalendarRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert_template(self, weekday: Weekday, **kwargs) -> ClinicWeeklySchedule:
        stmt = select(ClinicWeeklySchedule).where(ClinicWeeklySchedule.weekday == int(weekday))
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = ClinicWeeklySchedule(weekday=int(weekday))
            self.session.add(row)
        for k, v in kwargs.items():
            setattr(row, k, v)
        await self.session.flush()
        return row

    async def upsert_exception(
        self,
        day: date,
        dentist_ids: Optional[list[uuid.UUID]] = None,
        **kwargs,
    ) -> ClinicCalendarDay:
        stmt = select(ClinicCalendarDay).where(ClinicCalendarDay.date == day)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = ClinicCalendarDay(date=day)
            self.session.add(row)
        row.dentist_ids = [str(d) for d in dentist_ids] if dentist_ids is not None else None
        for k, v in kwargs.items():
            setattr(row, k, v)
        await self.session.flush()
        return row

    async def list_templates(self) -> list[ClinicDayTemplate]:
        result = await self.session.execute(select(ClinicWeeklySchedule))
        return [
            ClinicDayTemplate(
                weekday=Weekday(row.weekday),
                is_open=row.is_open,
                open_time=row.open_time,
                close_time=row.close_time,
                max_per_block=row.max_per_block,
            )
            for row in result.scalars().all()
        ]

    async def get_exception(self, day: date) -> Optional[CalendarException]:
        stmt = select(ClinicCalendarDay).where(ClinicCalendarDay.date == day)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return CalendarException(
            date=row.date,
            is_open=row.is_open,
            open_time=row.open_time,
            close_time=row.close_time,
            max_per_block=row.max_per_block,
            dentist_ids=[uuid.UUID(str(d)) for d in row.dentist_ids] if row.dentist_ids is not None else None,
            note=row.note,
        )


class AppointmentRepository:
    """Reads bookings for scheduling and is the only writer of new bookings."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def persist(
        self,
        *,
        day: date,
        time_slot: str,
        dentist_id: Optional[uuid.UUID],
        patient_id: uuid.UUID,
        service_id: uuid.UUID,
        payment_method: PaymentMethod,
        honor_preferred_dentist: bool = True,
        teeth_count: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> AppointmentDB:
        """Insert a pending booking with a fresh reference code."""
        appointment = AppointmentDB(
            patient_id=patient_id,
            service_id=service_id,
            dentist_schedule_id=dentist_id,
            date=day,
            time_slot=time_slot,
            status=AppointmentStatus.PENDING.value,
            honor_preferred_dentist=honor_preferred_dentist,
            payment_method=payment_method.value,
            payment_status="awaiting_payment" if payment_method == PaymentMethod.MAYA else "unpaid",
            reference_code=await self._new_reference_code(),
            teeth_count=teeth_count,
            notes=notes,
        )
        self.session.add(appointment)
        await self.session.flush()
        return appointment

    async def _new_reference_code(self) -> str:
        while True:
            code = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(8))
            stmt = select(AppointmentDB.id).where(AppointmentDB.reference_code == code)
            if (await self.session.execute(stmt)).first() is None:
                return code

    async def get_by_id(self, appointment_id: uuid.UUID) -> Optional[AppointmentDB]:
        return await self.session.get(AppointmentDB, appointment_id)

    async def get_by_reference(self, reference_code: str) -> Optional[AppointmentDB]:
        code = normalize_reference_code(reference_code)
        if not code:
            return None
        stmt = select(AppointmentDB).where(func.upper(AppointmentDB.reference_code) == code)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_for_date(self, day: date) -> list[BookedSlot]:
        """Occupying bookings on *day*, read fresh from the database."""
        stmt = (
            select(AppointmentDB)
            .where(AppointmentDB.date == day, AppointmentDB.status.in_(_OCCUPYING_VALUES))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [to_booked_slot(row) for row in result.scalars().all()]

    async def list_rows_for_date(
        self, day: date, statuses: Sequence[AppointmentStatus]
    ) -> Sequence[AppointmentDB]:
        stmt = (
            select(AppointmentDB)
            .where(AppointmentDB.date == day, AppointmentDB.status.in_([s.value for s in statuses]))
            .order_by(AppointmentDB.time_slot)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_patient_date(
        self,
        patient_id: uuid.UUID,
        day: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> list[BookedSlot]:
        stmt = select(AppointmentDB).where(
            AppointmentDB.patient_id == patient_id,
            AppointmentDB.date == day,
            AppointmentDB.status.in_(_OCCUPYING_VALUES),
        )
        if exclude_id is not None:
            stmt = stmt.where(AppointmentDB.id != exclude_id)
        result = await self.session.execute(stmt)
        return [to_booked_slot(row) for row in result.scalars().all()]

    async def latest_assignment(
        self, patient_id: uuid.UUID, before: date
    ) -> Optional[tuple[date, uuid.UUID]]:
        """Most recent (date, dentist) the patient was booked with before *before*."""
        stmt = (
            select(AppointmentDB.date, AppointmentDB.dentist_schedule_id)
            .where(
                AppointmentDB.patient_id == patient_id,
                AppointmentDB.date < before,
                AppointmentDB.dentist_schedule_id.is_not(None),
                AppointmentDB.status.in_(_OCCUPYING_VALUES),
            )
            .order_by(AppointmentDB.date.desc(), AppointmentDB.created_at.desc())
            .limit(1)
        )
        row = (await self.session.execute(stmt)).first()
        return (row[0], row[1]) if row else None

    async def update(self, appointment_id: uuid.UUID, **kwargs) -> Optional[AppointmentDB]:
        appointment = await self.get_by_id(appointment_id)
        if not appointment:
            return None
        for k, v in kwargs.items():
            setattr(appointment, k, v)
        appointment.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return appointment


def to_booked_slot(row: AppointmentDB) -> BookedSlot:
    start, end = parse_time_slot(row.time_slot)
    return BookedSlot(
        id=row.id,
        date=row.date,
        start=start,
        end=end,
        status=AppointmentStatus(row.status),
        dentist_id=row.dentist_schedule_id,
        patient_id=row.patient_id,
    )


class PatientVisitRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> PatientVisit:
        visit = PatientVisit(**kwargs)
        self.session.add(visit)
        await self.session.flush()
        return visit

    async def latest_assignment(
        self, patient_id: uuid.UUID, before: date
    ) -> Optional[tuple[date, uuid.UUID]]:
        stmt = (
            select(PatientVisit.visit_date, PatientVisit.dentist_schedule_id)
            .where(
                PatientVisit.patient_id == patient_id,
                PatientVisit.visit_date < before,
                PatientVisit.dentist_schedule_id.is_not(None),
            )
            .order_by(PatientVisit.visit_date.desc(), PatientVisit.created_at.desc())
            .limit(1)
        )
        row = (await self.session.execute(stmt)).first()
        return (row[0], row[1]) if row else None


async def preferred_dentist_id(
    session: AsyncSession, patient_id: uuid.UUID, before: date
) -> Optional[uuid.UUID]:
    """Dentist of the patient's latest assignment before *before*.

    Appointments and visits are both consulted; the later date wins and an
    appointment wins a tie.
    """
    booked = await AppointmentRepository(session).latest_assignment(patient_id, before)
    visited = await PatientVisitRepository(session).latest_assignment(patient_id, before)
    if booked and visited:
        return booked[1] if booked[0] >= visited[0] else visited[1]
    if booked:
        return booked[1]
    if visited:
        return visited[1]
    return None
