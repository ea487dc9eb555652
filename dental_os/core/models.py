"""SQLAlchemy 2.0 async models for the clinic scheduling schema."""

from __future__ import annotations

import datetime as dt
import math
import uuid

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import JSON


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Base(DeclarativeBase):
    pass


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_number: Mapped[str | None] = mapped_column(String(20))
    email: Mapped[str | None] = mapped_column(String(255))
    birthdate: Mapped[dt.date | None] = mapped_column(Date)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Service(Base):
    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    estimated_minutes: Mapped[int] = mapped_column(Integer, default=30)
    per_teeth_service: Mapped[bool] = mapped_column(Boolean, default=False)
    per_tooth_minutes: Mapped[int | None] = mapped_column(Integer)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    def calculate_estimated_minutes(self, teeth_count: int | None = None) -> int:
        """Minutes the service takes, scaled by tooth count for per-tooth services."""
        if not self.per_teeth_service or not self.per_tooth_minutes:
            return self.estimated_minutes or 30
        if not teeth_count or teeth_count <= 0:
            return self.per_tooth_minutes
        total = self.per_tooth_minutes * teeth_count
        return math.ceil(total / 30) * 30


class DentistSchedule(Base):
    __tablename__ = "dentist_schedules"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    dentist_code: Mapped[str | None] = mapped_column(String(20), unique=True)
    dentist_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")
    employment_type: Mapped[str | None] = mapped_column(String(20))
    contract_end_date: Mapped[dt.date | None] = mapped_column(Date)
    email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    weekly_hours: Mapped[list[DentistWeeklyHours]] = relationship(
        back_populates="dentist", lazy="selectin", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_dentist_schedules_status", "status"),
    )


class DentistWeeklyHours(Base):
    """One working weekday for a dentist. Null start/end means full clinic hours."""

    __tablename__ = "dentist_weekly_hours"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    dentist_schedule_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("dentist_schedules.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Mon..6=Sun
    start_time: Mapped[dt.time | None] = mapped_column(Time)
    end_time: Mapped[dt.time | None] = mapped_column(Time)

    dentist: Mapped[DentistSchedule] = relationship(back_populates="weekly_hours")

    __table_args__ = (
        UniqueConstraint("dentist_schedule_id", "day_of_week", name="uq_dentist_weekly_hours_day"),
    )


class ClinicWeeklySchedule(Base):
    __tablename__ = "clinic_weekly_schedules"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)  # 0=Mon..6=Sun
    is_open: Mapped[bool] = mapped_column(Boolean, default=True)
    open_time: Mapped[dt.time | None] = mapped_column(Time)
    close_time: Mapped[dt.time | None] = mapped_column(Time)
    max_per_block: Mapped[int | None] = mapped_column(Integer)


class ClinicCalendarDay(Base):
    """A dated override of the weekly schedule (holiday, special hours)."""

    __tablename__ = "clinic_calendar"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, unique=True)
    is_open: Mapped[bool] = mapped_column(Boolean, default=False)
    open_time: Mapped[dt.time | None] = mapped_column(Time)
    close_time: Mapped[dt.time | None] = mapped_column(Time)
    max_per_block: Mapped[int | None] = mapped_column(Integer)
    dentist_ids: Mapped[list | None] = mapped_column(JSON)
    note: Mapped[str | None] = mapped_column(Text)


class AppointmentDB(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    patient_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    service_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    dentist_schedule_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("dentist_schedules.id", ondelete="SET NULL"))
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(11), nullable=False)  # "HH:MM-HH:MM"
    status: Mapped[str] = mapped_column(String(20), default="pending")
    honor_preferred_dentist: Mapped[bool] = mapped_column(Boolean, default=True)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), default="unpaid")
    reference_code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    teeth_count: Mapped[int | None] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(String(50))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_appointments_date_status", "date", "status"),
        Index("ix_appointments_patient_date", "patient_id", "date"),
        Index("ix_appointments_dentist_date", "dentist_schedule_id", "date"),
    )


class PatientVisit(Base):
    __tablename__ = "patient_visits"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    patient_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    dentist_schedule_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("dentist_schedules.id", ondelete="SET NULL"))
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="SET NULL"))
    visit_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_patient_visits_patient_date", "patient_id", "visit_date"),
    )
