"""Pytest configuration and fixtures."""

import uuid
from datetime import date, datetime, time
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dental_os.config import Settings
from dental_os.core.models import Base
from dental_os.core.repository import (
    ClinicCalendarRepository,
    DentistScheduleRepository,
    PatientRepository,
    ServiceRepository,
)
from dental_os.scheduling.calendar import ClinicCalendarResolver
from dental_os.scheduling.models import (
    ClinicDayTemplate,
    DentistHours,
    DentistProfile,
    DentistStatus,
    Weekday,
)

# 2026-10-19 is a Monday; the clinic clock in DB tests sits at 08:00 that day.
TODAY = date(2026, 10, 19)


def _t(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


# ---------------------------------------------------------------------------
# Pure value factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_dentist():
    """Build a DentistProfile; ``weekly`` maps weekdays to ("HH:MM", "HH:MM") or None."""

    def _make(
        dentist_id: uuid.UUID | None = None,
        weekly: dict[Weekday, tuple[str, str] | None] | None = None,
        status: DentistStatus = DentistStatus.ACTIVE,
        contract_end_date: date | None = None,
        name: str = "Dr. Test",
    ) -> DentistProfile:
        if weekly is None:
            weekly = {day: None for day in Weekday}
        return DentistProfile(
            id=dentist_id or uuid.uuid4(),
            name=name,
            status=status,
            contract_end_date=contract_end_date,
            weekly={
                day: DentistHours(start=_t(hours[0]), end=_t(hours[1])) if hours else None
                for day, hours in weekly.items()
            },
        )

    return _make


@pytest.fixture
def make_snapshot():
    """Resolve a snapshot from a one-weekday template, like the repository would."""

    def _make(
        day: date = TODAY,
        dentists=(),
        open_time: str = "09:00",
        close_time: str = "17:00",
        max_per_block: int | None = None,
    ):
        template = ClinicDayTemplate(
            weekday=Weekday.of(day),
            is_open=True,
            open_time=_t(open_time),
            close_time=_t(close_time),
            max_per_block=max_per_block,
        )
        return ClinicCalendarResolver([template]).resolve(day, dentists)

    return _make


# ---------------------------------------------------------------------------
# Database fixtures: async SQLite
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite+aiosqlite://", booking_window_days=7)


@pytest.fixture
def clock():
    """Clinic wall clock frozen at 08:00 on TODAY."""
    tz = ZoneInfo("Asia/Manila")
    return lambda: datetime(TODAY.year, TODAY.month, TODAY.day, 8, 0, tzinfo=tz)


async def seed_clinic(session: AsyncSession) -> SimpleNamespace:
    """Mon-Sat 09:00-17:00, two full-time dentists, two services, two patients."""
    calendar = ClinicCalendarRepository(session)
    for day in Weekday:
        is_open = day != Weekday.SUN
        await calendar.upsert_template(
            day,
            is_open=is_open,
            open_time=time(9, 0) if is_open else None,
            close_time=time(17, 0) if is_open else None,
        )

    dentists = DentistScheduleRepository(session)
    every_day = {day: None for day in Weekday if day != Weekday.SUN}
    dr_a = await dentists.create(
        id=uuid.UUID("00000000-0000-0000-0000-00000000000a"),
        dentist_code="D-A",
        dentist_name="Dr. Alvarez",
        weekly=every_day,
    )
    dr_b = await dentists.create(
        id=uuid.UUID("00000000-0000-0000-0000-00000000000b"),
        dentist_code="D-B",
        dentist_name="Dr. Bautista",
        weekly=every_day,
    )

    services = ServiceRepository(session)
    cleaning = await services.create(name="Cleaning", estimated_minutes=30, price=800.0)
    extraction = await services.create(name="Extraction", estimated_minutes=90, price=2500.0)

    patients = PatientRepository(session)
    ana = await patients.create(first_name="Ana", last_name="Reyes", contact_number="09170000001")
    ben = await patients.create(first_name="Ben", last_name="Cruz", contact_number="09170000002")

    await session.commit()
    return SimpleNamespace(
        dr_a=dr_a.id,
        dr_b=dr_b.id,
        cleaning=cleaning.id,
        extraction=extraction.id,
        ana=ana.id,
        ben=ben.id,
    )


@pytest.fixture
async def clinic(session):
    return await seed_clinic(session)


@pytest.fixture
def seed():
    """The clinic seeder, for tests that manage their own engine."""
    return seed_clinic
