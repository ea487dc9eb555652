"""Tests for DentistAssignmentResolver."""

import uuid
from datetime import date, time

import pytest

from dental_os.scheduling.assignment import DentistAssignmentResolver
from dental_os.scheduling.exceptions import (
    ClinicClosedError,
    InvalidStartTimeError,
    NoDentistAvailableError,
    SlotFullError,
)
from dental_os.scheduling.models import AppointmentStatus, BookedSlot, ClinicDaySnapshot, Weekday
from dental_os.scheduling.usage import SlotUsageIndex

MONDAY = date(2026, 10, 19)
FIRST = uuid.UUID(int=1)
SECOND = uuid.UUID(int=2)


@pytest.fixture
def resolver():
    return DentistAssignmentResolver()


@pytest.fixture
def pair(make_dentist, make_snapshot):
    a = make_dentist(FIRST, name="Dr. First")
    b = make_dentist(SECOND, name="Dr. Second")
    return [a, b], make_snapshot(dentists=[a, b])


def _usage(*bookings):
    return SlotUsageIndex.build(
        BookedSlot(date=MONDAY, start=s, end=e, dentist_id=d, status=AppointmentStatus.PENDING)
        for s, e, d in bookings
    )


class TestValidateRun:
    def test_closed_day(self, resolver):
        with pytest.raises(ClinicClosedError):
            resolver.validate_run(ClinicDaySnapshot.closed(MONDAY), time(9, 0), 1)

    def test_off_grid(self, resolver, pair):
        _, snap = pair
        with pytest.raises(InvalidStartTimeError, match="not on grid"):
            resolver.validate_run(snap, time(9, 15), 1)

    def test_lunch_block_is_off_grid(self, resolver, pair):
        _, snap = pair
        with pytest.raises(InvalidStartTimeError, match="not on grid"):
            resolver.validate_run(snap, time(12, 0), 1)

    def test_run_past_close(self, resolver, pair):
        _, snap = pair
        with pytest.raises(InvalidStartTimeError, match="outside clinic hours"):
            resolver.validate_run(snap, time(16, 30), 2)

    def test_run_into_lunch(self, resolver, pair):
        _, snap = pair
        with pytest.raises(InvalidStartTimeError, match="lunch"):
            resolver.validate_run(snap, time(11, 30), 2)

    def test_valid_run(self, resolver, pair):
        _, snap = pair
        assert resolver.validate_run(snap, time(10, 0), 3) == [time(10, 0), time(10, 30), time(11, 0)]


class TestAssign:
    def test_lowest_id_first_without_preference(self, resolver, pair):
        dentists, snap = pair
        decision = resolver.assign(snap, dentists, _usage(), time(9, 0), 1)
        assert decision.dentist_id == FIRST
        assert not decision.preferred_honored
        assert decision.time_slot == "09:00-09:30"

    def test_preferred_dentist_first(self, resolver, pair):
        dentists, snap = pair
        decision = resolver.assign(snap, dentists, _usage(), time(9, 0), 2, preferred_dentist_id=SECOND)
        assert decision.dentist_id == SECOND
        assert decision.preferred_honored
        assert decision.end == time(10, 0)

    def test_busy_preferred_falls_back(self, resolver, pair):
        dentists, snap = pair
        usage = _usage((time(9, 0), time(9, 30), SECOND))
        decision = resolver.assign(snap, dentists, usage, time(9, 0), 1, preferred_dentist_id=SECOND)
        assert decision.dentist_id == FIRST
        assert not decision.preferred_honored

    def test_preference_ignored_when_not_honored(self, resolver, pair):
        dentists, snap = pair
        decision = resolver.assign(
            snap, dentists, _usage(), time(9, 0), 1, honor_preferred=False, preferred_dentist_id=SECOND
        )
        assert decision.dentist_id == FIRST

    def test_force_dentist(self, resolver, pair):
        dentists, snap = pair
        decision = resolver.assign(snap, dentists, _usage(), time(9, 0), 1, force_dentist_id=SECOND)
        assert decision.dentist_id == SECOND

    def test_force_busy_dentist_is_full(self, resolver, pair):
        dentists, snap = pair
        usage = _usage((time(9, 0), time(9, 30), SECOND))
        with pytest.raises(SlotFullError):
            resolver.assign(snap, dentists, usage, time(9, 0), 1, force_dentist_id=SECOND)

    def test_full_block_reports_first_full(self, resolver, pair):
        dentists, snap = pair
        usage = _usage((time(9, 30), time(10, 0), FIRST), (time(9, 30), time(10, 0), SECOND))
        with pytest.raises(SlotFullError) as exc_info:
            resolver.assign(snap, dentists, usage, time(9, 0), 2)
        assert exc_info.value.full_at == time(9, 30)
        assert "09:30" in str(exc_info.value)

    def test_no_dentists_working(self, resolver, make_snapshot):
        snap = make_snapshot(dentists=[])
        with pytest.raises(NoDentistAvailableError):
            resolver.assign(snap, [], _usage(), time(9, 0), 1)

    def test_hours_do_not_cover_run(self, resolver, make_dentist, make_snapshot):
        morning = make_dentist(FIRST, weekly={Weekday.MON: ("09:00", "11:00")})
        snap = make_snapshot(dentists=[morning])
        with pytest.raises(NoDentistAvailableError):
            resolver.assign(snap, [morning], _usage(), time(13, 0), 1)

    def test_covering_dentist_busy_is_full(self, resolver, make_dentist, make_snapshot):
        morning = make_dentist(FIRST)
        afternoon = make_dentist(SECOND, weekly={Weekday.MON: ("13:00", "17:00")})
        snap = make_snapshot(dentists=[morning, afternoon])
        usage = _usage((time(9, 0), time(9, 30), FIRST))
        with pytest.raises(SlotFullError):
            resolver.assign(snap, [morning, afternoon], usage, time(9, 0), 1)
