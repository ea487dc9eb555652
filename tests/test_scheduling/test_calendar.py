"""Tests for ClinicCalendarResolver and date parsing."""

import uuid
from datetime import date, time

import pytest

from dental_os.scheduling.calendar import ClinicCalendarResolver, parse_date
from dental_os.scheduling.exceptions import InvalidDateError
from dental_os.scheduling.models import (
    CalendarException,
    ClinicDayTemplate,
    DentistStatus,
    Weekday,
)

MONDAY = date(2026, 10, 19)
SUNDAY = date(2026, 10, 25)


@pytest.fixture
def week():
    return [
        ClinicDayTemplate(
            weekday=day,
            is_open=day != Weekday.SUN,
            open_time=time(9, 0) if day != Weekday.SUN else None,
            close_time=time(17, 0) if day != Weekday.SUN else None,
        )
        for day in Weekday
    ]


def test_open_day_counts_working_dentists(week, make_dentist):
    a = make_dentist()
    b = make_dentist()
    snap = ClinicCalendarResolver(week).resolve(MONDAY, [a, b])
    assert snap.is_open
    assert (snap.open_time, snap.close_time) == (time(9, 0), time(17, 0))
    assert snap.active_dentist_ids == frozenset({a.id, b.id})
    assert snap.effective_capacity == 2


def test_closed_weekday(week, make_dentist):
    snap = ClinicCalendarResolver(week).resolve(SUNDAY, [make_dentist()])
    assert not snap.is_open
    assert snap.effective_capacity == 0
    assert snap.active_dentist_ids == frozenset()


def test_missing_template_is_closed(make_dentist):
    snap = ClinicCalendarResolver([]).resolve(MONDAY, [make_dentist()])
    assert not snap.is_open


def test_dentist_off_weekday_inactive_or_out_of_contract(week, make_dentist):
    off_monday = make_dentist(weekly={Weekday.TUE: None})
    inactive = make_dentist(status=DentistStatus.INACTIVE)
    contract_over = make_dentist(contract_end_date=date(2026, 10, 18))
    contract_today = make_dentist(contract_end_date=MONDAY)
    snap = ClinicCalendarResolver(week).resolve(
        MONDAY, [off_monday, inactive, contract_over, contract_today]
    )
    assert snap.active_dentist_ids == frozenset({contract_today.id})
    assert snap.effective_capacity == 1


def test_max_per_block_caps_capacity(make_snapshot, make_dentist):
    dentists = [make_dentist() for _ in range(3)]
    assert make_snapshot(dentists=dentists, max_per_block=2).effective_capacity == 2
    assert make_snapshot(dentists=dentists, max_per_block=5).effective_capacity == 3


def test_exception_closes_day(week, make_dentist):
    holiday = CalendarException(date=MONDAY, is_open=False, note="Holiday")
    snap = ClinicCalendarResolver(week, [holiday]).resolve(MONDAY, [make_dentist()])
    assert not snap.is_open


def test_exception_opens_closed_day_with_template_hours_fallback(make_dentist):
    template = ClinicDayTemplate(
        weekday=Weekday.SUN, is_open=False, open_time=time(10, 0), close_time=time(14, 0)
    )
    special = CalendarException(date=SUNDAY, is_open=True)
    snap = ClinicCalendarResolver([template], [special]).resolve(SUNDAY, [make_dentist()])
    assert snap.is_open
    assert (snap.open_time, snap.close_time) == (time(10, 0), time(14, 0))


def test_exception_overrides_hours_cap_and_roster(week, make_dentist):
    a, b, c = make_dentist(), make_dentist(), make_dentist()
    special = CalendarException(
        date=MONDAY,
        is_open=True,
        open_time=time(8, 0),
        close_time=time(12, 0),
        max_per_block=1,
        dentist_ids=[a.id, b.id, uuid.uuid4()],
    )
    snap = ClinicCalendarResolver(week, [special]).resolve(MONDAY, [a, b, c])
    assert (snap.open_time, snap.close_time) == (time(8, 0), time(12, 0))
    assert snap.active_dentist_ids == frozenset({a.id, b.id})
    assert snap.effective_capacity == 1


def test_inverted_hours_treated_as_closed(make_dentist):
    template = ClinicDayTemplate(
        weekday=Weekday.MON, is_open=True, open_time=time(17, 0), close_time=time(9, 0)
    )
    snap = ClinicCalendarResolver([template]).resolve(MONDAY, [make_dentist()])
    assert not snap.is_open


def test_open_day_without_dentists_has_zero_capacity(make_snapshot):
    snap = make_snapshot(dentists=[])
    assert snap.is_open
    assert snap.effective_capacity == 0


def test_parse_date():
    assert parse_date("2026-10-19") == MONDAY
    assert parse_date(MONDAY) == MONDAY
    for bad in ("19/10/2026", "2026-13-01", "", None):
        with pytest.raises(InvalidDateError):
            parse_date(bad)
