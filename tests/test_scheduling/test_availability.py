"""Tests for per-dentist working days and effective hours."""

from datetime import date, time

from dental_os.scheduling.availability import covers, effective_hours, hours_for, is_working
from dental_os.scheduling.models import DentistHours, DentistStatus, Weekday

MONDAY = date(2026, 10, 19)


def test_is_working_requires_weekday_flag(make_dentist):
    dentist = make_dentist(weekly={Weekday.MON: None})
    assert is_working(dentist, MONDAY)
    assert not is_working(dentist, date(2026, 10, 20))


def test_inactive_dentist_not_working(make_dentist):
    assert not is_working(make_dentist(status=DentistStatus.INACTIVE), MONDAY)


def test_contract_end_is_inclusive(make_dentist):
    assert is_working(make_dentist(contract_end_date=MONDAY), MONDAY)
    assert not is_working(make_dentist(contract_end_date=date(2026, 10, 18)), MONDAY)


def test_hours_for_returns_custom_window(make_dentist):
    dentist = make_dentist(weekly={Weekday.MON: ("13:00", "17:00"), Weekday.TUE: None})
    assert hours_for(dentist, MONDAY) == DentistHours(start=time(13, 0), end=time(17, 0))
    assert hours_for(dentist, date(2026, 10, 20)) is None
    assert hours_for(dentist, date(2026, 10, 21)) is None


def test_effective_hours_defaults_to_clinic(make_dentist, make_snapshot):
    dentist = make_dentist()
    snap = make_snapshot(dentists=[dentist])
    assert effective_hours(dentist, snap) == (time(9, 0), time(17, 0))


def test_effective_hours_none_when_not_working(make_dentist, make_snapshot):
    dentist = make_dentist(weekly={Weekday.TUE: None})
    snap = make_snapshot(dentists=[dentist])
    assert effective_hours(dentist, snap) is None


def test_covers_checks_whole_run(make_dentist, make_snapshot):
    dentist = make_dentist(weekly={Weekday.MON: ("09:00", "11:00")})
    snap = make_snapshot(dentists=[dentist])
    assert covers(dentist, snap, time(9, 0), time(10, 0))
    assert covers(dentist, snap, time(10, 0), time(11, 0))
    assert not covers(dentist, snap, time(10, 30), time(11, 30))
    assert not covers(dentist, snap, time(13, 0), time(13, 30))
