"""Tests for the weekly work-hour template."""

from datetime import date

import pytest

from clinic_api.errors import ValidationError
from clinic_api.scheduling.weekly_schedule import (
    DEFAULT_WORK_HOURS,
    DaySchedule,
    WeeklySchedule,
    Weekday,
)


def test_weekday_numbering_starts_on_sunday():
    assert Weekday.from_date(date(2025, 11, 30)) == Weekday.SUNDAY
    assert Weekday.from_date(date(2025, 12, 1)) == Weekday.MONDAY
    assert Weekday.from_date(date(2025, 12, 6)) == Weekday.SATURDAY
    assert Weekday.SUNDAY.key == "sun"
    assert Weekday.FRIDAY.key == "fri"


def test_from_mapping_reads_each_day():
    schedule = WeeklySchedule.from_mapping(DEFAULT_WORK_HOURS)

    monday = schedule[Weekday.MONDAY]
    assert monday.active
    assert monday.work_window == (480, 1080)
    assert monday.break_window == (720, 780)

    assert not schedule[Weekday.SATURDAY].active
    assert schedule[Weekday.SATURDAY].work_window is None


def test_missing_days_are_inactive():
    schedule = WeeklySchedule.from_mapping({"wed": {"active": True, "start": "09:00", "end": "12:00"}})

    assert schedule.for_date(date(2025, 12, 3)).active
    assert not schedule.for_date(date(2025, 12, 1)).active
    assert schedule.for_date(date(2025, 12, 3)).break_window is None


def test_empty_template_has_no_active_day():
    schedule = WeeklySchedule.from_mapping(None)
    assert not any(schedule[day].active for day in Weekday)


def test_unknown_weekday_key_is_rejected():
    with pytest.raises(ValidationError, match="monday"):
        WeeklySchedule.from_mapping({"monday": {"active": True}})


def test_active_day_needs_start_before_end():
    with pytest.raises(ValidationError, match="mon"):
        WeeklySchedule.from_mapping({"mon": {"active": True, "start": "18:00", "end": "08:00"}})


@pytest.mark.parametrize(
    "breaks",
    [
        {"break_start": "12:00"},
        {"break_end": "13:00"},
        {"break_start": "13:00", "break_end": "12:00"},
        {"break_start": "12:00", "break_end": "12:00"},
        {"break_start": "07:00", "break_end": "09:00"},
        {"break_start": "17:30", "break_end": "18:30"},
    ],
)
def test_bad_break_is_rejected(breaks):
    with pytest.raises(ValidationError, match="fri"):
        WeeklySchedule.from_mapping(
            {"fri": {"active": True, "start": "08:00", "end": "18:00", **breaks}}
        )


def test_break_touching_the_window_edges_is_accepted():
    day = DaySchedule(
        active=True, start="08:00", end="18:00", break_start="08:00", break_end="09:00"
    )
    assert day.break_window == (480, 540)


def test_malformed_time_is_rejected():
    with pytest.raises(ValidationError):
        WeeklySchedule.from_mapping({"tue": {"active": True, "start": "8h", "end": "18:00"}})


def test_inactive_day_ignores_times():
    day = DaySchedule(active=False, start="18:00", end="08:00")
    assert day.work_window is None


def test_to_mapping_keeps_template():
    schedule = WeeklySchedule.from_mapping(DEFAULT_WORK_HOURS)
    mapping = schedule.to_mapping()

    assert set(mapping) == {"sun", "mon", "tue", "wed", "thu", "fri", "sat"}
    assert mapping["thu"]["start"] == "08:00"
    assert mapping["thu"]["break_end"] == "13:00"
    assert mapping["sun"]["active"] is False
