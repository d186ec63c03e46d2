"""Tests for slot generation and the availability calculator."""

from datetime import date, datetime, timezone

import pytest

from clinic_api.errors import ProfessionalNotFound, ValidationError
from clinic_api.scheduling.availability import AvailabilityCalculator, generate_slots
from clinic_api.scheduling.timeslots import overlaps, time_to_minutes
from clinic_api.scheduling.weekly_schedule import DaySchedule

MONDAY = date(2025, 12, 1)
SATURDAY = date(2025, 12, 6)

WORKDAY = DaySchedule(
    active=True, start="08:00", end="18:00", break_start="12:00", break_end="13:00"
)

MONDAY_60_MIN = [
    "08:00", "08:30", "09:00", "09:30", "10:00", "10:30", "11:00",
    "13:00", "13:30", "14:00", "14:30", "15:00", "15:30", "16:00", "16:30", "17:00",
]


def _utc(hour, minute=0, day=1):
    return datetime(2025, 12, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def calculator(booking_repo, professional_repo):
    return AvailabilityCalculator(
        booking_repo, professional_repo, clinic_timezone="America/Sao_Paulo", stride_minutes=30
    )


# --- generate_slots ---


def test_workday_with_break():
    assert generate_slots(WORKDAY, 60) == MONDAY_60_MIN


def test_slots_stay_in_window_and_outside_break():
    for duration in (15, 30, 45, 60, 90, 120):
        for slot in generate_slots(WORKDAY, duration):
            start = time_to_minutes(slot)
            assert start >= 8 * 60
            assert start + duration <= 18 * 60
            assert not overlaps(start, start + duration, 12 * 60, 13 * 60)


def test_busy_interval_removes_slots():
    slots = generate_slots(WORKDAY, 60, busy=[(9 * 60, 10 * 60)])

    assert "08:00" in slots
    assert "08:30" not in slots
    assert "09:00" not in slots
    assert "09:30" not in slots
    assert "10:00" in slots


def test_inactive_day_has_no_slots():
    assert generate_slots(DaySchedule(active=False), 30) == []


def test_duration_longer_than_day():
    day = DaySchedule(active=True, start="08:00", end="09:00")
    assert generate_slots(day, 90) == []


def test_day_without_break():
    day = DaySchedule(active=True, start="09:00", end="11:00")
    assert generate_slots(day, 60) == ["09:00", "09:30", "10:00"]


def test_invalid_duration():
    with pytest.raises(ValidationError):
        generate_slots(WORKDAY, 0)


# --- AvailabilityCalculator ---


async def test_monday_with_no_bookings(calculator, tenant, professional_id):
    slots = await calculator.compute_available_slots(tenant, professional_id, MONDAY, 60)
    assert slots == MONDAY_60_MIN


async def test_saturday_is_off(calculator, tenant, professional_id):
    assert await calculator.compute_available_slots(tenant, professional_id, SATURDAY, 60) == []


async def test_bookings_are_excluded(calculator, booking_repo, tenant, professional_id, lead_id):
    # 10:00-11:00 Sao Paulo
    await booking_repo.insert_booking(
        tenant,
        {
            "lead_id": lead_id,
            "professional_id": professional_id,
            "product_id": 1,
            "start_at": _utc(13),
            "end_at": _utc(14),
            "price": "100.00",
        },
    )

    slots = await calculator.compute_available_slots(tenant, professional_id, MONDAY, 60)

    assert "09:00" in slots
    assert "09:30" not in slots
    assert "10:00" not in slots
    assert "10:30" not in slots
    assert "11:00" in slots


async def test_cancelled_bookings_free_the_slot(
    calculator, booking_repo, tenant, professional_id, lead_id
):
    booking = await booking_repo.insert_booking(
        tenant,
        {
            "lead_id": lead_id,
            "professional_id": professional_id,
            "product_id": 1,
            "start_at": _utc(13),
            "end_at": _utc(14),
            "price": "100.00",
        },
    )
    await booking_repo.update_booking(tenant, booking["id"], {"status": "cancelled"})

    slots = await calculator.compute_available_slots(tenant, professional_id, MONDAY, 60)
    assert slots == MONDAY_60_MIN


async def test_other_tenant_bookings_are_invisible(
    calculator, booking_repo, tenant, other_tenant, professional_id, lead_id
):
    await booking_repo.insert_booking(
        other_tenant,
        {
            "lead_id": lead_id,
            "professional_id": professional_id,
            "product_id": 1,
            "start_at": _utc(13),
            "end_at": _utc(14),
            "price": "100.00",
        },
    )

    slots = await calculator.compute_available_slots(tenant, professional_id, MONDAY, 60)
    assert slots == MONDAY_60_MIN


async def test_unknown_professional(calculator, tenant):
    with pytest.raises(ProfessionalNotFound):
        await calculator.compute_available_slots(
            tenant, "00000000-0000-0000-0000-000000000000", MONDAY, 60
        )


async def test_professional_without_template_uses_default(
    calculator, professional_repo, tenant
):
    professional_repo.add(tenant, "11111111-1111-1111-1111-111111111111", None)

    slots = await calculator.compute_available_slots(
        tenant, "11111111-1111-1111-1111-111111111111", MONDAY, 60
    )
    assert slots == MONDAY_60_MIN


@pytest.mark.parametrize("duration", [0, -30])
async def test_duration_below_one_minute(calculator, tenant, professional_id, duration):
    with pytest.raises(ValidationError):
        await calculator.compute_available_slots(tenant, professional_id, MONDAY, duration)


async def test_duration_longer_than_window(calculator, tenant, professional_id):
    assert await calculator.compute_available_slots(tenant, professional_id, MONDAY, 2000) == []


async def test_long_duration_fits_full_day_template(calculator, professional_repo, tenant):
    professional_repo.add(
        tenant,
        "77777777-7777-7777-7777-777777777777",
        {"mon": {"active": True, "start": "00:00", "end": "24:00"}},
    )

    slots = await calculator.compute_available_slots(
        tenant, "77777777-7777-7777-7777-777777777777", MONDAY, 800
    )

    assert slots[0] == "00:00"
    assert slots[-1] == "10:30"
    assert len(slots) == 22


async def test_booking_ending_mid_minute_blocks_the_next_slot(
    calculator, booking_repo, tenant, professional_id, lead_id
):
    # 08:00:00-09:00:30 Sao Paulo
    await booking_repo.insert_booking(
        tenant,
        {
            "lead_id": lead_id,
            "professional_id": professional_id,
            "product_id": 1,
            "start_at": _utc(11),
            "end_at": datetime(2025, 12, 1, 12, 0, 30, tzinfo=timezone.utc),
            "price": "100.00",
        },
    )

    slots = await calculator.compute_available_slots(tenant, professional_id, MONDAY, 60)

    assert "08:00" not in slots
    assert "09:00" not in slots
    assert slots[0] == "09:30"
