"""
Availability Calculator

Enumerates open appointment start times for a professional on a date:

    1. Load the professional's weekly template (ProfessionalNotFound if absent)
    2. Pick the weekday entry; an inactive day has no slots
    3. Load the professional's active bookings overlapping that local day
    4. Walk candidates from work start in fixed strides while the slot still
       ends within the work window
    5. Drop candidates overlapping the break or any booking
    6. Return the rest in chronological order

The result is advisory: the conflict guard re-checks at write time.
"""

import datetime
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from clinic_api.config import settings
from clinic_api.db.repository import BookingRepository, ProfessionalRepository
from clinic_api.errors import ProfessionalNotFound, ValidationError
from clinic_api.models.schemas import TenantScope
from clinic_api.scheduling.timeslots import minutes_to_time, overlaps
from clinic_api.scheduling.weekly_schedule import (
    DEFAULT_WORK_HOURS,
    DaySchedule,
    WeeklySchedule,
)
from clinic_api.utils.timezone import local_day_bounds, minutes_from_local_midnight

logger = logging.getLogger(__name__)

DEFAULT_STRIDE_MINUTES = 30


def generate_slots(
    day: DaySchedule,
    duration_minutes: int,
    busy: Iterable[Tuple[int, int]] = (),
    stride_minutes: int = DEFAULT_STRIDE_MINUTES,
) -> List[str]:
    """
    Compute free "HH:MM" start times for one day of a template.

    Args:
        day: Template entry for the weekday
        duration_minutes: Length of the requested appointment
        busy: ``(start, end)`` minute offsets from local midnight of booked time
        stride_minutes: Distance between candidate starts

    Returns:
        Ascending list of start times; empty when the day is inactive or the
        duration does not fit
    """
    if duration_minutes < 1:
        raise ValidationError("duration_minutes must be at least 1")
    if stride_minutes < 1:
        raise ValidationError("stride_minutes must be at least 1")

    window = day.work_window
    if window is None:
        return []

    work_start, work_end = window
    break_window = day.break_window
    busy = sorted(busy)

    slots: List[str] = []
    offset = work_start
    while offset + duration_minutes <= work_end:
        slot_end = offset + duration_minutes

        if break_window and overlaps(offset, slot_end, *break_window):
            offset += stride_minutes
            continue

        if not any(overlaps(offset, slot_end, b_start, b_end) for b_start, b_end in busy):
            slots.append(minutes_to_time(offset))

        offset += stride_minutes

    return slots


class AvailabilityCalculator:
    """
    Read-only availability lookups against the directory and booking store.
    """

    def __init__(
        self,
        booking_repo: BookingRepository,
        professional_repo: ProfessionalRepository,
        clinic_timezone: Optional[str] = None,
        stride_minutes: Optional[int] = None,
    ):
        self.booking_repo = booking_repo
        self.professional_repo = professional_repo
        self.clinic_timezone = clinic_timezone or settings.clinic_timezone
        self.stride_minutes = stride_minutes or settings.slot_stride_minutes

    async def get_weekly_schedule(
        self,
        tenant: TenantScope,
        professional_id: str,
    ) -> WeeklySchedule:
        professional = await self.professional_repo.get_work_hours(tenant, professional_id)
        if not professional:
            raise ProfessionalNotFound(
                f"Professional {professional_id} not found",
                {"professional_id": str(professional_id)},
            )
        return WeeklySchedule.from_mapping(professional.get("work_hours") or DEFAULT_WORK_HOURS)

    async def busy_intervals(
        self,
        tenant: TenantScope,
        professional_id: str,
        day: datetime.date,
        tz_name: str,
    ) -> List[Tuple[int, int]]:
        """Active bookings overlapping the local day, as minute offsets."""
        window_start, window_end = local_day_bounds(day, tz_name)
        bookings = await self.booking_repo.list_active_in_window(
            tenant, professional_id, window_start, window_end
        )
        return [
            (
                minutes_from_local_midnight(booking["start_at"], day, tz_name),
                minutes_from_local_midnight(booking["end_at"], day, tz_name, round_up=True),
            )
            for booking in bookings
        ]

    async def compute_available_slots(
        self,
        tenant: TenantScope,
        professional_id: str,
        day: datetime.date,
        duration_minutes: int = 60,
        timezone: Optional[str] = None,
    ) -> List[str]:
        """
        Get the free start times of a professional on a date.

        Args:
            tenant: Tenant scope
            professional_id: Professional to query
            day: Calendar date, interpreted in ``timezone``
            duration_minutes: Requested appointment length
            timezone: IANA zone of the date (defaults to the clinic zone)

        Returns:
            Ascending list of "HH:MM" start times

        Raises:
            ProfessionalNotFound: If the professional does not exist
            ValidationError: If the duration is below one minute
        """
        if duration_minutes < 1:
            raise ValidationError(
                "duration_minutes must be at least 1",
                {"duration_minutes": duration_minutes},
            )

        tz_name = timezone or self.clinic_timezone
        schedule = await self.get_weekly_schedule(tenant, professional_id)
        day_schedule = schedule.for_date(day)

        if not day_schedule.active:
            logger.info(f"Professional {professional_id} does not work on {day.isoformat()}")
            return []

        busy: Sequence[Tuple[int, int]] = await self.busy_intervals(
            tenant, professional_id, day, tz_name
        )

        slots = generate_slots(
            day_schedule,
            duration_minutes,
            busy=busy,
            stride_minutes=self.stride_minutes,
        )

        logger.info(
            f"Found {len(slots)} free slots for professional {professional_id} "
            f"on {day.isoformat()} ({duration_minutes} min, {len(busy)} bookings)"
        )
        return slots
