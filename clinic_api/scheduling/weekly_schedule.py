"""
Weekly Work-Hour Template

Typed view over a professional's ``work_hours`` JSON. The template is owned
by the professional directory; the booking engine only reads it.

Stored form::

    {
        "mon": {"active": true, "start": "08:00", "end": "18:00",
                "break_start": "12:00", "break_end": "13:00"},
        "sat": {"active": false},
        ...
    }
"""

import datetime
import enum
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError

from clinic_api.errors import ValidationError
from clinic_api.scheduling.timeslots import time_to_minutes


class Weekday(enum.IntEnum):
    """Weekday numbered from Sunday, as used by the work-hour template."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @property
    def key(self) -> str:
        return _WEEKDAY_KEYS[self]

    @classmethod
    def from_date(cls, day: datetime.date) -> "Weekday":
        # date.weekday() counts from Monday
        return cls((day.weekday() + 1) % 7)


_WEEKDAY_KEYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


class DaySchedule(BaseModel):
    """Working hours of a single weekday."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    active: bool = False
    start: Optional[str] = None
    end: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self) -> "DaySchedule":
        if not self.active:
            return self
        if not self.start or not self.end:
            raise ValueError("an active day needs both start and end")
        start, end = time_to_minutes(self.start), time_to_minutes(self.end)
        if start >= end:
            raise ValueError(f"start {self.start} must be before end {self.end}")
        if bool(self.break_start) != bool(self.break_end):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start:
            break_start = time_to_minutes(self.break_start)
            break_end = time_to_minutes(self.break_end)
            if break_start >= break_end:
                raise ValueError(
                    f"break_start {self.break_start} must be before break_end {self.break_end}"
                )
            if break_start < start or break_end > end:
                raise ValueError(
                    f"break {self.break_start}-{self.break_end} must lie within "
                    f"{self.start}-{self.end}"
                )
        return self

    @property
    def work_window(self) -> Optional[Tuple[int, int]]:
        if not self.active:
            return None
        return time_to_minutes(self.start), time_to_minutes(self.end)

    @property
    def break_window(self) -> Optional[Tuple[int, int]]:
        if not self.active or not (self.break_start and self.break_end):
            return None
        return time_to_minutes(self.break_start), time_to_minutes(self.break_end)


class WeeklySchedule:
    """Fixed seven-day template indexed by :class:`Weekday`."""

    def __init__(self, days: Tuple[DaySchedule, ...]):
        if len(days) != len(Weekday):
            raise ValueError("a weekly schedule needs exactly seven days")
        self._days = tuple(days)

    def __getitem__(self, weekday: Weekday) -> DaySchedule:
        return self._days[weekday]

    def for_date(self, day: datetime.date) -> DaySchedule:
        return self[Weekday.from_date(day)]

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "WeeklySchedule":
        """Build a schedule from stored JSON; missing days are inactive."""
        data = data or {}
        unknown = set(data) - set(_WEEKDAY_KEYS)
        if unknown:
            raise ValidationError(
                f"Unknown weekday keys in work hours: {', '.join(sorted(unknown))}"
            )

        days = []
        for weekday in Weekday:
            raw = data.get(weekday.key) or {}
            try:
                days.append(DaySchedule.model_validate(raw))
            except (PydanticValidationError, ValueError, ValidationError) as e:
                raise ValidationError(
                    f"Invalid work hours for {weekday.key}: {e}"
                ) from e
        return cls(tuple(days))

    def to_mapping(self) -> Dict[str, Dict[str, Any]]:
        return {weekday.key: self[weekday].model_dump() for weekday in Weekday}


def _weekday_hours() -> Dict[str, Any]:
    return {
        "active": True,
        "start": "08:00",
        "end": "18:00",
        "break_start": "12:00",
        "break_end": "13:00",
    }


# Clinic default for professionals registered without a template
DEFAULT_WORK_HOURS: Dict[str, Dict[str, Any]] = {
    "mon": _weekday_hours(),
    "tue": _weekday_hours(),
    "wed": _weekday_hours(),
    "thu": _weekday_hours(),
    "fri": _weekday_hours(),
    "sat": {"active": False},
    "sun": {"active": False},
}
