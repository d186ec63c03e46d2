"""
Clock-time arithmetic for slot generation.

All intervals are half-open: ``[start, end)``.
"""

from typing import Any

from clinic_api.errors import InvalidFormat

MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since 00:00 ("24:00" is end of day)."""
    if not isinstance(value, str):
        raise InvalidFormat(f"Invalid time {value!r}, expected HH:MM")

    parts = value.strip().split(":")
    if len(parts) != 2:
        raise InvalidFormat(f"Invalid time {value!r}, expected HH:MM")

    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise InvalidFormat(f"Invalid time {value!r}, expected HH:MM") from e

    if hours < 0 or not 0 <= minutes < 60:
        raise InvalidFormat(f"Invalid time {value!r}, out of range")

    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        raise InvalidFormat(f"Invalid time {value!r}, past end of day")
    return total


def minutes_to_time(minutes: int) -> str:
    """
    Convert minutes since 00:00 to zero-padded "HH:MM".

    No range check: 1500 renders as "25:00".
    """
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def overlaps(a_start: Any, a_end: Any, b_start: Any, b_end: Any) -> bool:
    """
    Half-open interval overlap test.

    Works on any ordered values (minute offsets, datetimes). Intervals that
    only touch, e.g. ``[9, 10)`` and ``[10, 11)``, do not overlap. The SQL
    conflict query uses the same predicate: ``start_at < :end AND end_at > :start``.
    """
    return a_start < b_end and a_end > b_start
