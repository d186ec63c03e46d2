"""
Timezone Utilities

Rules:
    1. The booking engine always works in UTC.
    2. The database stores timestamptz values (UTC).
    3. API input is ISO 8601; an explicit offset is required unless the
       caller supplies a timezone hint.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinic_api.errors import InvalidTimestamp


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, raising InvalidTimestamp if unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimestamp(f"Unknown timezone: {name!r}") from e


def _parse_iso(value: str) -> datetime:
    if not isinstance(value, str) or not value.strip():
        raise InvalidTimestamp("Timestamp must be a non-empty ISO 8601 string")
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError as e:
        raise InvalidTimestamp(
            f"Invalid ISO 8601 timestamp: {value!r} "
            "(e.g. 2025-11-28T08:00:00-03:00)"
        ) from e


def is_valid_iso_string(value: str) -> bool:
    """Return True if ``value`` parses as an ISO 8601 date-time."""
    try:
        _parse_iso(value)
    except InvalidTimestamp:
        return False
    return True


def normalize_to_utc(
    value: Union[str, datetime],
    timezone_hint: Optional[str] = None,
) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime.

    The hint is only consulted when the input carries no offset; without a
    hint such input is rejected.

    Example:
        >>> normalize_to_utc("2025-11-28T08:00:00-03:00")
        datetime.datetime(2025, 11, 28, 11, 0, tzinfo=datetime.timezone.utc)
        >>> normalize_to_utc("2025-11-28T08:00:00", "America/Sao_Paulo")
        datetime.datetime(2025, 11, 28, 11, 0, tzinfo=datetime.timezone.utc)
    """
    dt = value if isinstance(value, datetime) else _parse_iso(value)

    if dt.tzinfo is None or dt.utcoffset() is None:
        if not timezone_hint:
            raise InvalidTimestamp(
                f"Timestamp {value!s} has no UTC offset and no timezone was supplied"
            )
        dt = dt.replace(tzinfo=get_zone(timezone_hint))

    return dt.astimezone(timezone.utc)


def to_utc_iso(dt: datetime) -> str:
    """Render an aware datetime as a UTC ISO string with a ``Z`` suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def local_day_bounds(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """Return the UTC instants of local midnight of ``day`` and of the next day."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def minutes_from_local_midnight(
    instant: datetime,
    day: date,
    tz_name: str,
    round_up: bool = False,
) -> int:
    """
    Wall-clock minutes between local midnight of ``day`` and ``instant``.

    Seconds are truncated, or rounded up to the next whole minute with
    ``round_up`` (use it for interval ends so partial minutes stay busy).
    Instants on the previous local day give negative values and instants on
    the next day values of 1440 or more.
    """
    local = instant.astimezone(get_zone(tz_name))
    day_offset = (local.date() - day).days
    minutes = day_offset * 1440 + local.hour * 60 + local.minute
    if round_up and (local.second or local.microsecond):
        minutes += 1
    return minutes
