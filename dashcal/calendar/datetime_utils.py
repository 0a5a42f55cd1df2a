"""Date and datetime helpers shared by the parser, normalizer and expander."""

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Optional, Union


def is_date_only(value: Union[date, datetime, None]) -> bool:
    """True for a calendar date without a time-of-day component."""
    return isinstance(value, date) and not isinstance(value, datetime)


def ensure_timezone_aware(dt: datetime, default_tz: Optional[tzinfo] = None) -> datetime:
    """Attach ``default_tz`` (UTC when omitted) to a naive datetime.

    Aware datetimes are returned unchanged.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=default_tz or UTC)
    return dt


def utc_midnight(day: date) -> datetime:
    """00:00 UTC at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=UTC)


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` instants of ``day`` in the given timezone.

    The end is the next local midnight, so DST transition days span 23 or
    25 hours.
    """
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def to_epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware datetime."""
    return int(ensure_timezone_aware(dt).timestamp() * 1000)


def serialize_datetime_utc(dt: datetime) -> str:
    """Serialize datetime to ISO 8601 UTC string with Z suffix.

    Examples:
        >>> serialize_datetime_utc(datetime(2024, 11, 4, 16, 30, tzinfo=UTC))
        '2024-11-04T16:30:00Z'
        >>> serialize_datetime_utc(datetime(2024, 11, 4, 16, 30))
        '2024-11-04T16:30:00Z'
    """
    if dt is None:
        raise ValueError("Cannot serialize None datetime")

    dt_utc = dt.astimezone(UTC) if dt.tzinfo is not None else dt.replace(tzinfo=UTC)
    return dt_utc.isoformat().replace("+00:00", "Z")
