"""Selection and ordering of the events visible on one calendar day."""

import logging
from collections.abc import Iterable
from datetime import UTC, date, timedelta, tzinfo
from typing import Union

from dashcal.calendar.datetime_utils import local_day_bounds
from dashcal.calendar.models import CalendarEvent
from dashcal.core.timezone_utils import DEFAULT_TIMEZONE, get_zoneinfo

logger = logging.getLogger(__name__)

_ONE_MICROSECOND = timedelta(microseconds=1)

TimezoneArg = Union[str, tzinfo, None]


def _resolve_tz(tz: TimezoneArg, default_timezone: str) -> tzinfo:
    if isinstance(tz, tzinfo):
        return tz
    return get_zoneinfo(tz, fallback=default_timezone)


def all_day_dates(event: CalendarEvent) -> tuple[date, date]:
    """First and last UTC calendar date an all-day event covers (both inclusive)."""
    first = event.start.astimezone(UTC).date()
    # The stored end is exclusive; a zero-length span still covers its start date
    last = max((event.end - _ONE_MICROSECOND).astimezone(UTC).date(), first)
    return first, last


def is_visible_on(event: CalendarEvent, day: date, tz: tzinfo) -> bool:
    """Whether ``event`` belongs on ``day``.

    All-day events match by UTC calendar date, so a holiday stays on its date
    whatever zone the display uses. Timed events match when they start within
    the local day ``[midnight, next midnight)`` of ``tz``.
    """
    if event.is_all_day:
        first, last = all_day_dates(event)
        return first <= day <= last

    day_start, day_end = local_day_bounds(day, tz)
    return day_start <= event.start < day_end


def sort_for_display(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """All-day events first, then ascending start; ties keep their input order."""
    return sorted(events, key=lambda event: (0 if event.is_all_day else 1, event.start))


def events_for_day(
    events: Iterable[CalendarEvent],
    day: date,
    tz: TimezoneArg = None,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> list[CalendarEvent]:
    """Events visible on ``day`` in display order.

    Args:
        events: Normalized (and expanded) events
        day: Calendar date to show
        tz: Display timezone name or tzinfo; ``default_timezone`` when omitted
        default_timezone: Zone used when ``tz`` is missing or unknown

    Returns:
        A new list; the input is not modified
    """
    display_tz = _resolve_tz(tz, default_timezone)
    selected = [event for event in events if is_visible_on(event, day, display_tz)]
    logger.debug("Selected %d events for %s (%s)", len(selected), day.isoformat(), display_tz)
    return sort_for_display(selected)


__all__ = ["all_day_dates", "events_for_day", "is_visible_on", "sort_for_display"]
