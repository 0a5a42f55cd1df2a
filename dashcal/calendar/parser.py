"""iCalendar document parsing into raw event records."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Optional

from icalendar import Calendar, Component

from dashcal.calendar.exceptions import FeedParseError
from dashcal.calendar.models import DateOrDateTime, RawEventRecord
from dashcal.core.config_manager import get_config_value
from dashcal.core.timezone_utils import DEFAULT_TIMEZONE, get_zoneinfo, normalize_timezone_name

logger = logging.getLogger(__name__)

# Input validation limits for event text fields
MAX_EVENT_SUMMARY_LENGTH = 500
MAX_EVENT_LOCATION_LENGTH = 500
MAX_EVENT_DESCRIPTION_LENGTH = 5000


@dataclass
class ParsedFeed:
    """Event records extracted from one feed document."""

    records: list[RawEventRecord] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    calendar_name: Optional[str] = None
    timezone: Optional[str] = None
    total_components: int = 0


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _text(component: Component, name: str, limit: int) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > limit:
        logger.debug("Truncating %s from %d to %d characters", name, len(text), limit)
        text = text[:limit]
    return text


class ICSFeedParser:
    """Parses iCalendar text into :class:`RawEventRecord` objects.

    Only VEVENT components are kept; VTIMEZONE, VTODO, VALARM and other
    component kinds are discarded.
    """

    def __init__(self, settings: Any = None) -> None:
        self.settings = settings
        self.default_timezone = (
            get_config_value(settings, "default_timezone", DEFAULT_TIMEZONE)
            if settings is not None
            else DEFAULT_TIMEZONE
        )

    def parse(self, content: str) -> ParsedFeed:
        """Parse a feed document.

        Raises:
            FeedParseError: content is empty, is not a VCALENDAR, or is
                rejected by the iCalendar reader
        """
        if not content or not content.strip():
            raise FeedParseError("Empty calendar document")

        if "BEGIN:VCALENDAR" not in content.upper():
            raise FeedParseError("Document is not an iCalendar feed (missing BEGIN:VCALENDAR)")

        try:
            calendars = Calendar.from_ical(content, multiple=True)
        except Exception as e:
            logger.warning("Failed to parse iCalendar document: %s", e)
            raise FeedParseError(f"Invalid iCalendar syntax: {e}") from e

        if not calendars:
            raise FeedParseError("Document contains no VCALENDAR component")

        result = ParsedFeed()
        for calendar in calendars:
            self._parse_calendar(calendar, result)

        logger.debug(
            "Parsed %d event records from %d components (%d diagnostics)",
            len(result.records),
            result.total_components,
            len(result.diagnostics),
        )
        return result

    def _parse_calendar(self, calendar: Component, result: ParsedFeed) -> None:
        if result.calendar_name is None:
            result.calendar_name = _text(calendar, "X-WR-CALNAME", MAX_EVENT_SUMMARY_LENGTH)

        calendar_tz = _text(calendar, "X-WR-TIMEZONE", 64)
        if calendar_tz and result.timezone is None:
            result.timezone = calendar_tz
        floating_tz = get_zoneinfo(calendar_tz, fallback=self.default_timezone)

        for component in calendar.walk():
            if component is calendar:
                continue
            result.total_components += 1
            if component.name != "VEVENT":
                continue

            try:
                record = self.parse_event_component(component, floating_tz)
            except (ValueError, TypeError, AttributeError) as e:
                uid = str(component.get("UID", "<no-uid>"))
                message = f"Skipped event {uid}: {e}"
                logger.warning("Skipped event %s: %s", uid, e)
                result.diagnostics.append(message)
                continue

            # Cancelled overrides are kept so they can suppress their generated occurrence
            if record.status == "CANCELLED" and record.recurrence_id is None:
                logger.debug("Dropping cancelled event %s", record.uid)
                continue

            result.records.append(record)

    def parse_event_component(self, component: Component, floating_tz: tzinfo) -> RawEventRecord:
        """Convert one VEVENT into a raw record.

        Raises:
            ValueError: DTSTART is missing or unreadable
        """
        start = self._decode_date_value(component.get("DTSTART"), floating_tz)
        if start is None:
            raise ValueError("missing DTSTART")

        end = self._decode_date_value(component.get("DTEND"), floating_tz)

        duration: Optional[timedelta] = None
        duration_prop = component.get("DURATION")
        if duration_prop is not None and end is None:
            value = getattr(duration_prop, "dt", duration_prop)
            if isinstance(value, timedelta):
                duration = value

        rrules = []
        for prop in _as_list(component.get("RRULE")):
            rule_text = prop.to_ical().decode("utf-8") if hasattr(prop, "to_ical") else str(prop)
            if rule_text:
                rrules.append(f"RRULE:{rule_text}")

        exdates: list[DateOrDateTime] = []
        for prop in _as_list(component.get("EXDATE")):
            for item in getattr(prop, "dts", []):
                value = self._decode_date_value(item, floating_tz, params=prop.params)
                if value is not None:
                    exdates.append(value)

        status = component.get("STATUS")
        uid = component.get("UID")

        return RawEventRecord(
            uid=str(uid).strip() if uid else None,
            summary=_text(component, "SUMMARY", MAX_EVENT_SUMMARY_LENGTH),
            description=_text(component, "DESCRIPTION", MAX_EVENT_DESCRIPTION_LENGTH),
            location=_text(component, "LOCATION", MAX_EVENT_LOCATION_LENGTH),
            start=start,
            end=end,
            duration=duration,
            rrules=rrules,
            exdates=exdates,
            recurrence_id=self._decode_date_value(component.get("RECURRENCE-ID"), floating_tz),
            status=str(status).upper() if status else None,
        )

    def _decode_date_value(
        self,
        prop: Any,
        floating_tz: tzinfo,
        params: Optional[dict[str, Any]] = None,
    ) -> Optional[DateOrDateTime]:
        """Return a ``date`` or an aware ``datetime`` for a date-valued property.

        Naive values are localized using their TZID parameter when it names a
        known zone, and the calendar's floating timezone otherwise.
        """
        if prop is None:
            return None

        value = getattr(prop, "dt", prop)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                prop_params = params if params is not None else getattr(prop, "params", {})
                tzid = prop_params.get("TZID") if prop_params else None
                tz = floating_tz
                if tzid:
                    tz_name = normalize_timezone_name(str(tzid))
                    if tz_name is not None:
                        tz = get_zoneinfo(tz_name)
                value = value.replace(tzinfo=tz)
            return value
        if isinstance(value, date):
            return value
        raise ValueError(f"unsupported date value {value!r}")
