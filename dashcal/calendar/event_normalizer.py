"""Normalization of raw feed records into canonical CalendarEvents.

This is the single place where all-day classification happens. Expansion and
day queries only ever see the output of this module.
"""

import hashlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any, Optional

from dashcal.calendar.datetime_utils import (
    ensure_timezone_aware,
    is_date_only,
    to_epoch_millis,
    utc_midnight,
)
from dashcal.calendar.models import DEFAULT_SUMMARY, CalendarEvent, DateOrDateTime, RawEventRecord
from dashcal.core.config_manager import get_config_value

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# A span within this distance of 24h counts as a full day
FULL_DAY_TOLERANCE = timedelta(hours=0.1)


@dataclass(frozen=True)
class ResolvedSpan:
    """Start/end instants of a record plus whether the source used bare dates."""

    start: datetime
    end: datetime
    date_only: bool
    start_date: date
    end_date: date


def _elapsed(span: ResolvedSpan) -> timedelta:
    # Same-zone subtraction is wall-clock; convert so DST days count their real length
    return span.end.astimezone(UTC) - span.start.astimezone(UTC)


def _spans_full_day(span: ResolvedSpan) -> bool:
    return abs(_elapsed(span) - ONE_DAY) <= FULL_DAY_TOLERANCE


def _is_midnight_to_end_of_day(span: ResolvedSpan) -> bool:
    return (
        span.start.date() == span.end.date()
        and span.start.hour == 0
        and span.start.minute == 0
        and span.end.hour == 23
        and span.end.minute == 59
    )


# Priority-ordered all-day rules (first match wins)
ALL_DAY_RULES: tuple[tuple[Callable[[ResolvedSpan], bool], str], ...] = (
    (lambda span: span.date_only, "date-only value"),
    (lambda span: _elapsed(span) <= timedelta(0), "zero-length span"),
    (_spans_full_day, "24 hour span"),
    (_is_midnight_to_end_of_day, "00:00-23:59 same day"),
)


def classify_all_day(span: ResolvedSpan) -> tuple[bool, str]:
    """Return ``(is_all_day, rule_name)`` for a resolved span.

    Evaluates :data:`ALL_DAY_RULES` in order; an event matching none of them
    is timed. An inverted span (end before start) is coerced like a
    zero-length one so the canonical event never ends before it starts.
    """
    for condition, rule_name in ALL_DAY_RULES:
        if condition(span):
            return True, rule_name
    return False, "timed"


def resolve_span(
    start: DateOrDateTime,
    end: Optional[DateOrDateTime],
    duration: Optional[timedelta] = None,
) -> ResolvedSpan:
    """Turn raw DTSTART/DTEND/DURATION values into absolute instants.

    A missing end falls back to ``start + duration`` and then to ``start``.
    Bare dates become UTC midnights; their calendar dates are kept so the
    all-day branch can work on dates instead of instants.
    """
    if end is None and duration is not None:
        end = start + duration
    if end is None:
        end = start

    date_only = is_date_only(start) and is_date_only(end)

    start_dt = utc_midnight(start) if is_date_only(start) else ensure_timezone_aware(start)
    end_dt = utc_midnight(end) if is_date_only(end) else ensure_timezone_aware(end)

    start_date = start if is_date_only(start) else start_dt.date()
    end_date = end if is_date_only(end) else end_dt.date()

    return ResolvedSpan(
        start=start_dt,
        end=end_dt,
        date_only=date_only,
        start_date=start_date,
        end_date=end_date,
    )


def _as_instant(value: DateOrDateTime) -> datetime:
    return utc_midnight(value) if is_date_only(value) else ensure_timezone_aware(value)


def generate_uid(record: RawEventRecord) -> str:
    """Deterministic identifier for records that arrive without a UID."""
    fingerprint = "|".join(
        [
            record.summary or "",
            _as_instant(record.start).isoformat(),
            _as_instant(record.end).isoformat() if record.end is not None else "",
            record.location or "",
        ]
    )
    digest = hashlib.sha1(fingerprint.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"generated-{digest[:16]}"


def occurrence_uid(parent_uid: str, occurrence: datetime) -> str:
    """UID of one occurrence of a recurring event: ``<parent>-<epoch millis>``."""
    return f"{parent_uid}-{to_epoch_millis(occurrence)}"


class EventNormalizer:
    """Builds canonical CalendarEvents from raw records."""

    def __init__(self, settings: Any = None) -> None:
        self.preserve_multiday = bool(
            get_config_value(settings, "preserve_multiday_all_day", False)
            if settings is not None
            else False
        )

    def normalize_records(
        self, records: Iterable[RawEventRecord]
    ) -> tuple[list[CalendarEvent], list[str]]:
        """Normalize every record, collecting diagnostics for the ones that fail."""
        events: list[CalendarEvent] = []
        diagnostics: list[str] = []
        for record in records:
            try:
                events.append(self.normalize_record(record))
            except ValueError as e:
                message = f"Skipped event {record.uid or '<no-uid>'}: {e}"
                logger.warning("Failed to normalize event %s: %s", record.uid, e)
                diagnostics.append(message)
        return events, diagnostics

    def normalize_record(self, record: RawEventRecord) -> CalendarEvent:
        """Convert one raw record into a canonical event."""
        uid = record.uid or generate_uid(record)
        recurrence_id = _as_instant(record.recurrence_id) if record.recurrence_id else None
        if recurrence_id is not None:
            uid = occurrence_uid(uid, recurrence_id)

        span = resolve_span(record.start, record.end, record.duration)
        return self._build(
            span,
            uid=uid,
            summary=record.summary,
            description=record.description,
            location=record.location,
            # Overridden occurrences belong to a series even though they carry no rule
            is_recurring=bool(record.rrules) or recurrence_id is not None,
            recurrence_rules=list(record.rrules),
            exdates=[_as_instant(value) for value in record.exdates],
            recurrence_id=recurrence_id,
            status=record.status,
        )

    def normalize_event(self, event: CalendarEvent) -> CalendarEvent:
        """Re-apply normalization to an already canonical event.

        Canonical all-day events are read back as the date span they encode,
        so re-normalizing yields an identical record.
        """
        if event.is_all_day and _is_utc_midnight(event.start) and _is_utc_midnight(event.end):
            span = resolve_span(event.start.date(), event.end.date())
        else:
            span = resolve_span(event.start, event.end)

        return self._build(
            span,
            uid=event.uid,
            summary=event.summary,
            description=event.description,
            location=event.location,
            is_recurring=event.is_recurring,
            recurrence_rules=list(event.recurrence_rules),
            exdates=list(event.exdates),
            recurrence_id=event.recurrence_id,
            status=event.status,
        )

    def _build(self, span: ResolvedSpan, **fields: Any) -> CalendarEvent:
        is_all_day, rule_name = classify_all_day(span)

        if is_all_day:
            start = utc_midnight(span.start_date)
            end = start + self._all_day_length(span)
        else:
            start, end = span.start, span.end

        logger.debug(
            "Normalized %s as %s (%s)",
            fields["uid"],
            "all-day" if is_all_day else "timed",
            rule_name,
        )

        return CalendarEvent(
            uid=fields.pop("uid"),
            summary=fields.pop("summary") or DEFAULT_SUMMARY,
            start=start,
            end=end,
            is_all_day=is_all_day,
            **fields,
        )

    def _all_day_length(self, span: ResolvedSpan) -> timedelta:
        """One UTC day, or the source's day count for multi-day date spans when enabled."""
        if self.preserve_multiday and span.date_only:
            days = (span.end_date - span.start_date).days
            if days > 1:
                return timedelta(days=days)
        return ONE_DAY


def _is_utc_midnight(dt: datetime) -> bool:
    return dt.utcoffset() == timedelta(0) and (dt.hour, dt.minute, dt.second, dt.microsecond) == (0, 0, 0, 0)


__all__ = [
    "ALL_DAY_RULES",
    "EventNormalizer",
    "ResolvedSpan",
    "classify_all_day",
    "generate_uid",
    "occurrence_uid",
    "resolve_span",
]
