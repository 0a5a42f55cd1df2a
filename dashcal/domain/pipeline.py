"""Request boundary for calendar feed ingestion.

``load_feed_events`` runs resolve, fetch, parse, normalize and expand for one
feed reference and always returns a :class:`FeedResult`. It never raises for
feed problems: known failures keep their category, anything else is reported
as ``UnexpectedError`` with the original message.

Usage:
    result = await load_feed_events("webcal://example.com/team.ics", settings)
    if result.ok:
        todays = events_for_day(result.events, date.today(), "Europe/London")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx

from dashcal.calendar.event_normalizer import EventNormalizer
from dashcal.calendar.exceptions import UNEXPECTED_ERROR_CATEGORY, DashcalError
from dashcal.calendar.feed_source import resolve_feed_url
from dashcal.calendar.fetcher import FeedFetcher
from dashcal.calendar.models import CalendarEvent, FeedResult, FeedStatus
from dashcal.calendar.parser import ICSFeedParser
from dashcal.calendar.rrule_expander import RecurrenceExpander
from dashcal.core.timezone_utils import now_utc

logger = logging.getLogger(__name__)


@dataclass
class ProcessedFeed:
    """Expanded events of one document plus everything worth reporting about it."""

    events: list[CalendarEvent] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None


def is_configured(reference: Any) -> bool:
    """False when no feed reference was supplied at all."""
    if reference is None:
        return False
    return not (isinstance(reference, str) and not reference.strip())


def merge_overrides(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Drop duplicate uids, letting RECURRENCE-ID overrides replace generated instances.

    The first position of each uid is kept so the relative order of the
    input survives.
    """
    by_uid: dict[str, CalendarEvent] = {}
    for event in events:
        existing = by_uid.get(event.uid)
        if existing is None:
            by_uid[event.uid] = event
        elif event.recurrence_id is not None and existing.recurrence_id is None:
            logger.debug("Occurrence %s replaced by its override", event.uid)
            by_uid[event.uid] = event
        else:
            logger.debug("Dropping duplicate event %s", event.uid)
    return list(by_uid.values())


def drop_cancelled(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Remove cancelled records, including overrides that cancel one occurrence."""
    kept = []
    for event in events:
        if event.status == "CANCELLED":
            logger.debug("Cancelled occurrence %s removed", event.uid)
            continue
        kept.append(event)
    return kept


def chronological(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Events ordered by ascending start; equal starts keep their input order."""
    return sorted(events, key=lambda event: event.start)


def process_feed_content(
    content: str,
    settings: Any = None,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> ProcessedFeed:
    """Parse, normalize and expand an already downloaded document.

    Raises:
        FeedParseError: the document is not valid iCalendar
    """
    parsed = ICSFeedParser(settings).parse(content)
    events, normalize_diagnostics = EventNormalizer(settings).normalize_records(parsed.records)

    expander = RecurrenceExpander(settings)
    if range_start is None or range_end is None:
        default_start, default_end = expander.window_for(now or now_utc())
        range_start = range_start or default_start
        range_end = range_end or default_end

    expanded = expander.expand_events(events, range_start, range_end)

    return ProcessedFeed(
        events=chronological(drop_cancelled(merge_overrides(expanded.events))),
        diagnostics=[*parsed.diagnostics, *normalize_diagnostics, *expanded.diagnostics],
        window_start=range_start,
        window_end=range_end,
    )


async def load_feed_events(
    reference: Any,
    settings: Any = None,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> FeedResult:
    """Fetch one feed and return its expanded events as a three-way result.

    Args:
        reference: ``webcal://`` or ``http(s)://`` feed reference; None or
            blank means no feed is configured
        settings: EngineSettings or any object with the same attributes
        client: Optional caller-owned ``httpx.AsyncClient``
        now: Reference time for the default window
        range_start: Window start (inclusive); default ``now - 1 month``
        range_end: Window end (inclusive); default ``now + 3 months``

    Returns:
        ``not_configured``, ``error`` with category and message, or ``ok``
        with events in chronological order
    """
    if not is_configured(reference):
        logger.debug("No calendar feed configured")
        return FeedResult.not_configured()

    fetch_url: Optional[str] = None
    try:
        fetch_url = resolve_feed_url(reference)

        async with FeedFetcher(settings, client) as fetcher:
            content = await fetcher.fetch(fetch_url)

        processed = process_feed_content(content, settings, range_start, range_end, now)
    except DashcalError as e:
        logger.warning("Calendar feed %s failed (%s): %s", fetch_url or reference, e.category, e)
        return FeedResult.failure(e.category, str(e), source_url=fetch_url)
    except Exception as e:
        logger.exception("Unexpected error loading calendar feed %s", fetch_url or reference)
        return FeedResult.failure(
            UNEXPECTED_ERROR_CATEGORY, str(e) or e.__class__.__name__, source_url=fetch_url
        )

    logger.info(
        "Loaded %d events from %s (%d diagnostics)",
        len(processed.events),
        fetch_url,
        len(processed.diagnostics),
    )
    return FeedResult(
        status=FeedStatus.OK,
        events=processed.events,
        diagnostics=processed.diagnostics,
        source_url=fetch_url,
        window_start=processed.window_start,
        window_end=processed.window_end,
    )


class LatestResultHolder:
    """Holds the newest accepted FeedResult for the configured feed.

    Each refresh takes a generation number before it starts. A result is only
    accepted when its generation is newer than the one currently held, so a
    slow refresh that finishes late can never overwrite a newer one.
    """

    def __init__(self, initial: Optional[FeedResult] = None) -> None:
        self._lock = asyncio.Lock()
        self._issued = 0
        self._accepted = 0
        self._result = initial or FeedResult.not_configured()
        self.last_accepted_at: Optional[datetime] = None

    def next_generation(self) -> int:
        """Reserve the generation number for a refresh about to start."""
        self._issued += 1
        return self._issued

    @property
    def accepted_generation(self) -> int:
        return self._accepted

    @property
    def current(self) -> FeedResult:
        return self._result

    async def accept(self, generation: int, result: FeedResult) -> bool:
        """Store ``result`` unless a newer generation has already been accepted."""
        async with self._lock:
            if generation <= self._accepted:
                logger.debug(
                    "Discarding stale result (generation %d, held %d)", generation, self._accepted
                )
                return False
            self._accepted = generation
            self._result = result
            self.last_accepted_at = result.fetched_at
            return True

    async def snapshot(self) -> FeedResult:
        """Current result, read under the lock."""
        async with self._lock:
            return self._result


async def refresh_into(
    holder: LatestResultHolder,
    reference: Any,
    settings: Any = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FeedResult:
    """Run one pipeline pass and offer the result to ``holder``."""
    generation = holder.next_generation()
    result = await load_feed_events(reference, settings, client)
    accepted = await holder.accept(generation, result)
    logger.debug(
        "Refresh generation %d finished with status %s (accepted=%s)",
        generation,
        result.status.value,
        accepted,
    )
    return result


__all__ = [
    "LatestResultHolder",
    "ProcessedFeed",
    "chronological",
    "drop_cancelled",
    "is_configured",
    "load_feed_events",
    "merge_overrides",
    "process_feed_content",
    "refresh_into",
]
