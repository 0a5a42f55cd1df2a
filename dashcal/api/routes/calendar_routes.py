"""Calendar API routes for the dashboard."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Optional

from aiohttp import web

from dashcal.calendar.day_query import events_for_day
from dashcal.calendar.datetime_utils import serialize_datetime_utc
from dashcal.calendar.exceptions import (
    UNEXPECTED_ERROR_CATEGORY,
    FeedFetchError,
    FeedParseError,
    InvalidFeedUrl,
)
from dashcal.calendar.models import FeedResult, FeedStatus
from dashcal.core.config_manager import get_config_value
from dashcal.core.timezone_utils import DEFAULT_TIMEZONE, is_valid_timezone
from dashcal.domain.pipeline import LatestResultHolder, load_feed_events

logger = logging.getLogger(__name__)

INVALID_REQUEST_CATEGORY = "InvalidRequest"

# HTTP status per error category; unknown categories map to 500
ERROR_STATUS_CODES: dict[str, int] = {
    InvalidFeedUrl.category: 400,
    FeedFetchError.category: 502,
    FeedParseError.category: 502,
    UNEXPECTED_ERROR_CATEGORY: 500,
    INVALID_REQUEST_CATEGORY: 400,
}


def status_for_result(result: FeedResult) -> int:
    """HTTP status code for a pipeline result."""
    if result.status != FeedStatus.ERROR or result.error is None:
        return 200
    return ERROR_STATUS_CODES.get(result.error.error, 500)


def _error_response(category: str, message: str) -> web.Response:
    return web.json_response(
        {"status": FeedStatus.ERROR.value, "error": category, "message": message},
        status=ERROR_STATUS_CODES.get(category, 500),
    )


def _parse_day(raw: Optional[str]) -> date:
    """Parse a ``YYYY-MM-DD`` query value.

    Raises:
        ValueError: the value is not an ISO calendar date
    """
    if raw is None or not raw.strip():
        raise ValueError("date is required (YYYY-MM-DD)")
    return date.fromisoformat(raw.strip())


def _parse_tz(raw: Optional[str], default_timezone: str) -> str:
    """Display timezone from a query value; the configured default when omitted.

    Raises:
        ValueError: the value names no known timezone
    """
    if raw is None or not raw.strip():
        return default_timezone
    if not is_valid_timezone(raw):
        raise ValueError("unknown timezone")
    return raw.strip()


def register_calendar_routes(
    app: web.Application,
    settings: Any,
    holder: LatestResultHolder,
    http_client_ref: list[Any],
    time_provider: Any,
    started_at: Optional[float] = None,
) -> None:
    """Register calendar and health routes.

    Args:
        app: aiohttp web application
        settings: EngineSettings (or compatible object)
        holder: Result held for the configured feed
        http_client_ref: Single-element list holding the shared httpx client
        time_provider: Callable returning the current aware UTC datetime
        started_at: ``time.monotonic()`` at startup, for uptime reporting
    """
    default_timezone = get_config_value(settings, "default_timezone", DEFAULT_TIMEZONE)
    boot_time = time.monotonic() if started_at is None else started_at

    async def calendar_events(request: web.Request) -> web.Response:
        """Run the pipeline for ``?url=`` and return its events, optionally for one day."""
        url = request.query.get("url")
        if url is None or not url.strip():
            return _error_response(InvalidFeedUrl.category, "Calendar URL is required")

        raw_day = request.query.get("date")
        day: Optional[date] = None
        if raw_day is not None:
            try:
                day = _parse_day(raw_day)
            except ValueError as e:
                return _error_response(INVALID_REQUEST_CATEGORY, f"Invalid date {raw_day!r}: {e}")

        raw_tz = request.query.get("tz")
        try:
            tz = _parse_tz(raw_tz, default_timezone)
        except ValueError as e:
            return _error_response(INVALID_REQUEST_CATEGORY, f"Invalid tz {raw_tz!r}: {e}")

        result = await load_feed_events(url, settings, http_client_ref[0])
        if result.status == FeedStatus.ERROR:
            return web.json_response(result.to_api_dict(), status=status_for_result(result))

        selected = None
        if day is not None:
            selected = events_for_day(result.events, day, tz, default_timezone)

        logger.debug(
            "/api/calendar/events returning %d events for %s",
            len(result.events if selected is None else selected),
            result.source_url,
        )
        return web.json_response(result.to_api_dict(selected), status=200)

    async def calendar_day(request: web.Request) -> web.Response:
        """Day query against the result held for the configured feed."""
        raw_day = request.query.get("date")
        try:
            day = _parse_day(raw_day) if raw_day else time_provider().date()
        except ValueError as e:
            return _error_response(INVALID_REQUEST_CATEGORY, f"Invalid date {raw_day!r}: {e}")

        raw_tz = request.query.get("tz")
        try:
            tz = _parse_tz(raw_tz, default_timezone)
        except ValueError as e:
            return _error_response(INVALID_REQUEST_CATEGORY, f"Invalid tz {raw_tz!r}: {e}")

        result = await holder.snapshot()

        if result.status != FeedStatus.OK:
            # Not-configured and error states are reported as data; the request itself succeeded
            return web.json_response({**result.to_api_dict(), "date": day.isoformat()}, status=200)

        selected = events_for_day(result.events, day, tz, default_timezone)
        payload = result.to_api_dict(selected)
        payload["date"] = day.isoformat()
        return web.json_response(payload, status=200)

    async def health_check(_request: web.Request) -> web.Response:
        """Health check endpoint for monitoring system status."""
        result = holder.current
        last_refresh = holder.last_accepted_at
        health_data = {
            "status": "ok",
            "server_time_iso": serialize_datetime_utc(time_provider()),
            "uptime_s": int(time.monotonic() - boot_time),
            "feed": {
                "status": result.status.value,
                "event_count": len(result.events),
                "last_refresh_iso": serialize_datetime_utc(last_refresh) if last_refresh else None,
                "generation": holder.accepted_generation,
            },
        }
        return web.json_response(health_data, status=200)

    app.router.add_get("/api/calendar/events", calendar_events)
    app.router.add_get("/api/calendar/day", calendar_day)
    app.router.add_get("/api/health", health_check)
    logger.debug("Calendar routes registered")
