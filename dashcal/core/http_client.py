"""HTTP client construction for feed fetches.

The engine holds no process-wide client: callers either pass their own
``httpx.AsyncClient`` (the server keeps one per application) or let the
fetcher create a short-lived one per call.
"""

import logging
from typing import Optional

import httpx

from dashcal import __version__
from dashcal.api.middleware.correlation_id import NO_REQUEST_ID, get_request_id

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = httpx.Limits(max_connections=10, max_keepalive_connections=5)

# Some hosted calendars (Office365 in particular) reject requests that do not look like a browser
DEFAULT_FEED_HEADERS: dict[str, str] = {
    "User-Agent": f"Mozilla/5.0 (compatible; dashcal/{__version__})",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


def build_timeout(request_timeout: float) -> httpx.Timeout:
    """Timeout with a bounded connect phase and a configurable read phase."""
    return httpx.Timeout(connect=10.0, read=float(request_timeout), write=10.0, pool=30.0)


def get_request_headers() -> dict[str, str]:
    """Default headers plus the current correlation ID, when there is one."""
    headers = DEFAULT_FEED_HEADERS.copy()
    request_id = get_request_id()
    if request_id and request_id != NO_REQUEST_ID:
        headers["X-Request-ID"] = request_id
    return headers


def create_client(
    request_timeout: float = 30,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient configured for calendar feed downloads.

    Args:
        request_timeout: Read timeout in seconds
        transport: Optional transport override (tests pass ``httpx.MockTransport``)
    """
    if transport is None:
        transport = httpx.AsyncHTTPTransport(limits=DEFAULT_LIMITS, retries=0)

    logger.debug("Creating feed HTTP client (read timeout %ss)", request_timeout)
    return httpx.AsyncClient(
        transport=transport,
        timeout=build_timeout(request_timeout),
        follow_redirects=True,
        headers=DEFAULT_FEED_HEADERS,
    )
