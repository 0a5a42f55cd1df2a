"""HTTP download of iCalendar feeds."""

import logging
from typing import Any, Optional

import httpx

from dashcal.calendar.exceptions import FeedFetchError
from dashcal.core.http_client import create_client, get_request_headers

logger = logging.getLogger(__name__)

CALENDAR_CONTENT_TYPES = ("text/calendar", "text/plain", "application/octet-stream")


class FeedFetcher:
    """Async downloader for calendar feeds.

    Makes exactly one request per :meth:`fetch` call. Retry policy, if any,
    belongs to the caller.
    """

    def __init__(
        self,
        settings: Any = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize feed fetcher.

        Args:
            settings: Settings object; ``request_timeout`` is read from it
            client: Optional caller-owned client (never closed by the fetcher)
        """
        self.settings = settings
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "FeedFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = getattr(self.settings, "request_timeout", 30)
            self.client = create_client(request_timeout)
            self._owns_client = True
        return self.client

    async def close(self) -> None:
        """Close the client if this fetcher created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed feed HTTP client")
        if self._owns_client:
            self.client = None

    async def fetch(self, url: str) -> str:
        """Download the feed document at ``url``.

        Args:
            url: Validated http(s) URL (see ``resolve_feed_url``)

        Returns:
            The response body as text

        Raises:
            FeedFetchError: transport failure, timeout or non-2xx status; the
                httpx exception is chained as the cause
        """
        client = self._ensure_client()
        logger.debug("Fetching calendar feed from %s", url)

        try:
            response = await client.get(url, headers=get_request_headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("HTTP %d fetching calendar feed from %s", status, url)
            raise FeedFetchError(
                f"HTTP {status}: {e.response.reason_phrase}", status_code=status
            ) from e
        except httpx.TimeoutException as e:
            logger.warning("Timeout fetching calendar feed from %s", url)
            raise FeedFetchError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("Network error fetching calendar feed from %s: %s", url, e)
            raise FeedFetchError(f"Network error: {e}") from e

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in CALENDAR_CONTENT_TYPES):
            logger.warning("Unexpected content type %r from %s", content_type, url)

        text = response.text
        logger.debug("Fetched calendar feed from %s (%d bytes)", url, len(response.content))
        return text
