"""Feed reference normalization and validation.

Runs before any network access: rewrites the ``webcal://`` scheme alias to
``https://`` and rejects anything that is not a well-formed http(s) URL.
"""

import logging
import re
from typing import Any
from urllib.parse import urlsplit

from dashcal.calendar.exceptions import InvalidFeedUrl

logger = logging.getLogger(__name__)

_WEBCAL_PREFIX = re.compile(r"^webcal://", re.IGNORECASE)

ALLOWED_SCHEMES = ("http", "https")


def resolve_feed_url(reference: Any) -> str:
    """Return the fetchable URL for a user-supplied calendar reference.

    Args:
        reference: ``webcal://...`` or ``http(s)://...`` string

    Returns:
        The URL to fetch, with ``webcal://`` rewritten to ``https://``

    Raises:
        InvalidFeedUrl: reference is empty, not a string, or not a valid
            http(s) URL with a host

    Examples:
        >>> resolve_feed_url("webcal://example.com/cal.ics")
        'https://example.com/cal.ics'
        >>> resolve_feed_url("WEBCAL://example.com/cal.ics")
        'https://example.com/cal.ics'
    """
    if not isinstance(reference, str):
        raise InvalidFeedUrl("Calendar URL is required")

    candidate = reference.strip()
    if not candidate:
        raise InvalidFeedUrl("Calendar URL is required")

    fetch_url = _WEBCAL_PREFIX.sub("https://", candidate, count=1)

    if any(ch.isspace() for ch in fetch_url):
        raise InvalidFeedUrl(f"Invalid calendar URL: {reference!r}")

    try:
        parts = urlsplit(fetch_url)
        # Accessing .port validates the port component
        _ = parts.port
    except ValueError as e:
        raise InvalidFeedUrl(f"Invalid calendar URL: {reference!r}") from e

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidFeedUrl(
            f"Invalid calendar URL: {reference!r} (expected webcal://, http:// or https://)"
        )

    if not parts.hostname:
        raise InvalidFeedUrl(f"Invalid calendar URL: {reference!r} (missing host)")

    if fetch_url != candidate:
        logger.debug("Rewrote feed URL %s -> %s", candidate, fetch_url)
    return fetch_url
