"""Timezone resolution and clock utilities for dashcal."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache
from typing import ClassVar

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Default fallback timezone for all timezone operations
DEFAULT_TIMEZONE = "UTC"

TEST_TIME_ENV = "DASHCAL_TEST_TIME"


class TimezoneResolver:
    """Resolves user-facing timezone names to IANA identifiers."""

    # Obsolete or shorthand names that show up in feeds and query strings
    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "GMT": "UTC",
        "Z": "UTC",
        "Etc/UTC": "UTC",
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "MST": "America/Denver",
        "MDT": "America/Denver",
        "CST": "America/Chicago",
        "CDT": "America/Chicago",
        "EST": "America/New_York",
        "EDT": "America/New_York",
    }

    # Windows timezone names emitted by Outlook/Exchange feeds
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "GMT Standard Time": "Europe/London",
        "W. Europe Standard Time": "Europe/Berlin",
        "Romance Standard Time": "Europe/Paris",
        "Central Europe Standard Time": "Europe/Budapest",
        "Tokyo Standard Time": "Asia/Tokyo",
        "AUS Eastern Standard Time": "Australia/Sydney",
    }

    def normalize(self, tz_str: str | None) -> str | None:
        """Return the canonical IANA name for ``tz_str`` or None if unknown."""
        if not tz_str:
            return None

        candidate = tz_str.strip()
        candidate = self.WINDOWS_TZ_MAP.get(candidate, candidate)
        candidate = self.TZ_ALIAS_MAP.get(candidate, candidate)

        try:
            zoneinfo.ZoneInfo(candidate)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r", tz_str)
            return None
        return candidate


class TimeProvider:
    """Provides current time with test time override support."""

    def __init__(self, env_var: str = TEST_TIME_ENV):
        self.env_var = env_var

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden via the DASHCAL_TEST_TIME environment variable
        (ISO 8601, e.g. "2024-06-01T12:00:00Z"). Naive values are taken as UTC.
        """
        test_time = os.environ.get(self.env_var)
        if test_time:
            try:
                dt = date_parser.isoparse(test_time)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", self.env_var, test_time, e)
            else:
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.UTC)
                return dt.replace(tzinfo=datetime.UTC)

        return datetime.datetime.now(datetime.UTC)

    def __call__(self) -> datetime.datetime:
        return self.now_utc()


_resolver = TimezoneResolver()
_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()


def normalize_timezone_name(tz_str: str | None) -> str | None:
    """Normalize a Windows name, alias or IANA identifier to an IANA identifier.

    Examples:
        >>> normalize_timezone_name("Pacific Standard Time")
        'America/Los_Angeles'
        >>> normalize_timezone_name("US/Eastern")
        'America/New_York'
        >>> normalize_timezone_name("Invalid/Timezone") is None
        True
    """
    return _resolver.normalize(tz_str)


@lru_cache(maxsize=32)
def get_zoneinfo(tz_str: str | None, fallback: str = DEFAULT_TIMEZONE) -> datetime.tzinfo:
    """Return a tzinfo for ``tz_str``, falling back to ``fallback`` when unknown."""
    name = normalize_timezone_name(tz_str) if tz_str else None
    if name is None:
        if tz_str:
            logger.warning("Invalid timezone %r, falling back to %s", tz_str, fallback)
        name = normalize_timezone_name(fallback) or DEFAULT_TIMEZONE
    if name == "UTC":
        return datetime.UTC
    return zoneinfo.ZoneInfo(name)


def is_valid_timezone(tz_str: str | None) -> bool:
    return normalize_timezone_name(tz_str) is not None
