"""Calendar feed engine: resolve, parse, normalize, expand and query events."""

from .day_query import events_for_day
from .event_normalizer import EventNormalizer
from .exceptions import (
    DashcalError,
    FeedFetchError,
    FeedParseError,
    InvalidFeedUrl,
    RecurrenceRuleError,
)
from .feed_source import resolve_feed_url
from .fetcher import FeedFetcher
from .models import CalendarEvent, FeedResult, FeedStatus, RawEventRecord
from .parser import ICSFeedParser
from .rrule_expander import RecurrenceExpander

__all__ = [
    "CalendarEvent",
    "DashcalError",
    "EventNormalizer",
    "FeedFetchError",
    "FeedFetcher",
    "FeedParseError",
    "FeedResult",
    "FeedStatus",
    "ICSFeedParser",
    "InvalidFeedUrl",
    "RawEventRecord",
    "RecurrenceExpander",
    "RecurrenceRuleError",
    "events_for_day",
    "resolve_feed_url",
]
