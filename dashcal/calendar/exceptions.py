"""Exception hierarchy for calendar feed ingestion.

Each exception carries a stable ``category`` string. The request boundary
reports that string to the dashboard so the UI can tell a bad URL apart from
an unreachable feed or a broken document.
"""

from typing import Optional


class DashcalError(Exception):
    """Base exception for all feed ingestion errors."""

    category = "DashcalError"


class InvalidFeedUrl(DashcalError):
    """The feed reference is missing or is not a well-formed http(s) URL.

    Raised before any network access. Not retried.
    Should result in HTTP 400 Bad Request response.
    """

    category = "InvalidFeedUrl"


class FeedFetchError(DashcalError):
    """Network, transport or HTTP-status failure while downloading a feed.

    The underlying cause is chained with ``raise ... from``; ``status_code``
    is set when the server answered with an error status.
    """

    category = "FeedFetchError"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedParseError(DashcalError):
    """The downloaded document is not valid iCalendar syntax."""

    category = "FeedParseError"


class RecurrenceRuleError(DashcalError):
    """A single recurrence rule string could not be parsed.

    Never escapes the expander: it is recorded as a diagnostic and expansion
    continues with the remaining rules.
    """

    category = "RecurrenceRuleError"

    def __init__(self, message: str, rule: Optional[str] = None):
        super().__init__(message)
        self.rule = rule


UNEXPECTED_ERROR_CATEGORY = "UnexpectedError"
