"""Data models for calendar feed processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dashcal.calendar.datetime_utils import serialize_datetime_utc
from dashcal.core.timezone_utils import now_utc as _now_utc

DEFAULT_SUMMARY = "Untitled Event"

DateOrDateTime = Union[date, datetime]


@dataclass
class RawEventRecord:
    """One VEVENT as read from the feed, before normalization.

    ``start``/``end`` keep the type the source used: a ``date`` for
    date-only values, an aware ``datetime`` otherwise (floating times are
    already localized to the configured default timezone by the parser).
    """

    start: DateOrDateTime
    end: Optional[DateOrDateTime] = None
    duration: Optional[timedelta] = None
    uid: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    rrules: list[str] = field(default_factory=list)
    exdates: list[DateOrDateTime] = field(default_factory=list)
    recurrence_id: Optional[DateOrDateTime] = None
    status: Optional[str] = None


class CalendarEvent(BaseModel):
    """Canonical calendar event.

    Instants are timezone-aware. Timed events keep the zone the feed used,
    all-day events are expressed as UTC day boundaries with an exclusive end.
    """

    uid: str = Field(..., description="Stable identifier, unique within one result set")
    summary: str = Field(default=DEFAULT_SUMMARY, description="Display title")
    description: Optional[str] = Field(default=None)
    location: Optional[str] = Field(default=None)

    start: datetime = Field(..., description="Start instant")
    end: datetime = Field(..., description="End instant, never before start")
    is_all_day: bool = Field(default=False, description="Computed all-day classification")

    is_recurring: bool = Field(default=False, description="Source carried recurrence rules")
    recurrence_rules: list[str] = Field(
        default_factory=list, description="Rule strings, defining records only"
    )
    exdates: list[datetime] = Field(
        default_factory=list, description="Excluded occurrence instants, defining records only"
    )
    recurrence_id: Optional[datetime] = Field(
        default=None, description="Occurrence replaced by this record (RECURRENCE-ID)"
    )
    status: Optional[str] = Field(default=None, description="Upper-cased STATUS value")

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end", "recurrence_id")
    @classmethod
    def _require_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("instants must be timezone-aware")
        return value

    @model_validator(mode="after")
    def _check_span(self) -> CalendarEvent:
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the dashboard's event shape.

        Optional keys are omitted when empty; ``recurrence`` only appears on
        defining records that still carry their rules.
        """
        payload: dict[str, Any] = {
            "uid": self.uid,
            "summary": self.summary,
            "start": serialize_datetime_utc(self.start),
            "end": serialize_datetime_utc(self.end),
            "isAllDay": self.is_all_day,
            "isRecurring": self.is_recurring,
        }
        if self.description:
            payload["description"] = self.description
        if self.location:
            payload["location"] = self.location
        if self.recurrence_rules:
            payload["recurrence"] = list(self.recurrence_rules)
        return payload


class FeedStatus(str, Enum):
    """Three-way outcome the dashboard renders differently."""

    NOT_CONFIGURED = "not_configured"
    ERROR = "error"
    OK = "ok"


class FeedError(BaseModel):
    """Structured failure payload."""

    error: str = Field(..., description="Machine-checkable category")
    message: str = Field(..., description="Human-readable explanation")


class FeedResult(BaseModel):
    """Result of one fetch/normalize/expand cycle."""

    status: FeedStatus
    events: list[CalendarEvent] = Field(default_factory=list)
    error: Optional[FeedError] = None
    diagnostics: list[str] = Field(default_factory=list)
    source_url: Optional[str] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    fetched_at: datetime = Field(default_factory=_now_utc)

    @property
    def ok(self) -> bool:
        return self.status == FeedStatus.OK

    @classmethod
    def not_configured(cls) -> FeedResult:
        return cls(status=FeedStatus.NOT_CONFIGURED)

    @classmethod
    def failure(
        cls, category: str, message: str, source_url: Optional[str] = None
    ) -> FeedResult:
        return cls(
            status=FeedStatus.ERROR,
            error=FeedError(error=category, message=message),
            source_url=source_url,
        )

    def to_api_dict(self, events: Optional[list[CalendarEvent]] = None) -> dict[str, Any]:
        """Serialize for HTTP responses; ``events`` overrides the held list (day queries)."""
        if self.status == FeedStatus.ERROR and self.error is not None:
            return {"status": self.status.value, **self.error.model_dump()}

        selected = self.events if events is None else events
        payload: dict[str, Any] = {
            "status": self.status.value,
            "events": [event.to_api_dict() for event in selected],
        }
        if self.diagnostics:
            payload["diagnostics"] = list(self.diagnostics)
        return payload
