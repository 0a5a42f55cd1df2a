"""RRULE expansion for normalized calendar events."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from dateutil.rrule import rruleset, rrulestr

from dashcal.calendar.event_normalizer import occurrence_uid
from dashcal.calendar.exceptions import RecurrenceRuleError
from dashcal.calendar.models import CalendarEvent
from dashcal.core.timezone_utils import now_utc

logger = logging.getLogger(__name__)

# UNTIL=YYYYMMDD[THHMMSS][Z]
_UNTIL_RE = re.compile(r"UNTIL=(\d{8})(?:T(\d{6}))?(Z?)", re.IGNORECASE)


@dataclass
class RRuleExpanderConfig:
    """Configuration for RRULE expansion with explicit defaults."""

    max_occurrences_per_rule: int = 1000
    window_months_before: int = 1
    window_months_after: int = 3

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion configuration from a settings object (or use defaults)."""
        if settings is None:
            return cls()
        return cls(
            max_occurrences_per_rule=getattr(settings, "max_occurrences_per_rule", 1000),
            window_months_before=getattr(settings, "window_months_before", 1),
            window_months_after=getattr(settings, "window_months_after", 3),
        )


@dataclass
class ExpansionResult:
    """Events produced by expansion plus any rule diagnostics."""

    events: list[CalendarEvent] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


def default_window(
    now: datetime, months_before: int = 1, months_after: int = 3
) -> tuple[datetime, datetime]:
    """Expansion window ``[now - months_before, now + months_after]``."""
    now = now if now.tzinfo is not None else now.replace(tzinfo=UTC)
    return now - relativedelta(months=months_before), now + relativedelta(months=months_after)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _override_in_window(event: CalendarEvent, range_start: datetime, range_end: datetime) -> bool:
    return any(
        range_start <= instant <= range_end for instant in (event.recurrence_id, event.start)
    )


def coerce_until(rule: str, dtstart: datetime) -> str:
    """Rewrite a floating or date-only UNTIL as UTC so it pairs with an aware DTSTART.

    dateutil refuses a naive UNTIL alongside a timezone-aware DTSTART. A
    date-only UNTIL covers the whole of that day in the DTSTART zone; a
    floating date-time is read in the DTSTART zone.
    """
    tz = dtstart.tzinfo or UTC

    def _replace(match: re.Match[str]) -> str:
        day_part, time_part, zulu = match.group(1), match.group(2), match.group(3)
        if zulu:
            return match.group(0)
        until_day = datetime.strptime(day_part, "%Y%m%d").date()
        if time_part:
            until_time = datetime.strptime(time_part, "%H%M%S").time()
        else:
            until_time = time(23, 59, 59)
        local_until = datetime.combine(until_day, until_time, tzinfo=tz)
        return "UNTIL=" + local_until.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")

    return _UNTIL_RE.sub(_replace, rule)


class RecurrenceExpander:
    """Expands defining events into concrete occurrences within a window."""

    def __init__(self, settings: Any = None) -> None:
        config = RRuleExpanderConfig.from_settings(settings)
        self.max_occurrences = config.max_occurrences_per_rule
        self.window_months_before = config.window_months_before
        self.window_months_after = config.window_months_after

        logger.debug(
            "RecurrenceExpander initialized: max_occurrences=%d, window=-%dmo/+%dmo",
            self.max_occurrences,
            self.window_months_before,
            self.window_months_after,
        )

    def window_for(self, now: datetime) -> tuple[datetime, datetime]:
        """Configured default window around ``now``."""
        return default_window(now, self.window_months_before, self.window_months_after)

    def parse_rule(self, rule: str, dtstart: datetime) -> Any:
        """Parse one rule string anchored at ``dtstart``.

        Raises:
            RecurrenceRuleError: the rule cannot be parsed
        """
        if not rule or not rule.strip():
            raise RecurrenceRuleError("Empty recurrence rule", rule=rule)
        try:
            return rrulestr(coerce_until(rule.strip(), dtstart), dtstart=dtstart)
        except (ValueError, TypeError, OverflowError) as e:
            raise RecurrenceRuleError(f"Invalid recurrence rule {rule!r}: {e}", rule=rule) from e

    def build_ruleset(self, event: CalendarEvent) -> tuple[Optional[rruleset], list[str]]:
        """Merge all of the event's rules into one rule set.

        Returns:
            ``(rule_set, diagnostics)``; ``rule_set`` is None when no rule parsed
        """
        rule_set = rruleset()
        diagnostics: list[str] = []
        valid_rules = 0

        for rule in event.recurrence_rules:
            try:
                parsed = self.parse_rule(rule, event.start)
            except RecurrenceRuleError as e:
                logger.warning("Skipping recurrence rule for %s: %s", event.uid, e)
                diagnostics.append(f"{e.category} for {event.uid}: {e}")
                continue
            rule_set.rrule(parsed)
            valid_rules += 1

        if valid_rules == 0:
            return None, diagnostics

        for excluded in event.exdates:
            rule_set.exdate(excluded)

        return rule_set, diagnostics

    def expand_event(
        self, event: CalendarEvent, range_start: datetime, range_end: datetime
    ) -> ExpansionResult:
        """Expand one event over ``[range_start, range_end]`` (both inclusive).

        Events without rules pass through unchanged, except RECURRENCE-ID
        overrides: those are occurrences and are dropped when neither the
        replaced instant nor their own start falls inside the window. When
        every rule fails to parse the defining event is returned unexpanded.
        """
        if not event.recurrence_rules:
            if event.recurrence_id is not None and not _override_in_window(
                event, _aware(range_start), _aware(range_end)
            ):
                logger.debug("Override %s lies outside the expansion window", event.uid)
                return ExpansionResult()
            return ExpansionResult(events=[event])

        rule_set, diagnostics = self.build_ruleset(event)
        if rule_set is None:
            logger.warning(
                "No valid recurrence rules for %s; returning the unexpanded event", event.uid
            )
            return ExpansionResult(events=[event], diagnostics=diagnostics)

        range_start, range_end = _aware(range_start), _aware(range_end)
        duration = event.end - event.start
        instances: list[CalendarEvent] = []

        for occurrence in rule_set.xafter(range_start, count=self.max_occurrences + 1, inc=True):
            if occurrence > range_end:
                break
            if len(instances) >= self.max_occurrences:
                logger.warning(
                    "Expansion of %s truncated at %d occurrences", event.uid, self.max_occurrences
                )
                diagnostics.append(
                    f"Expansion of {event.uid} truncated at {self.max_occurrences} occurrences"
                )
                break
            instances.append(
                event.model_copy(
                    update={
                        "uid": occurrence_uid(event.uid, occurrence),
                        "start": occurrence,
                        "end": occurrence + duration,
                        "is_recurring": True,
                        "recurrence_rules": [],
                        "exdates": [],
                    }
                )
            )

        logger.debug(
            "Expanded %s into %d occurrences between %s and %s",
            event.uid,
            len(instances),
            range_start.isoformat(),
            range_end.isoformat(),
        )
        return ExpansionResult(events=instances, diagnostics=diagnostics)

    def expand_events(
        self,
        events: Iterable[CalendarEvent],
        range_start: datetime,
        range_end: datetime,
    ) -> ExpansionResult:
        """Expand every event, concatenating instances and diagnostics in input order."""
        result = ExpansionResult()
        for event in events:
            expanded = self.expand_event(event, range_start, range_end)
            result.events.extend(expanded.events)
            result.diagnostics.extend(expanded.diagnostics)
        return result


def expand_recurring_event(
    event: CalendarEvent,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> list[CalendarEvent]:
    """Expand a single event using the default window when no range is given."""
    expander = RecurrenceExpander()
    if range_start is None or range_end is None:
        default_start, default_end = expander.window_for(now or now_utc())
        range_start = range_start or default_start
        range_end = range_end or default_end
    return expander.expand_event(event, range_start, range_end).events


__all__ = [
    "ExpansionResult",
    "RRuleExpanderConfig",
    "RecurrenceExpander",
    "coerce_until",
    "default_window",
    "expand_recurring_event",
]
