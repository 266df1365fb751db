"""RRULE parsing and recurrence expansion.

Supports FREQ (DAILY, WEEKLY, MONTHLY, YEARLY), INTERVAL, UNTIL and COUNT.
Other rule parts are ignored. Anchors are computed from the series start
with ``relativedelta`` (never cumulatively), so a monthly series on the 31st
clamps to the last day of shorter months and returns to the 31st after.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from ..core.exceptions import IcsDateTimeError, RRuleParseError
from .ics_datetime import decode_ics_datetime
from .ics_models import (
    Frequency,
    IcsDateTime,
    Occurrence,
    RawCalendarEvent,
    RecurrenceRule,
    RecurringInstance,
    Singleton,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 1000

_STEP_UNITS: dict[Frequency, str] = {
    Frequency.DAILY: "days",
    Frequency.WEEKLY: "weeks",
    Frequency.MONTHLY: "months",
    Frequency.YEARLY: "years",
}

# Longest possible period per unit, used to fast-forward old series
_MAX_PERIOD: dict[Frequency, timedelta] = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.MONTHLY: timedelta(days=31),
    Frequency.YEARLY: timedelta(days=366),
}


def _positive_int(key: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise RRuleParseError(f"{key} must be an integer, got {value!r}") from e
    if number <= 0:
        raise RRuleParseError(f"{key} must be positive, got {number}")
    return number


def parse_rrule(rrule_string: str) -> RecurrenceRule:
    """Parse an RRULE value into a ``RecurrenceRule``.

    Args:
        rrule_string: e.g. ``"FREQ=WEEKLY;INTERVAL=2;COUNT=5"`` (an optional
            ``RRULE:`` prefix is accepted)

    Returns:
        Parsed rule

    Raises:
        RRuleParseError: If FREQ is missing or unsupported, or INTERVAL,
            COUNT or UNTIL are invalid
    """
    if not rrule_string or not rrule_string.strip():
        raise RRuleParseError("Empty RRULE string")

    text = rrule_string.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:"):]

    parts: dict[str, str] = {}
    for part in text.split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        parts[key.strip().upper()] = value.strip()

    freq = parts.get("FREQ", "").upper()
    if not freq:
        raise RRuleParseError("RRULE missing required FREQ parameter")
    try:
        frequency = Frequency(freq)
    except ValueError as e:
        raise RRuleParseError(f"Unsupported RRULE frequency {freq!r}") from e

    interval = _positive_int("INTERVAL", parts["INTERVAL"]) if "INTERVAL" in parts else 1
    count = _positive_int("COUNT", parts["COUNT"]) if "COUNT" in parts else None

    until: Optional[IcsDateTime] = None
    if "UNTIL" in parts:
        try:
            until = decode_ics_datetime(parts["UNTIL"])
        except IcsDateTimeError as e:
            raise RRuleParseError(f"Invalid UNTIL value {parts['UNTIL']!r}") from e

    return RecurrenceRule(frequency=frequency, interval=interval, until=until, count=count)


@dataclass
class ExpansionResult:
    """Occurrences for one event plus any warnings raised while expanding it."""

    occurrences: list[Occurrence] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    truncated: bool = False


class RecurrenceExpander:
    """Expand ``RawCalendarEvent`` values into concrete occurrences."""

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES) -> None:
        """Initialize expander.

        Args:
            max_occurrences: Hard cap on anchors examined per rule
        """
        self.max_occurrences = max_occurrences

    def expand(
        self,
        event: RawCalendarEvent,
        horizon: datetime,
        window_start: Optional[datetime] = None,
    ) -> ExpansionResult:
        """Expand one event.

        Args:
            event: Parsed event
            horizon: Anchors starting after this instant are not produced
            window_start: Optional lower bound used to skip ahead in
                unbounded series; has no effect on rules with COUNT

        Returns:
            ExpansionResult. An event without RRULE, or with an RRULE that
            cannot be parsed, yields exactly one ``Singleton``.
        """
        result = ExpansionResult()
        if not event.is_recurring:
            result.occurrences.append(Singleton(event))
            return result

        try:
            rule = parse_rrule(event.rrule)
        except RRuleParseError as e:
            message = f"Event {event.uid}: {e}; imported as a single occurrence"
            logger.warning("%s", message)
            result.warnings.append(message)
            result.occurrences.append(Singleton(event))
            return result

        self._expand_rule(event, rule, horizon, window_start, result)
        logger.debug(
            "Expanded %s (%s x%d): %d occurrences",
            event.uid,
            rule.frequency.value,
            rule.interval,
            len(result.occurrences),
        )
        return result

    def _expand_rule(
        self,
        event: RawCalendarEvent,
        rule: RecurrenceRule,
        horizon: datetime,
        window_start: Optional[datetime],
        result: ExpansionResult,
    ) -> None:
        base = event.start.value
        duration = event.end.value - event.start.value
        group_id = f"recurring_{event.uid}"
        unit = _STEP_UNITS[rule.frequency]
        exdates = {self._exdate_key(x, event.start) for x in event.exdate}
        until_bound = self._until_bound(rule.until)

        index = self._first_index(event, rule, window_start)
        examined = 0

        while True:
            if rule.count is not None and index >= rule.count:
                break

            anchor_value = base + relativedelta(**{unit: index * rule.interval})
            anchor = self._like(event.start, anchor_value)
            instant = anchor.instant

            if until_bound is not None and instant > until_bound:
                break
            if instant > horizon:
                break
            if examined >= self.max_occurrences:
                result.truncated = True
                message = (
                    f"Event {event.uid}: recurrence stopped after {self.max_occurrences} occurrences"
                )
                logger.warning("%s", message)
                result.warnings.append(message)
                break

            examined += 1
            index += 1

            if self._exdate_key(anchor, event.start) in exdates:
                continue

            end = self._like(event.end, anchor_value + duration)
            result.occurrences.append(
                RecurringInstance(event=event, group_id=group_id, start=anchor, end=end, rule=rule)
            )

    def _first_index(
        self,
        event: RawCalendarEvent,
        rule: RecurrenceRule,
        window_start: Optional[datetime],
    ) -> int:
        """Skip anchors that certainly end before ``window_start``.

        COUNT rules always start at index 0 so excluded and past anchors still
        consume the count.
        """
        if window_start is None or rule.count is not None:
            return 0
        gap = window_start - event.start.instant
        if gap <= timedelta(0):
            return 0
        duration = event.end.instant - event.start.instant
        period = _MAX_PERIOD[rule.frequency] * rule.interval
        # One extra step back so a long event overlapping the window is kept
        skipped = int((gap - max(duration, timedelta(0))) / period) - 1
        return max(skipped, 0)

    @staticmethod
    def _like(template: IcsDateTime, value: Union[date, datetime]) -> IcsDateTime:
        """Build an IcsDateTime shaped like ``template``."""
        if template.is_all_day:
            return IcsDateTime.all_day(value)
        assert isinstance(value, datetime)
        return IcsDateTime.timed(value, template.tzid or "UTC", floating=template.floating)

    @staticmethod
    def _exdate_key(value: IcsDateTime, start: IcsDateTime) -> Union[date, datetime]:
        """All-day exclusions (or all-day series) match by date, others by instant."""
        if value.is_all_day or start.is_all_day:
            return value.local_date
        return value.instant

    @staticmethod
    def _until_bound(until: Optional[IcsDateTime]) -> Optional[datetime]:
        if until is None:
            return None
        if until.is_all_day:
            # An all-day UNTIL includes the whole day
            return until.instant + timedelta(days=1) - timedelta(microseconds=1)
        return until.instant
