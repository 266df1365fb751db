"""Value types produced by the ICS parsing layer.

These are transient: the parser builds ``RawCalendarEvent`` values, the
expander turns them into ``Occurrence`` values, and the domain layer turns
those into ``ImportableEvent`` models. Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Optional, Union


@dataclass(frozen=True)
class IcsDateTime:
    """A decoded DATE or DATE-TIME value.

    All-day values hold a ``date`` and no ``tzid``. Timed values hold a
    timezone-aware ``datetime`` plus the IANA name of its zone ("UTC" when
    the value carried ``Z``). ``floating`` marks a timed value that had
    neither ``Z`` nor ``TZID`` and was read as UTC; it does not take part in
    equality.
    """

    value: Union[date, datetime]
    tzid: Optional[str] = None
    floating: bool = field(default=False, compare=False)

    @classmethod
    def all_day(cls, value: date) -> IcsDateTime:
        """Build an all-day value."""
        if isinstance(value, datetime):
            value = value.date()
        return cls(value=value)

    @classmethod
    def timed(cls, value: datetime, tzid: str = "UTC", floating: bool = False) -> IcsDateTime:
        """Build a timed value. Naive datetimes are taken as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return cls(value=value, tzid=tzid or "UTC", floating=floating)

    @property
    def is_all_day(self) -> bool:
        return not isinstance(self.value, datetime)

    @property
    def is_utc(self) -> bool:
        return not self.is_all_day and self.tzid == "UTC"

    @property
    def instant(self) -> datetime:
        """Aware UTC datetime; all-day values map to midnight UTC of their date."""
        if isinstance(self.value, datetime):
            return self.value.astimezone(UTC)
        return datetime.combine(self.value, time.min, tzinfo=UTC)

    @property
    def local_date(self) -> date:
        """Calendar date in the value's own zone."""
        if isinstance(self.value, datetime):
            return self.value.date()
        return self.value

    def __str__(self) -> str:
        if self.is_all_day:
            return self.value.isoformat()
        return f"{self.value.isoformat()} [{self.tzid}]"


@dataclass(frozen=True)
class RawCalendarEvent:
    """One VEVENT as read from the ICS text, before expansion."""

    uid: str
    summary: str
    start: IcsDateTime
    end: IcsDateTime
    description: Optional[str] = None
    location: Optional[str] = None
    rrule: Optional[str] = None
    exdate: tuple[IcsDateTime, ...] = ()
    status: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return (self.status or "").strip().upper() == "CANCELLED"

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule)


class RawEventBuilder:
    """Accumulates properties of one VEVENT while the parser walks its lines.

    ``build()`` returns None when any of UID, SUMMARY, DTSTART or DTEND is
    missing, or when DTSTART and DTEND mix all-day and timed values, so an
    unusable event can never escape the parser.
    """

    def __init__(self) -> None:
        self.uid: Optional[str] = None
        self.summary: Optional[str] = None
        self.description: Optional[str] = None
        self.start: Optional[IcsDateTime] = None
        self.end: Optional[IcsDateTime] = None
        self.location: Optional[str] = None
        self.rrule: Optional[str] = None
        self.status: Optional[str] = None
        self._exdates: list[IcsDateTime] = []

    def add_exdate(self, value: IcsDateTime) -> None:
        if value not in self._exdates:
            self._exdates.append(value)

    def missing_fields(self) -> list[str]:
        """Names of required properties not yet seen."""
        required = {
            "UID": self.uid,
            "SUMMARY": self.summary,
            "DTSTART": self.start,
            "DTEND": self.end,
        }
        return [name for name, value in required.items() if not value]

    def invalid_reason(self) -> Optional[str]:
        """Why the accumulated event cannot be built, or None when it can."""
        missing = self.missing_fields()
        if missing:
            return "missing " + ", ".join(missing)
        assert self.start is not None and self.end is not None
        if self.start.is_all_day != self.end.is_all_day:
            return "DTSTART and DTEND mix all-day and timed values"
        return None

    def build(self) -> Optional[RawCalendarEvent]:
        if self.invalid_reason() is not None:
            return None
        assert self.uid is not None and self.summary is not None
        assert self.start is not None and self.end is not None
        return RawCalendarEvent(
            uid=self.uid,
            summary=self.summary,
            start=self.start,
            end=self.end,
            description=self.description,
            location=self.location,
            rrule=self.rrule,
            exdate=tuple(self._exdates),
            status=self.status,
        )


class Frequency(str, Enum):
    """Supported RRULE frequencies."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class RecurrenceRule:
    """The supported RRULE subset.

    ``until`` is inclusive. With neither ``count`` nor ``until`` the
    expansion is still bounded by the horizon and the safety cap.
    """

    frequency: Frequency
    interval: int = 1
    until: Optional[IcsDateTime] = None
    count: Optional[int] = None


@dataclass(frozen=True)
class Singleton:
    """A non-recurring event occurring exactly once."""

    event: RawCalendarEvent

    @property
    def uid(self) -> str:
        return self.event.uid

    @property
    def start(self) -> IcsDateTime:
        return self.event.start

    @property
    def end(self) -> IcsDateTime:
        return self.event.end

    @property
    def is_recurring_instance(self) -> bool:
        return False


@dataclass(frozen=True)
class RecurringInstance:
    """One concrete occurrence of a recurring series."""

    event: RawCalendarEvent
    group_id: str
    start: IcsDateTime
    end: IcsDateTime
    rule: RecurrenceRule

    @property
    def uid(self) -> str:
        return self.event.uid

    @property
    def is_recurring_instance(self) -> bool:
        return True


Occurrence = Union[Singleton, RecurringInstance]


@dataclass
class IcsParseResult:
    """Output of the property parser.

    ``errors`` holds human-readable structural problems; the parser never
    raises for malformed text.
    """

    events: list[RawCalendarEvent] = field(default_factory=list)
    calendar_name: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    invalid_event_count: int = 0

    @property
    def event_count(self) -> int:
        return len(self.events)
