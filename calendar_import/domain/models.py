"""Data models for the import preview and batch commit.

These models cross the boundary to the UI and to the calendar provider, so
they serialize with camelCase aliases (``model_dump(by_alias=True)``) and
accept either snake_case or camelCase on input.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

UNTITLED_EVENT = "Untitled Event"


class _CamelModel(BaseModel):
    """Base for models exchanged with the UI."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_ui_dict(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class EventSource(str, Enum):
    """Where an importable event came from."""

    PROVIDER = "provider"
    ICS = "ics"


class EventTime(_CamelModel):
    """Start or end of an event as exchanged with the UI and provider.

    Exactly one form is set: ``date`` ("YYYY-MM-DD") for all-day events, or
    ``date_time`` (ISO-8601 with offset) plus ``time_zone`` for timed ones.
    """

    date: Optional[str] = Field(default=None, description="All-day date, YYYY-MM-DD")
    date_time: Optional[str] = Field(default=None, description="ISO-8601 date-time with offset")
    time_zone: Optional[str] = Field(default=None, description="IANA timezone name")

    @model_validator(mode="after")
    def _exactly_one_form(self) -> EventTime:
        if (self.date is None) == (self.date_time is None):
            raise ValueError("EventTime needs exactly one of 'date' or 'dateTime'")
        return self

    @property
    def is_all_day(self) -> bool:
        return self.date is not None

    @property
    def instant(self) -> datetime:
        """Aware UTC datetime for ordering and windowing.

        All-day values map to midnight UTC; a date-time without offset is
        read as UTC.
        """
        if self.date is not None:
            return datetime.combine(date.fromisoformat(self.date), time.min, tzinfo=UTC)
        assert self.date_time is not None
        parsed = datetime.fromisoformat(self.date_time.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)


class ImportableEvent(_CamelModel):
    """One row of the import preview, optionally standing for a recurring series."""

    id: str = Field(..., description="Stable identifier within one preview")
    title: str = Field(..., description="Event title")
    description: Optional[str] = None
    start: EventTime
    end: EventTime
    location: Optional[str] = None
    source: EventSource
    source_calendar_id: Optional[str] = None
    source_calendar_name: Optional[str] = None

    # Classification (pre-seeded, user-mutable)
    selected: bool = False
    is_private: bool = False
    suggested_tags: list[str] = Field(default_factory=list)
    is_yoga_likely: bool = False

    # Recurring group fields
    is_recurring_group: bool = False
    recurring_instance_count: Optional[int] = None
    recurring_pattern: Optional[str] = None
    original_instances: Optional[list[ImportableEvent]] = None

    @field_validator("suggested_tags")
    @classmethod
    def _unique_tags(cls, tags: list[str]) -> list[str]:
        return list(dict.fromkeys(tags))

    @property
    def start_instant(self) -> datetime:
        return self.start.instant


class ImportPreviewResult(_CamelModel):
    """Everything the UI needs to show the review step."""

    events: list[ImportableEvent] = Field(default_factory=list)
    total_count: int = 0
    relevant_likely_count: int = 0
    private_likely_count: int = 0

    calendar_name: Optional[str] = None
    errors: list[str] = Field(default_factory=list, description="Structural parse errors")
    warnings: list[str] = Field(default_factory=list)
    dropped_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Events dropped per reason: invalid, cancelled, outsideWindow, duplicates",
    )

    @classmethod
    def from_events(
        cls,
        events: list[ImportableEvent],
        calendar_name: Optional[str] = None,
        errors: Optional[list[str]] = None,
        warnings: Optional[list[str]] = None,
        dropped_counts: Optional[dict[str, int]] = None,
    ) -> ImportPreviewResult:
        """Build a result, deriving the summary counts from ``events``."""
        return cls(
            events=events,
            total_count=len(events),
            relevant_likely_count=sum(1 for e in events if e.selected),
            private_likely_count=sum(1 for e in events if e.is_private),
            calendar_name=calendar_name,
            errors=list(errors or []),
            warnings=list(warnings or []),
            dropped_counts=dict(dropped_counts or {}),
        )


class ImportOutcome(_CamelModel):
    """Result of one batch commit."""

    success: bool
    imported_count: int = 0
    skipped_count: int = 0
    errors: list[str] = Field(default_factory=list)
    imported_ids: list[str] = Field(default_factory=list)

    submitted_count: int = 0
    success_rate: float = 0.0
    sync_requested: bool = False
    sync_error: Optional[str] = None


class ProviderEvent(_CamelModel):
    """An event as returned by a remote calendar provider."""

    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    start: EventTime
    end: EventTime
    location: Optional[str] = None
    calendar_id: Optional[str] = None
    calendar_name: Optional[str] = None


class EventCreationRequest(_CamelModel):
    """Payload for one event in a batch-create request."""

    title: str
    description: str = ""
    start: EventTime
    end: EventTime
    location: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict, description="Opaque string map")


class CreateResult(_CamelModel):
    """Per-item result of a batch-create request, aligned by position."""

    success: bool
    created_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PreviewWindow:
    """Inclusive time window for a preview; both bounds are aware datetimes."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("PreviewWindow bounds must be timezone-aware")
        if self.end < self.start:
            raise ValueError("PreviewWindow end is before start")

    @classmethod
    def around(cls, now: datetime, days_back: int = 30, days_ahead: int = 90) -> PreviewWindow:
        """Window from ``days_back`` before ``now`` to ``days_ahead`` after it."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return cls(start=now - timedelta(days=days_back), end=now + timedelta(days=days_ahead))

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end
