"""Shared fixtures for calendar_import tests."""

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any, Optional

import pytest

from calendar_import.calendar.ics_models import IcsDateTime, RawCalendarEvent
from calendar_import.core.config import ImportSettings
from calendar_import.domain.models import EventSource, EventTime, ImportableEvent, PreviewWindow


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast isolated unit tests")


# Monday
FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def fixed_now() -> datetime:
    """Deterministic "now" (a Monday at noon UTC)."""
    return FIXED_NOW


@pytest.fixture
def window(fixed_now: datetime) -> PreviewWindow:
    """Default preview window: 30 days back, 90 days ahead."""
    return PreviewWindow.around(fixed_now, 30, 90)


@pytest.fixture
def settings() -> ImportSettings:
    return ImportSettings()


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Build ICS text from VEVENT bodies (lists of property lines)."""

    def _make(*events: list[str], calendar_name: Optional[str] = None) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//EN"]
        if calendar_name:
            lines.append(f"X-WR-CALNAME:{calendar_name}")
        for body in events:
            lines.append("BEGIN:VEVENT")
            lines.extend(body)
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _make


@pytest.fixture
def make_raw_event() -> Callable[..., RawCalendarEvent]:
    """Build a RawCalendarEvent with timed UTC start/end."""

    def _make(
        uid: str = "evt-1",
        summary: str = "Vinyasa Flow",
        start: Optional[datetime] = None,
        hours: int = 1,
        rrule: Optional[str] = None,
        exdate: tuple[IcsDateTime, ...] = (),
        **kwargs: Any,
    ) -> RawCalendarEvent:
        begin = start or datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
        return RawCalendarEvent(
            uid=uid,
            summary=summary,
            start=IcsDateTime.timed(begin),
            end=IcsDateTime.timed(begin + timedelta(hours=hours)),
            rrule=rrule,
            exdate=exdate,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_importable() -> Callable[..., ImportableEvent]:
    """Build a timed ImportableEvent."""

    def _make(
        event_id: str = "evt-1",
        title: str = "Vinyasa Flow",
        selected: bool = True,
        day: int = 10,
        **kwargs: Any,
    ) -> ImportableEvent:
        return ImportableEvent(
            id=event_id,
            title=title,
            start=EventTime(date_time=f"2025-03-{day:02d}T09:00:00+00:00", time_zone="UTC"),
            end=EventTime(date_time=f"2025-03-{day:02d}T10:00:00+00:00", time_zone="UTC"),
            source=kwargs.pop("source", EventSource.ICS),
            selected=selected,
            **kwargs,
        )

    return _make


@pytest.fixture
def all_day() -> Callable[[int, int, int], IcsDateTime]:
    def _make(year: int, month: int, day: int) -> IcsDateTime:
        return IcsDateTime.all_day(date(year, month, day))

    return _make
