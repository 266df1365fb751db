"""Tests for ImportPreviewBuilder."""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Optional

import pytest

from calendar_import.core.config import ImportSettings
from calendar_import.core.exceptions import IcsFetchError, ProviderFetchError
from calendar_import.domain.classifier import EventClassifier, KnownLocation
from calendar_import.domain.models import EventTime, PreviewWindow, ProviderEvent
from calendar_import.domain.preview_builder import ImportPreviewBuilder

pytestmark = pytest.mark.unit


def _event(uid: str, summary: str, start: str, end: str, *extra: str) -> list[str]:
    return [f"UID:{uid}", f"SUMMARY:{summary}", f"DTSTART:{start}", f"DTEND:{end}", *extra]


class StubProvider:
    """Provider returning fixed events, or raising/hanging on demand."""

    def __init__(
        self,
        events: Optional[list[ProviderEvent]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.events = events or []
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, datetime, datetime]] = []

    async def fetch_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> list[ProviderEvent]:
        self.calls.append((calendar_id, time_min, time_max))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.events


class StubFetcher:
    """Feed fetcher returning fixed text."""

    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.requests: list[tuple[str, Optional[str]]] = []

    async def fetch(self, url: str, bearer_token: Optional[str] = None) -> str:
        self.requests.append((url, bearer_token))
        if self.error:
            raise self.error
        return self.text


@pytest.fixture
def builder() -> ImportPreviewBuilder:
    return ImportPreviewBuilder()


def _provider_event(event_id: str, title: Optional[str], hour: int) -> ProviderEvent:
    return ProviderEvent(
        id=event_id,
        title=title,
        start=EventTime(date_time=f"2025-03-11T{hour:02d}:00:00+00:00", time_zone="UTC"),
        end=EventTime(date_time=f"2025-03-11T{hour + 1:02d}:00:00+00:00", time_zone="UTC"),
        calendar_name="Personal",
    )


class TestBuildFromIcs:
    """Test the ICS text path end to end."""

    async def test_mixed_calendar(
        self, builder: ImportPreviewBuilder, make_ics: Callable[..., str], window: PreviewWindow
    ) -> None:
        ics = make_ics(
            _event(
                "weekly",
                "Vinyasa Flow",
                "20250303T090000Z",
                "20250303T100000Z",
                "RRULE:FREQ=WEEKLY;COUNT=4",
                "EXDATE:20250317T090000Z",
            ),
            _event("dentist", "Dentist appointment", "20250312T150000Z", "20250312T160000Z"),
            _event("cancel", "Hatha", "20250313T090000Z", "20250313T100000Z", "STATUS:CANCELLED"),
            _event("old", "Yin", "20240101T090000Z", "20240101T100000Z"),
            _event("dup", "Pilates", "20250314T090000Z", "20250314T100000Z"),
            _event("dup", "Pilates", "20250314T090000Z", "20250314T100000Z"),
            ["SUMMARY:No uid", "DTSTART:20250315T090000Z", "DTEND:20250315T100000Z"],
            calendar_name="Roots Yoga",
        )

        preview = await builder.build_from_ics(ics, window)

        assert preview.calendar_name == "Roots Yoga"
        assert preview.dropped_counts == {"invalid": 1, "cancelled": 1, "outsideWindow": 1, "duplicates": 1}
        assert [e.title for e in preview.events] == ["Vinyasa Flow", "Dentist appointment", "Pilates"]

        group = preview.events[0]
        assert group.is_recurring_group is True
        assert group.recurring_instance_count == 3
        assert group.recurring_pattern == "Weekly"
        assert group.source_calendar_name == "Roots Yoga"

        dentist = preview.events[1]
        assert dentist.is_private is True
        assert dentist.selected is False
        assert preview.total_count == 3
        assert preview.relevant_likely_count == 2
        assert preview.private_likely_count == 1
        assert len(preview.errors) == 1

    async def test_mixed_all_day_and_timed_recurring_event_is_dropped(
        self, builder: ImportPreviewBuilder, make_ics: Callable[..., str], window: PreviewWindow
    ) -> None:
        ics = make_ics(
            _event("good", "Yin", "20250311T090000Z", "20250311T100000Z"),
            [
                "UID:mixed",
                "SUMMARY:Hatha",
                "DTSTART;VALUE=DATE:20250312",
                "DTEND:20250312T100000Z",
                "RRULE:FREQ=DAILY;COUNT=2",
            ],
        )

        preview = await builder.build_from_ics(ics, window)

        assert [e.title for e in preview.events] == ["Yin"]
        assert preview.dropped_counts["invalid"] == 1
        assert any("UID mixed" in e and "mix all-day and timed" in e for e in preview.errors)

    async def test_known_locations_select_venue_events(
        self, make_ics: Callable[..., str], window: PreviewWindow
    ) -> None:
        ics = make_ics(
            _event("pier", "Evening session", "20250311T180000Z", "20250311T190000Z", "LOCATION:Pier 12 entrance")
        )
        harbor = KnownLocation(name="Harbor Loft", address="12 Pier Rd", location_patterns=("pier 12",))

        plain = await ImportPreviewBuilder().build_from_ics(ics, window)
        registered = await ImportPreviewBuilder(known_locations=[harbor]).build_from_ics(ics, window)

        assert plain.events[0].selected is False
        assert registered.events[0].selected is True

    def test_known_locations_extend_a_given_classifier(self) -> None:
        classifier = EventClassifier()
        harbor = KnownLocation(name="Harbor Loft", location_patterns=("pier 12",))
        builder = ImportPreviewBuilder(classifier=classifier, known_locations=[harbor])

        assert builder.classifier is not classifier
        assert builder.classifier.tables.known_locations[-1] == harbor
        assert harbor not in classifier.tables.known_locations

    async def test_empty_text_gives_empty_preview(self, builder: ImportPreviewBuilder, window: PreviewWindow) -> None:
        preview = await builder.build_from_ics("", window)

        assert preview.events == []
        assert preview.total_count == 0
        assert preview.calendar_name == "Imported Calendar"

    async def test_source_calendar_id_on_rows(
        self, builder: ImportPreviewBuilder, make_ics: Callable[..., str], window: PreviewWindow
    ) -> None:
        ics = make_ics(_event("1", "Yin", "20250311T090000Z", "20250311T100000Z"))
        preview = await builder.build_from_ics(ics, window, source_calendar_id="upload-7")
        assert preview.events[0].source_calendar_id == "upload-7"

    async def test_truncation_warning_surfaces(self, make_ics: Callable[..., str], window: PreviewWindow) -> None:
        builder = ImportPreviewBuilder(ImportSettings(max_occurrences=3))
        ics = make_ics(_event("d", "Yin", "20250301T090000Z", "20250301T100000Z", "RRULE:FREQ=DAILY"))

        preview = await builder.build_from_ics(ics, window)

        assert preview.events[0].recurring_instance_count == 3
        assert any("stopped after 3" in w for w in preview.warnings)

    def test_default_window(self, builder: ImportPreviewBuilder, fixed_now: datetime) -> None:
        window = builder.default_window(fixed_now)
        assert (fixed_now - window.start).days == 30
        assert (window.end - fixed_now).days == 90


class TestBuildFromIcsUrl:
    """Test the feed URL path."""

    async def test_fetches_and_builds(
        self, builder: ImportPreviewBuilder, make_ics: Callable[..., str], window: PreviewWindow
    ) -> None:
        fetcher = StubFetcher(make_ics(_event("1", "Yin", "20250311T090000Z", "20250311T100000Z")))

        preview = await builder.build_from_ics_url(
            "webcal://example.com/feed.ics", window, fetcher=fetcher, bearer_token="tok"
        )

        assert fetcher.requests == [("webcal://example.com/feed.ics", "tok")]
        assert preview.events[0].source_calendar_id == "webcal://example.com/feed.ics"

    async def test_fetch_error_propagates(self, builder: ImportPreviewBuilder, window: PreviewWindow) -> None:
        fetcher = StubFetcher(error=IcsFetchError("HTTP 404"))
        with pytest.raises(IcsFetchError):
            await builder.build_from_ics_url("https://example.com/x.ics", window, fetcher=fetcher)


class TestBuildFromProvider:
    """Test the provider path."""

    async def test_classifies_and_sorts(self, builder: ImportPreviewBuilder, window: PreviewWindow) -> None:
        provider = StubProvider(
            [
                _provider_event("late", "Power yoga", 18),
                _provider_event("early", None, 7),
                _provider_event("doc", "Doctor", 12),
            ]
        )

        preview = await builder.build_from_provider(provider, "primary", window)

        assert provider.calls == [("primary", window.start, window.end)]
        assert [e.id for e in preview.events] == ["early", "doc", "late"]
        assert preview.events[0].title == "Untitled Event"
        assert preview.events[1].is_private is True
        assert preview.events[2].selected is True
        assert preview.calendar_name == "Personal"
        assert not any(e.is_recurring_group for e in preview.events)

    async def test_provider_failure_raises(self, builder: ImportPreviewBuilder, window: PreviewWindow) -> None:
        with pytest.raises(ProviderFetchError, match="failed"):
            await builder.build_from_provider(StubProvider(error=RuntimeError("503")), "primary", window)

    async def test_provider_timeout_raises(self, window: PreviewWindow) -> None:
        builder = ImportPreviewBuilder(ImportSettings(fetch_timeout_seconds=0.01))
        with pytest.raises(ProviderFetchError, match="timed out"):
            await builder.build_from_provider(StubProvider(delay=1.0), "primary", window)
