"""Concrete pipeline stages for building an import preview.

ICS path:
    Parse -> Expansion -> CancelledFilter -> TimeWindowFilter ->
    Deduplication -> ClassifyAndGroup -> Sort

Provider path:
    ProviderClassification -> Sort
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..calendar.ics_datetime import to_event_time
from ..calendar.ics_models import Occurrence, RecurringInstance, Singleton
from ..calendar.ics_parser import IcsPropertyParser
from ..calendar.rrule_expander import RecurrenceExpander
from .classifier import EventClassifier
from .grouper import group_occurrences
from .models import UNTITLED_EVENT, EventSource, ImportableEvent, ProviderEvent
from .pipeline import ProcessingContext, ProcessingResult

logger = logging.getLogger(__name__)


def _stamp(instant: datetime) -> str:
    return instant.strftime("%Y%m%dT%H%M%S")


class ParseStage:
    """Parse raw ICS content into RawCalendarEvents."""

    def __init__(self, parser: Optional[IcsPropertyParser] = None) -> None:
        self._name = "Parse"
        self.parser = parser or IcsPropertyParser()

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        """Parse ``context.raw_content`` into ``context.raw_events``.

        Structural problems are collected in ``context.parse_errors``; they do
        not fail the stage.
        """
        result = ProcessingResult(stage_name=self.name)

        if context.raw_content is None:
            result.add_error("No ICS content to parse")
            return result

        parsed = self.parser.parse(context.raw_content)
        context.raw_events = parsed.events
        context.parse_errors.extend(parsed.errors)
        context.record_drop("invalid", parsed.invalid_event_count)
        if parsed.calendar_name:
            context.calendar_name = parsed.calendar_name
        elif not context.calendar_name:
            context.calendar_name = context.default_calendar_name

        result.events_in = len(parsed.events) + parsed.invalid_event_count
        result.events_out = len(parsed.events)
        result.events_filtered = parsed.invalid_event_count
        result.metadata["calendar_name"] = context.calendar_name
        return result


class ExpansionStage:
    """Expand recurring events into concrete occurrences."""

    def __init__(self, expander: Optional[RecurrenceExpander] = None) -> None:
        self._name = "Expansion"
        self.expander = expander

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        """Expand ``context.raw_events`` into ``context.occurrences``.

        Each event is expanded independently up to the window end. An event
        whose expansion fails is kept as a single occurrence with a warning.
        """
        result = ProcessingResult(stage_name=self.name, events_in=len(context.raw_events))

        if context.window is None:
            result.add_error("Expansion needs a preview window")
            return result

        expander = self.expander or RecurrenceExpander(context.max_occurrences)
        occurrences: list[Occurrence] = []
        for event in context.raw_events:
            try:
                expansion = expander.expand(event, context.window.end, window_start=context.window.start)
            except Exception as e:
                logger.exception("Expanding event %s failed", event.uid)
                result.add_warning(
                    f"Event {event.uid}: recurrence could not be expanded ({e}); imported as a single occurrence"
                )
                occurrences.append(Singleton(event))
                continue
            occurrences.extend(expansion.occurrences)
            # Warnings are already logged by the expander
            result.warnings.extend(expansion.warnings)

        context.occurrences = occurrences
        result.events_out = len(occurrences)
        return result


class CancelledFilterStage:
    """Drop occurrences of events with STATUS:CANCELLED."""

    def __init__(self) -> None:
        self._name = "CancelledFilter"

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.occurrences))

        kept = [o for o in context.occurrences if not o.event.is_cancelled]
        dropped = len(context.occurrences) - len(kept)
        context.occurrences = kept
        context.record_drop("cancelled", dropped)

        result.events_out = len(kept)
        result.events_filtered = dropped
        if dropped:
            logger.debug("Dropped %d cancelled occurrences", dropped)
        return result


class TimeWindowFilterStage:
    """Keep only occurrences whose start lies inside the preview window."""

    def __init__(self) -> None:
        self._name = "TimeWindowFilter"

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.occurrences))

        if context.window is None:
            result.add_error("Time window filter needs a preview window")
            return result

        window = context.window
        kept = [o for o in context.occurrences if window.contains(o.start.instant)]
        dropped = len(context.occurrences) - len(kept)
        context.occurrences = kept
        context.record_drop("outsideWindow", dropped)

        result.events_out = len(kept)
        result.events_filtered = dropped
        return result


class DeduplicationStage:
    """Remove occurrences with the same UID and start instant.

    The first occurrence wins, so input order decides which copy is kept.
    """

    def __init__(self) -> None:
        self._name = "Deduplication"

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.occurrences))

        seen: set[tuple[str, datetime]] = set()
        unique: list[Occurrence] = []
        for occurrence in context.occurrences:
            key = (occurrence.uid, occurrence.start.instant)
            if key in seen:
                continue
            seen.add(key)
            unique.append(occurrence)

        dropped = len(context.occurrences) - len(unique)
        context.occurrences = unique
        context.record_drop("duplicates", dropped)

        result.events_out = len(unique)
        result.events_filtered = dropped
        if dropped:
            logger.debug("Deduplication: %d -> %d occurrences", result.events_in, len(unique))
        return result


class ClassifyAndGroupStage:
    """Build classified preview rows and collapse recurring series."""

    def __init__(self, classifier: EventClassifier) -> None:
        self._name = "ClassifyAndGroup"
        self.classifier = classifier

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.occurrences))

        used_ids: set[str] = set()

        def build_event(occurrence: Occurrence) -> ImportableEvent:
            return self._build_event(occurrence, context, used_ids)

        context.events = group_occurrences(context.occurrences, build_event)
        result.events_out = len(context.events)
        return result

    def _build_event(
        self,
        occurrence: Occurrence,
        context: ProcessingContext,
        used_ids: set[str],
    ) -> ImportableEvent:
        raw = occurrence.event
        event_id = self._occurrence_id(occurrence, used_ids)
        classification = self.classifier.classify(raw.summary, raw.description, raw.location)

        return ImportableEvent(
            id=event_id,
            title=raw.summary or UNTITLED_EVENT,
            description=raw.description,
            start=to_event_time(occurrence.start),
            end=to_event_time(occurrence.end),
            location=raw.location,
            source=EventSource.ICS,
            source_calendar_id=context.source_calendar_id,
            source_calendar_name=context.calendar_name,
            selected=classification.selected,
            is_private=classification.is_private,
            suggested_tags=classification.suggested_tags,
            is_yoga_likely=classification.is_relevant,
        )

    @staticmethod
    def _occurrence_id(occurrence: Occurrence, used_ids: set[str]) -> str:
        """Deterministic id: the UID for singletons, UID plus start for instances."""
        if isinstance(occurrence, RecurringInstance) or occurrence.uid in used_ids:
            event_id = f"{occurrence.uid}_{_stamp(occurrence.start.instant)}"
        else:
            event_id = occurrence.uid
        used_ids.add(event_id)
        return event_id


class ProviderClassificationStage:
    """Classify provider events; they are already discrete, so nothing is grouped."""

    def __init__(self, classifier: EventClassifier) -> None:
        self._name = "ProviderClassification"
        self.classifier = classifier

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.provider_events))
        context.events = [self._build_event(e, context) for e in context.provider_events]
        result.events_out = len(context.events)
        return result

    def _build_event(self, event: ProviderEvent, context: ProcessingContext) -> ImportableEvent:
        title = event.title if event.title and event.title.strip() else UNTITLED_EVENT
        classification = self.classifier.classify(title, event.description, event.location)
        return ImportableEvent(
            id=event.id,
            title=title,
            description=event.description,
            start=event.start,
            end=event.end,
            location=event.location,
            source=EventSource.PROVIDER,
            source_calendar_id=event.calendar_id or context.source_calendar_id,
            source_calendar_name=event.calendar_name or context.calendar_name,
            selected=classification.selected,
            is_private=classification.is_private,
            suggested_tags=classification.suggested_tags,
            is_yoga_likely=classification.is_relevant,
        )


class SortStage:
    """Order preview rows by start instant; the sort is stable."""

    def __init__(self) -> None:
        self._name = "Sort"

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.events))
        context.events = sorted(context.events, key=lambda e: e.start_instant)
        result.events_out = len(context.events)
        return result
