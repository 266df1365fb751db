"""Build the import preview from ICS text, an ICS feed or a provider calendar.

Each ``build_*`` call is independent: it gets a fresh pipeline and context,
binds its own run id for log correlation, and shares no mutable state with
other calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from ..calendar.ics_parser import IcsPropertyParser
from ..calendar.rrule_expander import RecurrenceExpander
from ..core.config import ImportSettings
from ..core.correlation import import_run
from ..core.exceptions import CalendarImportError, IcsParseError, ProviderFetchError
from ..sources.ics_fetcher import IcsFeedFetcher
from ..sources.protocols import EventProviderProtocol
from .classifier import EventClassifier, KnownLocation, load_keyword_tables
from .models import ImportPreviewResult, PreviewWindow, ProviderEvent
from .pipeline import EventProcessingPipeline, ProcessingContext, ProcessingResult
from .pipeline_stages import (
    CancelledFilterStage,
    ClassifyAndGroupStage,
    DeduplicationStage,
    ExpansionStage,
    ParseStage,
    ProviderClassificationStage,
    SortStage,
    TimeWindowFilterStage,
)

logger = logging.getLogger(__name__)


class ImportPreviewBuilder:
    """Orchestrates parsing, expansion, filtering, classification and grouping."""

    def __init__(
        self,
        settings: Optional[ImportSettings] = None,
        classifier: Optional[EventClassifier] = None,
        parser: Optional[IcsPropertyParser] = None,
        expander: Optional[RecurrenceExpander] = None,
        fetcher: Optional[IcsFeedFetcher] = None,
        known_locations: Optional[Sequence[KnownLocation]] = None,
    ) -> None:
        """Initialize builder.

        Args:
            settings: Import settings (defaults when omitted)
            classifier: Classifier; built from ``settings.keyword_tables_path``
                or the bundled tables when omitted
            parser: ICS property parser
            expander: Recurrence expander; sized from settings when omitted
            fetcher: Feed fetcher used by ``build_from_ics_url``
            known_locations: Extra venues (e.g. the user's registered studios)
                added to the classifier's known-location registry
        """
        self.settings = settings or ImportSettings()
        tables = classifier.tables if classifier else load_keyword_tables(self.settings.keyword_tables_path)
        if known_locations:
            tables = tables.with_known_locations(known_locations)
            classifier = None
        self.classifier = classifier or EventClassifier(tables)
        self.parser = parser or IcsPropertyParser()
        self.expander = expander or RecurrenceExpander(self.settings.max_occurrences)
        self.fetcher = fetcher

    def default_window(self, now: datetime) -> PreviewWindow:
        """Preview window around ``now`` using the configured day counts."""
        return PreviewWindow.around(now, self.settings.days_back, self.settings.days_ahead)

    def _ics_pipeline(self) -> EventProcessingPipeline:
        return (
            EventProcessingPipeline()
            .add_stage(ParseStage(self.parser))
            .add_stage(ExpansionStage(self.expander))
            .add_stage(CancelledFilterStage())
            .add_stage(TimeWindowFilterStage())
            .add_stage(DeduplicationStage())
            .add_stage(ClassifyAndGroupStage(self.classifier))
            .add_stage(SortStage())
        )

    def _provider_pipeline(self) -> EventProcessingPipeline:
        return (
            EventProcessingPipeline()
            .add_stage(ProviderClassificationStage(self.classifier))
            .add_stage(SortStage())
        )

    def _new_context(self, window: PreviewWindow) -> ProcessingContext:
        return ProcessingContext(
            max_occurrences=self.settings.max_occurrences,
            default_calendar_name=self.settings.default_calendar_name,
            window=window,
        )

    @staticmethod
    def _to_result(context: ProcessingContext, result: ProcessingResult) -> ImportPreviewResult:
        return ImportPreviewResult.from_events(
            context.events,
            calendar_name=context.calendar_name,
            errors=context.parse_errors,
            warnings=result.warnings,
            dropped_counts=context.dropped_counts,
        )

    async def build_from_ics(
        self,
        ics_text: str,
        window: PreviewWindow,
        source_calendar_id: Optional[str] = None,
    ) -> ImportPreviewResult:
        """Build a preview from ICS text.

        Args:
            ics_text: Raw ICS content
            window: Occurrences starting outside this window are dropped
            source_calendar_id: Optional id recorded on every row

        Returns:
            Preview result sorted by start

        Raises:
            IcsParseError: If a pipeline stage fails unexpectedly
        """
        with import_run() as run_id:
            logger.info("Building ICS preview (run %s, %d chars)", run_id, len(ics_text or ""))
            context = self._new_context(window)
            context.raw_content = ics_text or ""
            context.source_calendar_id = source_calendar_id

            result = await self._ics_pipeline().process(context)
            if not result.success:
                raise IcsParseError("; ".join(result.errors) or "ICS preview failed")

            preview = self._to_result(context, result)
            logger.info(
                "ICS preview ready: %d rows, %d selected, %d private, dropped=%s",
                preview.total_count,
                preview.relevant_likely_count,
                preview.private_likely_count,
                preview.dropped_counts,
            )
            return preview

    async def build_from_ics_url(
        self,
        url: str,
        window: PreviewWindow,
        fetcher: Optional[IcsFeedFetcher] = None,
        bearer_token: Optional[str] = None,
    ) -> ImportPreviewResult:
        """Fetch a subscribed ICS feed and build its preview.

        Raises:
            IcsFetchError: If the feed cannot be downloaded or is not a calendar
        """
        with import_run():
            feed_fetcher = fetcher or self.fetcher or IcsFeedFetcher(self.settings)
            ics_text = await feed_fetcher.fetch(url, bearer_token=bearer_token)
            return await self.build_from_ics(ics_text, window, source_calendar_id=url)

    async def build_from_provider(
        self,
        provider: EventProviderProtocol,
        calendar_id: str,
        window: PreviewWindow,
    ) -> ImportPreviewResult:
        """Build a preview from a remote provider's event list.

        Provider events are already discrete occurrences, so only
        classification and sorting run.

        Raises:
            ProviderFetchError: If the provider fails or exceeds the fetch timeout
        """
        with import_run() as run_id:
            logger.info("Fetching provider calendar %s (run %s)", calendar_id, run_id)
            events = await self._fetch_provider_events(provider, calendar_id, window)

            context = self._new_context(window)
            context.provider_events = events
            context.source_calendar_id = calendar_id
            context.calendar_name = next((e.calendar_name for e in events if e.calendar_name), None)

            result = await self._provider_pipeline().process(context)
            if not result.success:
                raise CalendarImportError("; ".join(result.errors) or "Provider preview failed")

            preview = self._to_result(context, result)
            logger.info(
                "Provider preview ready: %d rows, %d selected, %d private",
                preview.total_count,
                preview.relevant_likely_count,
                preview.private_likely_count,
            )
            return preview

    async def _fetch_provider_events(
        self,
        provider: EventProviderProtocol,
        calendar_id: str,
        window: PreviewWindow,
    ) -> list[ProviderEvent]:
        timeout = self.settings.fetch_timeout_seconds
        try:
            return list(
                await asyncio.wait_for(
                    provider.fetch_events(calendar_id, window.start, window.end), timeout=timeout
                )
            )
        except asyncio.TimeoutError as e:
            logger.warning("Provider fetch for %s timed out after %ss", calendar_id, timeout)
            raise ProviderFetchError(f"Fetching calendar {calendar_id} timed out after {timeout}s") from e
        except ProviderFetchError:
            raise
        except Exception as e:
            logger.exception("Provider fetch for %s failed", calendar_id)
            raise ProviderFetchError(f"Fetching calendar {calendar_id} failed: {e}") from e
