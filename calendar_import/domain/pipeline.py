"""Event processing pipeline for import previews.

The preview is built by running a context through a sequence of small
stages, each with one responsibility:

    pipeline = EventProcessingPipeline()
    pipeline.add_stage(ParseStage(parser))
    pipeline.add_stage(ExpansionStage(expander))
    pipeline.add_stage(CancelledFilterStage())

    context = ProcessingContext(raw_content=ics_text, window=window)
    result = await pipeline.process(context)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..calendar.ics_models import Occurrence, RawCalendarEvent
from .models import ImportableEvent, PreviewWindow, ProviderEvent

logger = logging.getLogger(__name__)

DROP_REASONS = ("invalid", "cancelled", "outsideWindow", "duplicates")


def _empty_drop_counts() -> dict[str, int]:
    return dict.fromkeys(DROP_REASONS, 0)


@dataclass
class ProcessingContext:
    """Context passed between pipeline stages.

    Stages read their input from and write their output to this context.
    """

    # Configuration
    max_occurrences: int = 1000
    default_calendar_name: str = "Imported Calendar"

    # Time context
    window: Optional[PreviewWindow] = None

    # Source
    raw_content: Optional[str] = None  # Raw ICS content
    provider_events: list[ProviderEvent] = field(default_factory=list)
    source_calendar_id: Optional[str] = None
    calendar_name: Optional[str] = None

    # Processing state (modified by stages)
    raw_events: list[RawCalendarEvent] = field(default_factory=list)  # Parsed VEVENTs
    occurrences: list[Occurrence] = field(default_factory=list)  # After expansion
    events: list[ImportableEvent] = field(default_factory=list)  # Preview rows

    # Accounting
    parse_errors: list[str] = field(default_factory=list)
    dropped_counts: dict[str, int] = field(default_factory=_empty_drop_counts)

    def record_drop(self, reason: str, count: int = 1) -> None:
        self.dropped_counts[reason] = self.dropped_counts.get(reason, 0) + count


@dataclass
class ProcessingResult:
    """Result from a pipeline stage or a complete pipeline run."""

    success: bool = True
    events: list[ImportableEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # Statistics
    events_in: int = 0  # Items received by stage
    events_out: int = 0  # Items emitted by stage
    events_filtered: int = 0  # Items removed by stage
    stage_name: str = ""

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
        logger.warning("[%s] %s", self.stage_name, message)

    def add_error(self, message: str) -> None:
        """Add an error message and mark as failed."""
        self.errors.append(message)
        self.success = False
        logger.error("[%s] %s", self.stage_name, message)


class EventProcessor(Protocol):
    """One stage of the pipeline.

    A stage receives the shared context, does its one job, may modify the
    context for downstream stages, and reports counts and problems in a
    ProcessingResult.
    """

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        """Run this stage.

        Args:
            context: Processing context

        Returns:
            Result with statistics and any errors/warnings
        """
        ...

    @property
    def name(self) -> str:
        """Name of this processing stage for logging."""
        ...


class EventProcessingPipeline:
    """Runs stages in sequence over one ProcessingContext.

    The pipeline stops at the first stage that reports failure or raises;
    a raised exception is converted into an error on the aggregated result.
    """

    def __init__(self) -> None:
        """Initialize empty pipeline."""
        self.stages: list[EventProcessor] = []

    def add_stage(self, stage: EventProcessor) -> EventProcessingPipeline:
        """Add a processing stage to the pipeline (builder pattern).

        Args:
            stage: Event processor to add

        Returns:
            Self for method chaining
        """
        self.stages.append(stage)
        logger.debug("Added stage to pipeline: %s", stage.name)
        return self

    async def process(self, context: ProcessingContext) -> ProcessingResult:
        """Execute all pipeline stages in sequence.

        Args:
            context: Processing context with initial state

        Returns:
            Aggregated result from all stages
        """
        logger.debug("Starting pipeline with %d stages", len(self.stages))

        aggregated_result = ProcessingResult(stage_name="Pipeline")

        for i, stage in enumerate(self.stages):
            stage_num = i + 1
            try:
                stage_result = await stage.process(context)
            except Exception as e:
                aggregated_result.add_error(f"Stage {stage.name} raised exception: {e}")
                logger.exception("Stage %s failed with exception", stage.name)
                return aggregated_result

            logger.debug(
                "Stage %s/%s (%s) completed: success=%s, in=%s, out=%s, filtered=%s, warnings=%s, errors=%s",
                stage_num,
                len(self.stages),
                stage.name,
                stage_result.success,
                stage_result.events_in,
                stage_result.events_out,
                stage_result.events_filtered,
                len(stage_result.warnings),
                len(stage_result.errors),
            )

            aggregated_result.warnings.extend(stage_result.warnings)
            aggregated_result.errors.extend(stage_result.errors)
            aggregated_result.metadata[stage.name] = {
                "in": stage_result.events_in,
                "out": stage_result.events_out,
                "filtered": stage_result.events_filtered,
            }
            aggregated_result.metadata.update(stage_result.metadata)

            if not stage_result.success:
                aggregated_result.success = False
                logger.error("Pipeline stopped at stage %s (%s) due to failure", stage_num, stage.name)
                return aggregated_result

        aggregated_result.success = True
        aggregated_result.events = context.events
        aggregated_result.events_out = len(context.events)

        logger.info(
            "Pipeline completed: %s rows, %s warnings, dropped=%s",
            aggregated_result.events_out,
            len(aggregated_result.warnings),
            context.dropped_counts,
        )
        return aggregated_result

    def __repr__(self) -> str:
        """String representation of pipeline."""
        stage_names = [stage.name for stage in self.stages]
        return f"EventProcessingPipeline(stages={stage_names})"
