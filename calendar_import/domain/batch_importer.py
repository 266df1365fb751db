"""Commit the user's selection as one batch with partial-failure accounting."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Optional

from ..core.config import ImportSettings
from ..core.correlation import import_run
from ..core.exceptions import BatchSubmitError
from ..sources.protocols import BatchCreateCapability, SyncTrigger
from .grouper import ungroup_events
from .models import (
    CreateResult,
    EventCreationRequest,
    EventSource,
    ImportableEvent,
    ImportOutcome,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def import_key(event: ImportableEvent) -> str:
    """Idempotency key: stable hash of source, origin id and start."""
    raw = f"{event.source.value}|{event.id}|{event.start_instant.isoformat()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def enhance_description(event: ImportableEvent) -> str:
    """Append the import note and suggested tags to the event description."""
    description = event.description or ""
    if event.source == EventSource.PROVIDER and event.source_calendar_name:
        description += f'\n\nImported from "{event.source_calendar_name}" calendar'
    if event.suggested_tags:
        description += f"\nSuggested tags: {', '.join(event.suggested_tags)}"
    return description.strip()


class BatchImporter:
    """Creates the selected events through a batch-create collaborator.

    Recurring groups are the unit of choice: a selected group commits all of
    its instances.
    """

    def __init__(
        self,
        creator: BatchCreateCapability,
        settings: Optional[ImportSettings] = None,
        sync_trigger: Optional[SyncTrigger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize importer.

        Args:
            creator: Batch-create collaborator
            settings: Import settings (defaults when omitted)
            sync_trigger: Optional collaborator signalled after a successful import
            clock: Returns the current UTC time; used for the import date
        """
        self.creator = creator
        self.settings = settings or ImportSettings()
        self.sync_trigger = sync_trigger
        self.clock = clock or _utc_now

    def select_items(self, events: Sequence[ImportableEvent]) -> list[ImportableEvent]:
        """Selected rows, with selected groups expanded into their instances."""
        return ungroup_events(e for e in events if e.selected)

    def build_request(self, event: ImportableEvent, imported_by: str, import_date: str) -> EventCreationRequest:
        prefix = self.settings.metadata_prefix
        metadata = {
            f"{prefix}imported": "true",
            f"{prefix}import_source": event.source.value,
            f"{prefix}import_source_calendar": event.source_calendar_id or "",
            f"{prefix}import_date": import_date,
            f"{prefix}imported_by": imported_by,
            f"{prefix}tags": json.dumps(event.suggested_tags),
            f"{prefix}origin_event_id": event.id,
            f"{prefix}import_key": import_key(event),
        }
        return EventCreationRequest(
            title=event.title,
            description=enhance_description(event),
            start=event.start,
            end=event.end,
            location=event.location,
            metadata=metadata,
        )

    async def import_events(self, events: Sequence[ImportableEvent], imported_by: str) -> ImportOutcome:
        """Create the selected events in one batch.

        Args:
            events: Preview rows as returned (and possibly edited) by the UI
            imported_by: Identifier of the importing user

        Returns:
            ImportOutcome; ``success`` when at least ``success_threshold`` of
            the submitted items were created. Submission failures are
            reported in the outcome, not raised.
        """
        with import_run() as run_id:
            items = self.select_items(events)
            if not items:
                logger.info("Nothing selected for import (run %s)", run_id)
                return ImportOutcome(success=True, success_rate=1.0)

            import_date = self.clock().astimezone(UTC).isoformat()
            requests = [self.build_request(item, imported_by, import_date) for item in items]
            logger.info("Submitting %d events for import (run %s)", len(requests), run_id)

            try:
                results = await self._submit(requests)
            except BatchSubmitError as e:
                return ImportOutcome(
                    success=False,
                    skipped_count=len(requests),
                    errors=[str(e)],
                    submitted_count=len(requests),
                )

            outcome = self._account(items, results)
            await self._request_sync(outcome)

            logger.info(
                "Import finished: %d imported, %d skipped, rate=%.2f, success=%s",
                outcome.imported_count,
                outcome.skipped_count,
                outcome.success_rate,
                outcome.success,
            )
            return outcome

    async def _submit(self, requests: list[EventCreationRequest]) -> list[CreateResult]:
        timeout = self.settings.submit_timeout_seconds
        try:
            return list(await asyncio.wait_for(self.creator.create_events(requests), timeout=timeout))
        except asyncio.TimeoutError as e:
            logger.warning("Batch create timed out after %ss", timeout)
            raise BatchSubmitError(f"Batch create timed out after {timeout}s") from e
        except Exception as e:
            logger.exception("Batch create failed")
            raise BatchSubmitError(f"Batch create failed: {e}") from e

    def _account(self, items: list[ImportableEvent], results: list[CreateResult]) -> ImportOutcome:
        if len(results) > len(items):
            logger.warning("Batch create returned %d results for %d requests; extras ignored", len(results), len(items))

        imported_ids: list[str] = []
        errors: list[str] = []
        for i, item in enumerate(items):
            result = results[i] if i < len(results) else None
            if result is not None and result.success:
                imported_ids.append(result.created_id or item.id)
                continue
            reason = "no result returned" if result is None else (result.error or "unknown error")
            errors.append(f'Failed to import "{item.title}": {reason}')

        submitted = len(items)
        imported = len(imported_ids)
        rate = imported / submitted
        return ImportOutcome(
            success=rate >= self.settings.success_threshold,
            imported_count=imported,
            skipped_count=submitted - imported,
            errors=errors,
            imported_ids=imported_ids,
            submitted_count=submitted,
            success_rate=rate,
        )

    async def _request_sync(self, outcome: ImportOutcome) -> None:
        """Best-effort sync signal; failures are recorded, never raised."""
        if outcome.imported_count == 0 or self.sync_trigger is None:
            return

        outcome.sync_requested = True
        timeout = self.settings.sync_timeout_seconds
        try:
            await asyncio.wait_for(self.sync_trigger.request_sync(outcome.imported_ids), timeout=timeout)
        except asyncio.TimeoutError:
            outcome.sync_error = f"Sync request timed out after {timeout}s"
            logger.warning("%s", outcome.sync_error)
        except Exception as e:
            outcome.sync_error = f"Sync request failed: {e}"
            logger.warning("Sync request failed: %s", e, exc_info=True)
