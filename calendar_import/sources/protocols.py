"""Protocol definitions for the engine's external collaborators.

The calendar provider's HTTP API, its batch-create endpoint and the sync
signal live outside this package; these protocols are the whole contract.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from ..domain.models import CreateResult, EventCreationRequest, ProviderEvent


@runtime_checkable
class EventProviderProtocol(Protocol):
    """A remote calendar that lists discrete (already expanded) events."""

    async def fetch_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[ProviderEvent]:
        """Return events of one calendar between two instants.

        Args:
            calendar_id: Provider calendar identifier
            time_min: Window start (aware)
            time_max: Window end (aware)

        Returns:
            Provider events
        """
        ...


@runtime_checkable
class BatchCreateCapability(Protocol):
    """Creates many events in one request."""

    async def create_events(self, requests: Sequence[EventCreationRequest]) -> list[CreateResult]:
        """Create events.

        Args:
            requests: Events to create

        Returns:
            One result per request, aligned by position
        """
        ...


@runtime_checkable
class SyncTrigger(Protocol):
    """Asks the target calendar to sync newly created events."""

    async def request_sync(self, event_ids: Sequence[str]) -> None:
        """Request a sync for the given created event ids."""
        ...
