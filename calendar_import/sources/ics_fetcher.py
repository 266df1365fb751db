"""Download ICS text from a subscribed calendar feed URL."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..core.config import ImportSettings
from ..core.correlation import get_run_id
from ..core.exceptions import IcsFetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "calendar-import/0.1",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.5",
}


def normalize_feed_url(url: str) -> str:
    """Rewrite ``webcal://`` to ``https://`` and validate the scheme.

    Raises:
        IcsFetchError: If the URL is not HTTP(S) or has no host
    """
    url = url.strip()
    if url.lower().startswith("webcal://"):
        url = "https://" + url[len("webcal://"):]

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise IcsFetchError(f"Unsupported feed URL scheme: {parsed.scheme or '<none>'}")
    if not parsed.hostname:
        raise IcsFetchError("Feed URL is missing a hostname")
    return url


class IcsFeedFetcher:
    """Async HTTP client for downloading ICS feeds.

    Pass ``client`` to share an ``httpx.AsyncClient`` (or inject a mock
    transport in tests); otherwise a client is created per fetch.
    """

    def __init__(
        self,
        settings: Optional[ImportSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or ImportSettings()
        self.client = client

    async def fetch(self, url: str, bearer_token: Optional[str] = None) -> str:
        """Fetch and validate one ICS feed.

        Args:
            url: Feed URL (``webcal://``, ``https://`` or ``http://``)
            bearer_token: Optional bearer credential for private feeds

        Returns:
            ICS text

        Raises:
            IcsFetchError: On network errors, timeouts, non-2xx responses,
                oversized bodies or content that is not a calendar
        """
        target = normalize_feed_url(url)
        headers = dict(DEFAULT_HEADERS)
        headers["X-Request-ID"] = get_run_id()
        if bearer_token:
            headers["Authorization"] = f"Bearer {bearer_token}"

        logger.debug("Fetching ICS feed %s", target)
        try:
            response = await asyncio.wait_for(
                self._get(target, headers), timeout=self.settings.fetch_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise IcsFetchError(
                f"Timed out after {self.settings.fetch_timeout_seconds}s fetching {target}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Network error fetching ICS feed %s: %s", target, e)
            raise IcsFetchError(f"Network error fetching {target}: {e}") from e

        if not response.is_success:
            raise IcsFetchError(f"HTTP {response.status_code} fetching {target}")

        body = response.content
        if len(body) > self.settings.max_ics_bytes:
            raise IcsFetchError(
                f"ICS feed is {len(body)} bytes, above the {self.settings.max_ics_bytes} byte limit"
            )

        text = body.decode(response.encoding or "utf-8", errors="replace")
        if "BEGIN:VCALENDAR" not in text.upper():
            raise IcsFetchError(f"Response from {target} is not an iCalendar document")

        logger.info("Fetched ICS feed %s (%d bytes)", target, len(body))
        return text

    async def _get(self, url: str, headers: dict[str, Any]) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(url, headers=headers, follow_redirects=True)

        timeout = httpx.Timeout(self.settings.fetch_timeout_seconds, connect=10.0)
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            return await client.get(url, headers=headers)
