"""Timezone name resolution for TZID parameters."""

from __future__ import annotations

import logging
import zoneinfo
from functools import lru_cache

logger = logging.getLogger(__name__)

# Common Windows timezones used in ICS files from Outlook/Exchange
WINDOWS_TZ_MAP: dict[str, str] = {
    "Pacific Standard Time": "America/Los_Angeles",
    "Mountain Standard Time": "America/Denver",
    "Central Standard Time": "America/Chicago",
    "Eastern Standard Time": "America/New_York",
    "Alaskan Standard Time": "America/Anchorage",
    "Hawaiian Standard Time": "Pacific/Honolulu",
    "US Mountain Standard Time": "America/Phoenix",
    "Atlantic Standard Time": "America/Halifax",
    "GMT Standard Time": "Europe/London",
    "Central European Standard Time": "Europe/Warsaw",
    "W. Europe Standard Time": "Europe/Berlin",
    "Romance Standard Time": "Europe/Paris",
    "E. Europe Standard Time": "Europe/Bucharest",
    "FLE Standard Time": "Europe/Helsinki",
    "GTB Standard Time": "Europe/Athens",
    "Russian Standard Time": "Europe/Moscow",
    "India Standard Time": "Asia/Kolkata",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "Singapore Standard Time": "Asia/Singapore",
    "AUS Eastern Standard Time": "Australia/Sydney",
    "New Zealand Standard Time": "Pacific/Auckland",
    "E. South America Standard Time": "America/Sao_Paulo",
    "South Africa Standard Time": "Africa/Johannesburg",
}

# Obsolete or legacy names still found in exported calendars
TZ_ALIAS_MAP: dict[str, str] = {
    "US/Pacific": "America/Los_Angeles",
    "US/Mountain": "America/Denver",
    "US/Central": "America/Chicago",
    "US/Eastern": "America/New_York",
    "GMT": "UTC",
    "Etc/UTC": "UTC",
    "Etc/GMT": "UTC",
    "Z": "UTC",
    "Zulu": "UTC",
}


@lru_cache(maxsize=128)
def normalize_timezone_name(tz_str: str) -> str | None:
    """Normalize a TZID to a canonical IANA timezone identifier.

    Examples:
        >>> normalize_timezone_name("Pacific Standard Time")
        'America/Los_Angeles'
        >>> normalize_timezone_name("Europe/Berlin")
        'Europe/Berlin'
        >>> normalize_timezone_name("Invalid/Timezone") is None
        True
    """
    if not tz_str:
        return None

    name = tz_str.strip().strip('"')
    candidate = WINDOWS_TZ_MAP.get(name) or TZ_ALIAS_MAP.get(name, name)
    try:
        zoneinfo.ZoneInfo(candidate)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.debug("Timezone %r could not be resolved", tz_str)
        return None
    return candidate


def get_zone(tz_str: str) -> zoneinfo.ZoneInfo | None:
    """Return the ZoneInfo for a TZID, or None when it cannot be resolved."""
    iana = normalize_timezone_name(tz_str)
    return zoneinfo.ZoneInfo(iana) if iana else None
