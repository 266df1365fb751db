"""DATE / DATE-TIME codec for ICS values.

Decodes the two ICS encodings into ``IcsDateTime`` and back, and converts
to and from the ``EventTime`` form used by the UI and calendar providers.

Known approximation: a floating DATE-TIME (no ``Z``, no ``TZID``) is read as
UTC and flagged ``floating``.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, date, datetime
from typing import Optional

from ..core.exceptions import IcsDateTimeError
from ..core.timezone_utils import get_zone, normalize_timezone_name
from ..domain.models import EventTime
from .ics_models import IcsDateTime

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$")


def decode_ics_datetime(
    value: str,
    tzid: Optional[str] = None,
    value_type: Optional[str] = None,
) -> IcsDateTime:
    """Decode an ICS DATE or DATE-TIME value.

    Args:
        value: ``YYYYMMDD`` or ``YYYYMMDDTHHMMSS`` with optional ``Z``
        tzid: ``TZID`` parameter, if any. Windows zone names are mapped to
            IANA; an unknown zone falls back to UTC with a warning.
        value_type: ``VALUE`` parameter; ``DATE`` requires the date form.

    Returns:
        Decoded value

    Raises:
        IcsDateTimeError: If the text is not a valid DATE or DATE-TIME
    """
    text = (value or "").strip()

    date_match = _DATE_RE.match(text)
    if date_match:
        year, month, day = (int(g) for g in date_match.groups())
        try:
            return IcsDateTime.all_day(date(year, month, day))
        except ValueError as e:
            raise IcsDateTimeError(f"Invalid DATE value {value!r}: {e}") from e

    if value_type and value_type.upper() == "DATE":
        raise IcsDateTimeError(f"VALUE=DATE but {value!r} is not YYYYMMDD")

    dt_match = _DATETIME_RE.match(text)
    if not dt_match:
        raise IcsDateTimeError(f"Unsupported date-time value {value!r}")

    year, month, day, hour, minute, second = (int(g) for g in dt_match.groups()[:6])
    is_utc = dt_match.group(7) == "Z"
    try:
        wall = datetime(year, month, day, hour, minute, second)
    except ValueError as e:
        raise IcsDateTimeError(f"Invalid DATE-TIME value {value!r}: {e}") from e

    if is_utc:
        return IcsDateTime.timed(wall.replace(tzinfo=UTC), "UTC")

    if not tzid:
        return IcsDateTime.timed(wall.replace(tzinfo=UTC), "UTC", floating=True)

    iana = normalize_timezone_name(tzid)
    zone = get_zone(tzid) if iana else None
    if zone is None:
        logger.warning("Unknown TZID %r for value %s; treating as UTC", tzid, text)
        return IcsDateTime.timed(wall.replace(tzinfo=UTC), "UTC")
    if iana == "UTC":
        return IcsDateTime.timed(wall.replace(tzinfo=UTC), "UTC")
    return IcsDateTime.timed(wall.replace(tzinfo=zone), iana)


def encode_ics_datetime(value: IcsDateTime) -> tuple[str, Optional[str]]:
    """Encode an ``IcsDateTime`` back to ICS text.

    Returns:
        ``(text, tzid)``: all-day gives ``("YYYYMMDD", None)``, UTC gives
        ``("YYYYMMDDTHHMMSSZ", None)``, zoned gives the local wall time and
        its TZID.
    """
    if value.is_all_day:
        return value.value.strftime("%Y%m%d"), None
    assert isinstance(value.value, datetime)
    if value.is_utc:
        return value.instant.strftime("%Y%m%dT%H%M%SZ"), None
    return value.value.strftime("%Y%m%dT%H%M%S"), value.tzid


def to_event_time(value: IcsDateTime) -> EventTime:
    """Convert to the UI/provider form. Timed values always carry an offset."""
    if value.is_all_day:
        return EventTime(date=value.value.isoformat())
    return EventTime(date_time=value.value.isoformat(), time_zone=value.tzid or "UTC")


def from_event_time(value: EventTime) -> IcsDateTime:
    """Convert an ``EventTime`` back to an ``IcsDateTime``.

    Raises:
        IcsDateTimeError: If the date or date-time text is not ISO-8601
    """
    try:
        if value.date is not None:
            return IcsDateTime.all_day(date.fromisoformat(value.date))

        assert value.date_time is not None
        parsed = datetime.fromisoformat(value.date_time.replace("Z", "+00:00"))
    except ValueError as e:
        raise IcsDateTimeError(f"Invalid event time {value!r}: {e}") from e

    iana = normalize_timezone_name(value.time_zone) if value.time_zone else None
    zone = get_zone(iana) if iana and iana != "UTC" else None

    if parsed.tzinfo is None:
        # Zone-less input: wall time in the named zone, UTC otherwise
        parsed = parsed.replace(tzinfo=zone or UTC)

    if zone is None:
        return IcsDateTime.timed(parsed.astimezone(UTC), "UTC")
    return IcsDateTime.timed(parsed.astimezone(zone), iana or "UTC")
