"""VEVENT property parser.

A two-state machine (outside / inside a VEVENT) over unfolded content
lines. Lines are split into name, parameters and value with icalendar's
content-line parser; only the properties the import needs are read.
Malformed input never raises: problems are reported in
``IcsParseResult.errors`` and incomplete events are dropped and counted.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Optional

from icalendar.parser import Contentline

from ..core.exceptions import IcsDateTimeError
from .ics_datetime import decode_ics_datetime
from .ics_models import IcsParseResult, RawEventBuilder
from .ics_unfolder import unfold_lines

logger = logging.getLogger(__name__)

_TEXT_ESCAPE_RE = re.compile(r"\\([nN,;\\])")
_TEXT_ESCAPES = {"n": "\n", "N": "\n", ",": ",", ";": ";", "\\": "\\"}

TEXT_PROPERTIES = frozenset({"SUMMARY", "DESCRIPTION", "LOCATION"})
DATE_PROPERTIES = frozenset({"DTSTART", "DTEND"})


def unescape_text(value: str) -> str:
    """Undo ICS TEXT escaping (``\\n``, ``\\,``, ``\\;``, ``\\\\``)."""
    return _TEXT_ESCAPE_RE.sub(lambda m: _TEXT_ESCAPES[m.group(1)], value)


class ParserState(Enum):
    OUTSIDE = "outside"
    IN_EVENT = "in_event"


class IcsPropertyParser:
    """Parse ICS text into ``RawCalendarEvent`` values.

    The parser keeps no state between calls; one instance may be reused.
    """

    def parse(self, text: str) -> IcsParseResult:
        """Parse ICS text.

        Args:
            text: Raw ICS content (any line ending, folded or not)

        Returns:
            IcsParseResult with valid events, calendar name and errors
        """
        result = IcsParseResult()
        state = ParserState.OUTSIDE
        builder: Optional[RawEventBuilder] = None
        skip_depth = 0
        event_index = 0

        for line_no, line in enumerate(unfold_lines(text), start=1):
            stripped = line.strip()
            upper = stripped.upper()

            if upper.startswith("X-WR-CALNAME"):
                name = self._read_calendar_name(line)
                if name:
                    result.calendar_name = name
                continue

            if state is ParserState.OUTSIDE:
                if upper == "BEGIN:VEVENT":
                    state = ParserState.IN_EVENT
                    builder = RawEventBuilder()
                    event_index += 1
                elif upper == "END:VEVENT":
                    result.errors.append(f"Line {line_no}: END:VEVENT without matching BEGIN:VEVENT")
                continue

            assert builder is not None

            # Nested components (VALARM etc.) are skipped as a whole
            if skip_depth:
                if upper.startswith("BEGIN:"):
                    skip_depth += 1
                elif upper.startswith("END:"):
                    skip_depth -= 1
                continue

            if upper == "BEGIN:VEVENT":
                result.errors.append(f"Line {line_no}: BEGIN:VEVENT inside an open VEVENT")
                self._drop_event(result, builder, event_index, "not closed before the next VEVENT")
                builder = RawEventBuilder()
                event_index += 1
                continue

            if upper == "END:VEVENT":
                self._finish_event(result, builder, event_index)
                builder = None
                state = ParserState.OUTSIDE
                continue

            if upper.startswith("BEGIN:"):
                skip_depth = 1
                continue

            self._apply_property(result, builder, line, line_no)

        if state is ParserState.IN_EVENT and builder is not None:
            result.errors.append("VEVENT left open at end of input")
            self._drop_event(result, builder, event_index, "not closed at end of input")

        logger.debug(
            "Parsed ICS: %d events, %d invalid, %d errors, calendar=%r",
            result.event_count,
            result.invalid_event_count,
            len(result.errors),
            result.calendar_name,
        )
        return result

    def _finish_event(self, result: IcsParseResult, builder: RawEventBuilder, index: int) -> None:
        reason = builder.invalid_reason()
        if reason is not None:
            self._drop_event(result, builder, index, reason)
            return
        event = builder.build()
        assert event is not None
        result.events.append(event)

    def _drop_event(self, result: IcsParseResult, builder: RawEventBuilder, index: int, reason: str) -> None:
        result.invalid_event_count += 1
        label = f"Event {index}" + (f" (UID {builder.uid})" if builder.uid else "")
        result.errors.append(f"{label} dropped: {reason}")
        logger.debug("%s dropped: %s", label, reason)

    def _split_line(self, line: str) -> tuple[str, Any, str]:
        name, params, value = Contentline(line).parts()
        return str(name).upper(), params, str(value)

    def _read_calendar_name(self, line: str) -> Optional[str]:
        try:
            _, _, value = self._split_line(line)
        except (ValueError, TypeError):
            return None
        return unescape_text(value).strip() or None

    def _apply_property(
        self,
        result: IcsParseResult,
        builder: RawEventBuilder,
        line: str,
        line_no: int,
    ) -> None:
        if ":" not in line:
            result.errors.append(f"Line {line_no}: content line has no value separator")
            return
        try:
            name, params, value = self._split_line(line)
        except (ValueError, TypeError) as e:
            result.errors.append(f"Line {line_no}: could not split content line: {e}")
            return

        if name == "UID":
            builder.uid = value.strip() or None
        elif name in TEXT_PROPERTIES:
            text = unescape_text(value)
            if name == "SUMMARY":
                builder.summary = text.strip() or None
            elif name == "DESCRIPTION":
                builder.description = text
            else:
                builder.location = text.strip() or None
        elif name in DATE_PROPERTIES:
            try:
                decoded = decode_ics_datetime(value, params.get("TZID"), params.get("VALUE"))
            except IcsDateTimeError as e:
                result.errors.append(f"Line {line_no}: invalid {name}: {e}")
                return
            if name == "DTSTART":
                builder.start = decoded
            else:
                builder.end = decoded
        elif name == "EXDATE":
            for part in value.split(","):
                if not part.strip():
                    continue
                try:
                    builder.add_exdate(decode_ics_datetime(part, params.get("TZID"), params.get("VALUE")))
                except IcsDateTimeError as e:
                    result.errors.append(f"Line {line_no}: invalid EXDATE: {e}")
        elif name == "RRULE":
            builder.rrule = value.strip() or None
        elif name == "STATUS":
            builder.status = value.strip().upper() or None
