"""Exception hierarchy for the calendar import engine.

Every error raised by this package derives from ``CalendarImportError`` so
callers can catch the whole family at one boundary. Errors that are part of
normal operation (an invalid VEVENT, a failed batch item, an unsupported
recurrence frequency) are not raised at all; they are accumulated in result
objects instead.
"""


class CalendarImportError(Exception):
    """Base exception for all calendar import errors."""


class IcsParseError(CalendarImportError):
    """ICS content could not be interpreted."""


class IcsDateTimeError(IcsParseError, ValueError):
    """A DATE or DATE-TIME value is not in a supported ICS encoding.

    Raised when:
    - the value is not ``YYYYMMDD`` or ``YYYYMMDDTHHMMSS[Z]``
    - the digits do not form a real calendar date or time
    """


class RRuleExpansionError(CalendarImportError):
    """Base exception for RRULE expansion errors."""


class RRuleParseError(RRuleExpansionError):
    """Error parsing an RRULE string.

    Raised when FREQ is missing or unsupported, or when INTERVAL, COUNT or
    UNTIL hold values outside their grammar. The expander catches this and
    falls back to the single base occurrence.
    """


class ProviderFetchError(CalendarImportError):
    """The remote provider's event list could not be fetched.

    Raised for provider exceptions and for fetches that exceed the
    configured timeout. The whole preview call may be retried.
    """


class IcsFetchError(CalendarImportError):
    """An ICS feed URL could not be downloaded or did not contain a calendar."""


class BatchSubmitError(CalendarImportError):
    """The batch-create request itself failed (network error or timeout)."""


class ConfigurationError(CalendarImportError):
    """Configuration file or keyword tables are malformed."""
