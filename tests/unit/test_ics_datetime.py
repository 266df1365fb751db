"""Tests for the ICS date-time codec."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from calendar_import.calendar.ics_datetime import (
    decode_ics_datetime,
    encode_ics_datetime,
    from_event_time,
    to_event_time,
)
from calendar_import.calendar.ics_models import IcsDateTime
from calendar_import.core.exceptions import IcsDateTimeError
from calendar_import.core.timezone_utils import normalize_timezone_name
from calendar_import.domain.models import EventTime

pytestmark = pytest.mark.unit


class TestDecode:
    """Test decode_ics_datetime."""

    def test_date_value_is_all_day(self) -> None:
        value = decode_ics_datetime("20250310")
        assert value.is_all_day
        assert value.value == date(2025, 3, 10)
        assert value.tzid is None

    def test_utc_value(self) -> None:
        value = decode_ics_datetime("20250310T090000Z")
        assert value.value == datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
        assert value.tzid == "UTC"
        assert value.floating is False

    def test_tzid_value_keeps_wall_time(self) -> None:
        value = decode_ics_datetime("20250310T090000", tzid="Europe/Berlin")
        assert value.tzid == "Europe/Berlin"
        assert value.value.hour == 9
        assert value.instant == datetime(2025, 3, 10, 8, 0, tzinfo=UTC)

    def test_windows_tzid_is_mapped(self) -> None:
        value = decode_ics_datetime("20250310T090000", tzid="Pacific Standard Time")
        assert value.tzid == "America/Los_Angeles"
        assert value.instant == datetime(2025, 3, 10, 16, 0, tzinfo=UTC)

    def test_unknown_tzid_falls_back_to_utc(self, caplog: pytest.LogCaptureFixture) -> None:
        value = decode_ics_datetime("20250310T090000", tzid="Mars/Olympus_Mons")
        assert value.tzid == "UTC"
        assert value.instant == datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
        assert "Unknown TZID" in caplog.text

    def test_floating_value_is_utc_and_flagged(self) -> None:
        value = decode_ics_datetime("20250310T090000")
        assert value.tzid == "UTC"
        assert value.floating is True
        assert value == decode_ics_datetime("20250310T090000Z")

    @pytest.mark.parametrize("bad", ["", "2025-03-10", "20251310", "20250310T250000", "tomorrow", "20250310T0900"])
    def test_invalid_text_raises(self, bad: str) -> None:
        with pytest.raises(IcsDateTimeError):
            decode_ics_datetime(bad)

    def test_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            decode_ics_datetime("nope")

    def test_value_date_requires_date_form(self) -> None:
        with pytest.raises(IcsDateTimeError):
            decode_ics_datetime("20250310T090000Z", value_type="DATE")


class TestEncodeRoundTrip:
    """Test encode_ics_datetime and the round-trip property."""

    def test_encode_all_day(self) -> None:
        assert encode_ics_datetime(IcsDateTime.all_day(date(2025, 1, 2))) == ("20250102", None)

    def test_encode_utc(self) -> None:
        value = IcsDateTime.timed(datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC))
        assert encode_ics_datetime(value) == ("20250102T030405Z", None)

    def test_encode_zoned(self) -> None:
        value = IcsDateTime.timed(datetime(2025, 6, 1, 18, 30, tzinfo=ZoneInfo("Europe/Berlin")), "Europe/Berlin")
        assert encode_ics_datetime(value) == ("20250601T183000", "Europe/Berlin")

    @pytest.mark.parametrize(
        "value",
        [
            IcsDateTime.all_day(date(2024, 2, 29)),
            IcsDateTime.timed(datetime(2025, 3, 10, 9, 0, tzinfo=UTC)),
            IcsDateTime.timed(datetime(2025, 7, 4, 17, 45, tzinfo=ZoneInfo("America/New_York")), "America/New_York"),
            IcsDateTime.timed(datetime(2025, 12, 31, 23, 59, 59, tzinfo=ZoneInfo("Asia/Tokyo")), "Asia/Tokyo"),
        ],
    )
    def test_decode_of_encode_is_identity(self, value: IcsDateTime) -> None:
        text, tzid = encode_ics_datetime(value)
        assert decode_ics_datetime(text, tzid=tzid) == value


class TestEventTimeConversion:
    """Test to_event_time / from_event_time."""

    def test_all_day_has_no_zone(self) -> None:
        event_time = to_event_time(IcsDateTime.all_day(date(2025, 3, 10)))
        assert event_time.date == "2025-03-10"
        assert event_time.date_time is None
        assert event_time.time_zone is None

    def test_timed_carries_offset_and_zone(self) -> None:
        value = decode_ics_datetime("20250310T090000", tzid="Europe/Berlin")
        event_time = to_event_time(value)
        assert event_time.date_time == "2025-03-10T09:00:00+01:00"
        assert event_time.time_zone == "Europe/Berlin"

    def test_utc_event_time(self) -> None:
        event_time = to_event_time(decode_ics_datetime("20250310T090000Z"))
        assert event_time.date_time == "2025-03-10T09:00:00+00:00"
        assert event_time.time_zone == "UTC"

    def test_from_event_time_round_trip(self) -> None:
        value = decode_ics_datetime("20250310T090000", tzid="Europe/Berlin")
        assert from_event_time(to_event_time(value)) == value

    def test_from_event_time_all_day(self) -> None:
        assert from_event_time(EventTime(date="2025-03-10")) == IcsDateTime.all_day(date(2025, 3, 10))

    def test_from_event_time_zone_less_string_uses_named_zone(self) -> None:
        value = from_event_time(EventTime(date_time="2025-03-10T09:00:00", time_zone="Europe/Berlin"))
        assert value.tzid == "Europe/Berlin"
        assert value.instant == datetime(2025, 3, 10, 8, 0, tzinfo=UTC)

    def test_from_event_time_invalid_raises(self) -> None:
        with pytest.raises(IcsDateTimeError):
            from_event_time(EventTime(date="10/03/2025"))


class TestTimezoneNames:
    """Test TZID normalization."""

    def test_iana_name_passes_through(self) -> None:
        assert normalize_timezone_name("Europe/Berlin") == "Europe/Berlin"

    def test_quoted_windows_name(self) -> None:
        assert normalize_timezone_name('"Eastern Standard Time"') == "America/New_York"

    def test_unknown_name_is_none(self) -> None:
        assert normalize_timezone_name("Invalid/Timezone") is None
