"""Tests for RRULE parsing and recurrence expansion."""

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

import pytest

from calendar_import.calendar.ics_models import (
    Frequency,
    IcsDateTime,
    RawCalendarEvent,
    RecurringInstance,
    Singleton,
)
from calendar_import.calendar.rrule_expander import RecurrenceExpander, parse_rrule
from calendar_import.core.exceptions import RRuleParseError

pytestmark = pytest.mark.unit

MONDAY = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
FAR_HORIZON = datetime(2035, 1, 1, tzinfo=UTC)


class TestParseRRule:
    """Test parse_rrule."""

    def test_full_rule(self) -> None:
        rule = parse_rrule("FREQ=WEEKLY;INTERVAL=2;COUNT=5;BYDAY=MO")
        assert rule.frequency is Frequency.WEEKLY
        assert rule.interval == 2
        assert rule.count == 5
        assert rule.until is None

    def test_defaults_and_prefix(self) -> None:
        rule = parse_rrule("RRULE:freq=daily;UNTIL=20250320T090000Z")
        assert rule.frequency is Frequency.DAILY
        assert rule.interval == 1
        assert rule.until == IcsDateTime.timed(datetime(2025, 3, 20, 9, 0, tzinfo=UTC))

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "INTERVAL=2",
            "FREQ=HOURLY",
            "FREQ=DAILY;INTERVAL=0",
            "FREQ=DAILY;INTERVAL=two",
            "FREQ=DAILY;COUNT=-1",
            "FREQ=DAILY;UNTIL=soon",
        ],
    )
    def test_invalid_rules_raise(self, text: str) -> None:
        with pytest.raises(RRuleParseError):
            parse_rrule(text)


class TestRecurrenceExpander:
    """Test RecurrenceExpander.expand."""

    def test_no_rrule_yields_single_occurrence(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event()
        result = RecurrenceExpander().expand(event, FAR_HORIZON)

        assert result.occurrences == [Singleton(event)]
        assert result.occurrences[0].start == event.start
        assert result.occurrences[0].end == event.end

    def test_weekly_interval_two_count_five(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(start=MONDAY, rrule="FREQ=WEEKLY;INTERVAL=2;COUNT=5")
        occurrences = RecurrenceExpander().expand(event, FAR_HORIZON).occurrences

        starts = [o.start.instant for o in occurrences]
        assert len(starts) == 5
        assert starts == [MONDAY + timedelta(days=14 * k) for k in range(5)]
        assert all(isinstance(o, RecurringInstance) for o in occurrences)
        assert all(o.end.instant - o.start.instant == timedelta(hours=1) for o in occurrences)

    def test_daily_until_with_exdate(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        excluded = MONDAY + timedelta(days=4)
        event = make_raw_event(
            start=MONDAY,
            rrule="FREQ=DAILY;UNTIL=20250319T090000Z",
            exdate=(IcsDateTime.timed(excluded),),
        )
        starts = [o.start.instant for o in RecurrenceExpander().expand(event, FAR_HORIZON).occurrences]

        assert len(starts) == 9
        assert excluded not in starts
        assert starts[-1] == datetime(2025, 3, 19, 9, 0, tzinfo=UTC)

    def test_excluded_anchors_still_consume_count(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(
            start=MONDAY,
            rrule="FREQ=DAILY;COUNT=3",
            exdate=(IcsDateTime.timed(MONDAY + timedelta(days=1)),),
        )
        starts = [o.start.instant for o in RecurrenceExpander().expand(event, FAR_HORIZON).occurrences]
        assert starts == [MONDAY, MONDAY + timedelta(days=2)]

    def test_monthly_on_31st_clamps(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(start=datetime(2025, 1, 31, 10, 0, tzinfo=UTC), rrule="FREQ=MONTHLY;COUNT=4")
        days = [o.start.value.date() for o in RecurrenceExpander().expand(event, FAR_HORIZON).occurrences]
        assert days == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]

    def test_yearly_on_leap_day(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(start=datetime(2024, 2, 29, 10, 0, tzinfo=UTC), rrule="FREQ=YEARLY;COUNT=5")
        days = [o.start.value.date() for o in RecurrenceExpander().expand(event, FAR_HORIZON).occurrences]
        assert days[1] == date(2025, 2, 28)
        assert days[4] == date(2028, 2, 29)

    def test_horizon_stops_expansion(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(start=MONDAY, rrule="FREQ=DAILY")
        horizon = MONDAY + timedelta(days=6, hours=1)
        result = RecurrenceExpander().expand(event, horizon)
        assert len(result.occurrences) == 7
        assert result.truncated is False

    def test_unbounded_rule_stops_at_safety_cap(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(start=MONDAY, rrule="FREQ=DAILY")
        result = RecurrenceExpander(max_occurrences=1000).expand(event, FAR_HORIZON)

        assert len(result.occurrences) == 1000
        assert result.truncated is True
        assert any("stopped after 1000" in w for w in result.warnings)

    def test_invalid_rule_fails_open(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(rrule="FREQ=SECONDLY")
        result = RecurrenceExpander().expand(event, FAR_HORIZON)

        assert result.occurrences == [Singleton(event)]
        assert len(result.warnings) == 1

    def test_all_day_weekly_series(self) -> None:
        event = RawCalendarEvent(
            uid="retreat",
            summary="Weekend retreat",
            start=IcsDateTime.all_day(date(2025, 3, 15)),
            end=IcsDateTime.all_day(date(2025, 3, 17)),
            rrule="FREQ=WEEKLY;COUNT=3",
            exdate=(IcsDateTime.all_day(date(2025, 3, 22)),),
        )
        occurrences = RecurrenceExpander().expand(event, FAR_HORIZON).occurrences

        assert [o.start.value for o in occurrences] == [date(2025, 3, 15), date(2025, 3, 29)]
        assert all(o.start.is_all_day and o.end.is_all_day for o in occurrences)
        assert occurrences[1].end.value == date(2025, 3, 31)

    def test_all_day_until_includes_last_day(self) -> None:
        event = RawCalendarEvent(
            uid="daily",
            summary="Sadhana",
            start=IcsDateTime.timed(MONDAY),
            end=IcsDateTime.timed(MONDAY + timedelta(hours=1)),
            rrule="FREQ=DAILY;UNTIL=20250312",
        )
        occurrences = RecurrenceExpander().expand(event, FAR_HORIZON).occurrences
        assert len(occurrences) == 3

    def test_old_unbounded_series_reaches_window(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(start=datetime(2020, 1, 1, 9, 0, tzinfo=UTC), rrule="FREQ=DAILY")
        window_start = datetime(2025, 3, 1, tzinfo=UTC)
        horizon = datetime(2025, 3, 10, 23, 0, tzinfo=UTC)

        result = RecurrenceExpander(max_occurrences=100).expand(event, horizon, window_start=window_start)
        starts = {o.start.instant for o in result.occurrences}

        assert result.truncated is False
        for day in range(1, 11):
            assert datetime(2025, 3, day, 9, 0, tzinfo=UTC) in starts

    def test_zoned_series_keeps_wall_time_across_dst(self) -> None:
        from zoneinfo import ZoneInfo

        berlin = ZoneInfo("Europe/Berlin")
        start = datetime(2025, 3, 24, 18, 0, tzinfo=berlin)
        event = RawCalendarEvent(
            uid="evening",
            summary="Evening flow",
            start=IcsDateTime.timed(start, "Europe/Berlin"),
            end=IcsDateTime.timed(start + timedelta(hours=1), "Europe/Berlin"),
            rrule="FREQ=WEEKLY;COUNT=2",
        )
        occurrences = RecurrenceExpander().expand(event, FAR_HORIZON).occurrences

        assert [o.start.value.hour for o in occurrences] == [18, 18]
        assert occurrences[0].start.instant.hour == 17
        assert occurrences[1].start.instant.hour == 16

    def test_group_id_derived_from_uid(self, make_raw_event: Callable[..., RawCalendarEvent]) -> None:
        event = make_raw_event(uid="abc", rrule="FREQ=DAILY;COUNT=2")
        occurrences = RecurrenceExpander().expand(event, FAR_HORIZON).occurrences
        assert {o.group_id for o in occurrences} == {"recurring_abc"}
