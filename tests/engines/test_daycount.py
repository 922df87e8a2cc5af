"""
Tests for day-granularity date arithmetic.

Covers:
- Local-day truncation of aware, naive and date values
- Calendar-day differences
- DST-crossing spans and the two rounding conventions
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from spend_engines.daycount import (
    DEFAULT_TIMEZONE,
    DayRounding,
    calendar_days,
    day_count,
    day_span,
    local_date,
    local_midnight,
    resolve_zone,
    whole_days,
)

ROME = ZoneInfo("Europe/Rome")


class TestLocalDate:
    """Tests for local calendar day resolution."""

    def test_plain_date_unchanged(self):
        assert local_date(date(2025, 6, 15)) == date(2025, 6, 15)

    def test_aware_datetime_converted_to_zone(self):
        """23:30 UTC on Dec 31 is already Jan 1 in Rome."""
        moment = datetime(2024, 12, 31, 23, 30, tzinfo=UTC)
        assert local_date(moment) == date(2025, 1, 1)

    def test_naive_datetime_is_local(self):
        assert local_date(datetime(2024, 12, 31, 23, 30)) == date(2024, 12, 31)

    def test_explicit_zone(self):
        moment = datetime(2024, 12, 31, 23, 30, tzinfo=UTC)
        assert local_date(moment, "UTC") == date(2024, 12, 31)

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            local_date("2025-01-01")


class TestLocalMidnight:
    def test_midnight_carries_zone(self):
        midnight = local_midnight(datetime(2025, 3, 30, 15, 0, tzinfo=UTC))
        assert midnight == datetime(2025, 3, 30, tzinfo=ROME)
        assert midnight.tzinfo == ROME


class TestResolveZone:
    def test_default_zone(self):
        assert resolve_zone(None) == ZoneInfo(DEFAULT_TIMEZONE)

    def test_tzinfo_passthrough(self):
        assert resolve_zone(UTC) is UTC


class TestCalendarDays:
    def test_same_day(self):
        assert calendar_days(date(2025, 1, 1), date(2025, 1, 1)) == 0

    def test_negative(self):
        assert calendar_days(date(2025, 1, 10), date(2025, 1, 1)) == -9

    def test_ignores_dst(self):
        assert calendar_days(date(2025, 10, 1), date(2025, 10, 31)) == 30


class TestDaySpan:
    """Spans are measured between UTC instants of local midnights."""

    def test_whole_days_without_transition(self):
        assert day_span(date(2025, 1, 1), date(2025, 1, 11)) == Decimal(10)

    def test_autumn_transition_adds_an_hour(self):
        span = day_span(date(2025, 10, 1), date(2025, 10, 31))
        assert (span * 86400).quantize(Decimal(1)) == 30 * 86400 + 3600

    def test_spring_transition_removes_an_hour(self):
        span = day_span(date(2025, 3, 1), date(2025, 3, 31))
        assert (span * 86400).quantize(Decimal(1)) == 30 * 86400 - 3600


class TestRounding:
    def test_nearest_rounds_half_up(self):
        assert whole_days(Decimal("2.5"), DayRounding.NEAREST) == 3
        assert whole_days(Decimal("2.4"), DayRounding.NEAREST) == 2

    def test_ceiling_always_up(self):
        assert whole_days(Decimal("2.01"), DayRounding.CEILING) == 3
        assert whole_days(Decimal("-0.5"), DayRounding.CEILING) == 0

    def test_accepts_string_value(self):
        assert whole_days(Decimal("2.01"), "ceiling") == 3

    def test_conventions_agree_on_whole_spans(self):
        for rounding in DayRounding:
            assert day_count(date(2025, 1, 1), date(2025, 12, 31), rounding) == 364

    def test_conventions_disagree_across_autumn_transition(self):
        start, end = date(2025, 10, 1), date(2025, 10, 31)
        assert day_count(start, end, DayRounding.NEAREST) == 30
        assert day_count(start, end, DayRounding.CEILING) == 31
