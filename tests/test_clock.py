"""Tests for the fixed-offset civil calendar and dashboard period resolution."""

from datetime import date, datetime, timezone

import pytest

from catatuang.clock import FixedOffsetClock
from catatuang.queries import parse_month_key, parse_week, resolve_period


def at(*args) -> FixedOffsetClock:
    instant = datetime(*args, tzinfo=timezone.utc)
    return FixedOffsetClock(7, now=lambda: instant)


class TestDayBoundaries:
    """Tests for civil day math in UTC+7."""

    def test_late_utc_evening_is_next_civil_day(self):
        """Test that 18:00 UTC is already tomorrow in UTC+7."""
        clock = at(2025, 1, 14, 18, 0)
        assert clock.day_key() == "2025-01-15"

    def test_day_range_starts_at_civil_midnight(self):
        """Test that the day starts at 17:00 UTC of the previous date."""
        clock = at(2025, 1, 15, 3, 0)
        window = clock.day_range()
        assert window.start == datetime(2025, 1, 14, 17, 0, tzinfo=timezone.utc)
        assert window.end == datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc)

    def test_month_range_spans_year_end(self):
        """Test December's range ends at January 1st civil midnight."""
        clock = FixedOffsetClock(7)
        window = clock.month_range(2024, 12)
        assert window.start == datetime(2024, 11, 30, 17, tzinfo=timezone.utc)
        assert window.end == datetime(2024, 12, 31, 17, tzinfo=timezone.utc)


class TestWeeks:
    """Tests for Monday-aligned week buckets."""

    def test_weeks_in_month(self):
        """Test bucket counts for months with different shapes."""
        clock = FixedOffsetClock(7)
        # February 2021 starts on Monday and has 28 days
        assert clock.weeks_in_month(2021, 2) == 4
        # January 2025 starts on Wednesday
        assert clock.weeks_in_month(2025, 1) == 5
        # March 2026 starts on Sunday and has 31 days
        assert clock.weeks_in_month(2026, 3) == 6

    def test_week_one_starts_on_monday_before_day_one(self):
        """Test that week 1 contains day 1 and starts on Monday."""
        clock = FixedOffsetClock(7)
        start = clock.week_start_for_index(2025, 1, 1)
        assert clock.civil_date(start) == date(2024, 12, 30)

    def test_week_index_is_clamped(self):
        """Test that out-of-range week numbers are clamped."""
        clock = FixedOffsetClock(7)
        assert clock.week_start_for_index(2025, 1, 0) == clock.week_start_for_index(2025, 1, 1)
        assert clock.week_start_for_index(2025, 1, 9) == clock.week_start_for_index(2025, 1, 5)

    def test_week_range_containing_sunday(self):
        """Test that Sunday belongs to the week that started the Monday before."""
        clock = at(2025, 1, 19, 5, 0)  # Sunday 12:00 local
        window = clock.week_range_containing()
        assert clock.civil_date(window.start) == date(2025, 1, 13)

    def test_current_week_index(self):
        """Test the bucket of a given day."""
        clock = FixedOffsetClock(7)
        assert clock.current_week_index(2025, 1, date(2025, 1, 5)) == 1
        assert clock.current_week_index(2025, 1, date(2025, 1, 6)) == 2
        assert clock.current_week_index(2025, 1, date(2025, 1, 31)) == 5

    def test_weekday_label(self):
        """Test short Indonesian weekday labels."""
        assert FixedOffsetClock.weekday_label(date(2025, 1, 13)) == "Sen"
        assert FixedOffsetClock.weekday_label(date(2025, 1, 19)) == "Min"


class TestPeriodResolution:
    """Tests for dashboard month/week parameters."""

    def test_parse_month_key(self):
        """Test valid and invalid month keys."""
        assert parse_month_key("2025-02") == (2025, 2)
        assert parse_month_key("2025-13") is None
        assert parse_month_key("2025-2") is None
        assert parse_month_key(None) is None
        assert parse_month_key("0000-01") is None

    def test_parse_week(self):
        """Test week parameter parsing."""
        assert parse_week(3) == 3
        assert parse_week("2") == 2
        assert parse_week("abc") is None
        assert parse_week(True) is None

    def test_defaults_to_current_month_and_week(self):
        """Test that no parameters means today."""
        period = resolve_period(at(2025, 1, 15, 3, 0))
        assert period.month_key == "2025-01"
        assert period.is_current_month
        assert period.week == 3

    def test_invalid_month_falls_back_to_current(self):
        """Test that a malformed month key is ignored."""
        period = resolve_period(at(2025, 1, 15, 3, 0), month_key="garbage")
        assert period.month_key == "2025-01"

    @pytest.mark.parametrize("month_key", ["0000-01", "0001-01", "9999-12"])
    def test_unrepresentable_year_falls_back_to_current(self, month_key):
        """Test that years whose ranges overflow datetime are ignored."""
        period = resolve_period(at(2025, 1, 15, 3, 0), month_key=month_key, week=1)
        assert period.month_key == "2025-01"
        assert period.week == 1

    def test_extreme_supported_years(self):
        """Test the first and last accepted years resolve to full ranges."""
        assert resolve_period(at(2025, 1, 15, 3, 0), month_key="0002-01", week=1).year == 2
        last = resolve_period(at(2025, 1, 15, 3, 0), month_key="9998-12", week=99)
        assert (last.year, last.month, last.week) == (9998, 12, last.weeks_in_month)

    def test_past_month_defaults_to_week_one(self):
        """Test that another month without a week shows its first week."""
        period = resolve_period(at(2025, 1, 15, 3, 0), month_key="2024-11")
        assert not period.is_current_month
        assert period.week == 1

    @pytest.mark.parametrize("week,expected", [(0, 1), (99, 5), ("4", 4)])
    def test_week_is_clamped(self, week, expected):
        """Test that requested weeks are clamped to the month."""
        period = resolve_period(at(2025, 1, 15, 3, 0), month_key="2025-01", week=week)
        assert period.week == expected
        assert period.weeks_in_month == 5
