"""Tests for month bucketing."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from expense_os.engine.bucketing import (
    add_months,
    clamp_start_day,
    days_in_bucket,
    month_key,
    month_label,
    month_range,
    previous_bucket,
)


UTC = timezone.utc


class TestMonthKey:
    """Tests for mapping a moment to its bucket start."""

    def test_calendar_month_start(self):
        """Start day 1 gives the first of the calendar month at midnight."""
        key = month_key(datetime(2024, 3, 15, 18, 30, tzinfo=UTC))
        assert key == datetime(2024, 3, 1, tzinfo=UTC)

    def test_before_fiscal_start_day_belongs_to_previous_month(self):
        key = month_key(datetime(2024, 3, 10, tzinfo=UTC), fiscal_start_day=25)
        assert key == datetime(2024, 2, 25, tzinfo=UTC)

    def test_on_fiscal_start_day_belongs_to_current_month(self):
        key = month_key(datetime(2024, 3, 25, 0, 0, tzinfo=UTC), fiscal_start_day=25)
        assert key == datetime(2024, 3, 25, tzinfo=UTC)

    def test_january_rolls_back_to_december(self):
        key = month_key(datetime(2024, 1, 5, tzinfo=UTC), fiscal_start_day=10)
        assert key == datetime(2023, 12, 10, tzinfo=UTC)

    def test_start_day_is_clamped(self):
        """Start days outside [1, 28] behave like the nearest bound."""
        moment = datetime(2024, 3, 29, tzinfo=UTC)
        assert month_key(moment, fiscal_start_day=31) == month_key(moment, fiscal_start_day=28)
        assert month_key(moment, fiscal_start_day=0) == datetime(2024, 3, 1, tzinfo=UTC)
        assert clamp_start_day(99) == 28
        assert clamp_start_day(-3) == 1

    def test_timezone_moves_moment_across_month_boundary(self):
        """20:00 UTC on Mar 31 is already April 1 in India."""
        kolkata = ZoneInfo("Asia/Kolkata")
        key = month_key(datetime(2024, 3, 31, 20, 0, tzinfo=UTC), tz=kolkata)
        assert key == datetime(2024, 4, 1, tzinfo=kolkata)

    def test_naive_stays_naive(self):
        key = month_key(datetime(2024, 6, 18, 9, 0))
        assert key == datetime(2024, 6, 1)
        assert key.tzinfo is None

    @pytest.mark.parametrize("start_day", [1, 2, 15, 27, 28])
    def test_key_contains_moment(self, start_day):
        """For any start day and date, key <= d < key + 1 month."""
        moment = datetime(2023, 11, 1, 7, 45, tzinfo=UTC)
        for _ in range(500):
            start, end = month_range(moment, fiscal_start_day=start_day)
            assert start <= moment < end
            assert end == add_months(start, 1)
            moment += timedelta(hours=19, minutes=13)


class TestMonthArithmetic:
    """Tests for month shifting helpers."""

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert add_months(datetime(2023, 1, 31), 1) == datetime(2023, 2, 28)

    def test_add_months_across_year(self):
        assert add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)
        assert add_months(datetime(2024, 2, 15), -3) == datetime(2023, 11, 15)

    def test_previous_bucket(self):
        assert previous_bucket(datetime(2024, 1, 25)) == datetime(2023, 12, 25)

    def test_days_in_bucket(self):
        assert days_in_bucket(datetime(2024, 2, 1)) == 29
        assert days_in_bucket(datetime(2024, 4, 1)) == 30
        assert days_in_bucket(datetime(2024, 1, 25)) == 31

    def test_month_label(self):
        assert month_label(datetime(2024, 5, 1)) == "2024-05"
