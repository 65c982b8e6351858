"""
Unit tests for datetime utilities.

Tests business timezone handling and rebate date bucketing.
"""

import pytest
from datetime import date, datetime, timezone, timedelta

from utils.datetime_utils import BUSINESS_TZ, business_now, ensure_business_tz, month_bounds, to_rebate_date


class TestBusinessTimezone:
    """Test business timezone utilities."""

    def test_business_now_returns_timezone_aware_datetime(self):
        now = business_now()

        assert now.tzinfo is not None
        assert now.tzinfo == BUSINESS_TZ

    def test_business_tz_is_utc_plus_8(self):
        assert BUSINESS_TZ.utcoffset(None).total_seconds() == 8 * 3600


class TestEnsureBusinessTz:
    """Test ensure_business_tz function."""

    def test_naive_datetime_is_assumed_local(self):
        result = ensure_business_tz(datetime(2024, 1, 1, 10, 0, 0))

        assert result.tzinfo == BUSINESS_TZ
        assert result.hour == 10

    def test_utc_datetime_is_converted(self):
        result = ensure_business_tz(datetime(2024, 1, 1, 2, 0, 0, tzinfo=timezone.utc))

        assert result.tzinfo == BUSINESS_TZ
        assert result.hour == 10

    def test_none(self):
        assert ensure_business_tz(None) is None


class TestToRebateDate:
    """Test rebate date bucketing."""

    def test_early_morning_local_time_is_same_local_day(self):
        """00:30 local on the 16th is still the 15th in UTC, but buckets to the 16th."""
        utc_value = datetime(2024, 3, 15, 16, 30, tzinfo=timezone.utc)

        assert to_rebate_date(utc_value) == date(2024, 3, 16)

    def test_local_datetime(self):
        assert to_rebate_date(datetime(2024, 3, 15, 23, 59, tzinfo=BUSINESS_TZ)) == date(2024, 3, 15)

    def test_other_timezone(self):
        utc_minus_2 = timezone(timedelta(hours=-2))
        assert to_rebate_date(datetime(2024, 3, 15, 20, 0, tzinfo=utc_minus_2)) == date(2024, 3, 16)

    def test_date_passes_through(self):
        assert to_rebate_date(date(2024, 3, 15)) == date(2024, 3, 15)


class TestMonthBounds:
    """Test month_bounds function."""

    def test_regular_month(self):
        assert month_bounds(4, 2024) == (date(2024, 4, 1), date(2024, 4, 30))

    def test_leap_february(self):
        assert month_bounds(2, 2024) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_december(self):
        assert month_bounds(12, 2024) == (date(2024, 12, 1), date(2024, 12, 31))

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, month):
        with pytest.raises(ValueError):
            month_bounds(month, 2024)
