"""
Tests for period bucketing.
"""
import pytest
from datetime import date, datetime, timezone as dt_timezone

from django.utils import timezone

from commissions.periods import (
    BIWEEKLY,
    DAILY,
    MONTHLY,
    QUARTERLY,
    WEEKLY,
    YEARLY,
    local_day,
    period_bounds,
    period_key,
)


class TestPeriodKey:

    def test_daily(self):
        assert period_key(DAILY, date(2025, 3, 14)) == '2025-03-14'

    def test_weekly_uses_iso_year(self):
        # Monday 2024-12-30 belongs to ISO week 1 of 2025
        assert period_key(WEEKLY, date(2024, 12, 30)) == '2025-W01'
        assert period_key(WEEKLY, date(2025, 3, 14)) == '2025-W11'

    def test_monthly(self):
        assert period_key(MONTHLY, date(2025, 3, 1)) == '2025-03'

    def test_quarterly(self):
        assert period_key(QUARTERLY, date(2025, 5, 5)) == '2025-Q2'
        assert period_key(QUARTERLY, date(2025, 12, 31)) == '2025-Q4'

    def test_yearly(self):
        assert period_key(YEARLY, date(2025, 7, 1)) == '2025'

    def test_biweekly_counts_from_anchor(self):
        assert period_key(BIWEEKLY, date(2024, 1, 1)) == 'B0'
        assert period_key(BIWEEKLY, date(2024, 1, 14)) == 'B0'
        assert period_key(BIWEEKLY, date(2024, 1, 15)) == 'B1'
        assert period_key(BIWEEKLY, date(2023, 12, 31)) == 'B-1'

    def test_biweekly_anchor_setting(self, settings):
        settings.COMMISSIONS_BIWEEKLY_ANCHOR = '2024-01-08'
        assert period_key(BIWEEKLY, date(2024, 1, 7)) == 'B-1'
        assert period_key(BIWEEKLY, date(2024, 1, 8)) == 'B0'

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_key('HOURLY', date(2025, 1, 1))


class TestPeriodBounds:

    def test_weekly_starts_monday(self):
        assert period_bounds(WEEKLY, date(2025, 3, 14)) == (date(2025, 3, 10), date(2025, 3, 16))

    def test_biweekly(self):
        assert period_bounds(BIWEEKLY, date(2024, 1, 20)) == (date(2024, 1, 15), date(2024, 1, 28))

    def test_monthly_leap_year(self):
        assert period_bounds(MONTHLY, date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_quarterly(self):
        assert period_bounds(QUARTERLY, date(2025, 5, 5)) == (date(2025, 4, 1), date(2025, 6, 30))

    def test_yearly(self):
        assert period_bounds(YEARLY, date(2025, 5, 5)) == (date(2025, 1, 1), date(2025, 12, 31))

    def test_key_and_bounds_agree(self):
        start, end = period_bounds(BIWEEKLY, date(2025, 3, 14))
        assert period_key(BIWEEKLY, start) == period_key(BIWEEKLY, end)


class TestLocalDay:

    def test_aware_datetime_uses_current_timezone(self):
        late_utc = datetime(2025, 1, 31, 23, 30, tzinfo=dt_timezone.utc)
        with timezone.override('Europe/Madrid'):
            assert local_day(late_utc) == date(2025, 2, 1)
            assert period_key(MONTHLY, late_utc) == '2025-02'

    def test_date_passes_through(self):
        assert local_day(date(2025, 1, 31)) == date(2025, 1, 31)
