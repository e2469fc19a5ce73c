"""
Tests for running staff sales totals.
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from commissions.models import CommissionConfig, CommissionTier, StaffSalesAggregate
from commissions.periods import MONTHLY, WEEKLY
from commissions.services.aggregates import SalesAggregateTracker


@pytest.mark.django_db
class TestTrackedPeriods:

    def test_nothing_tracked_without_tiers(self, percentage_config, venue_id):
        assert SalesAggregateTracker.tracked_periods(venue_id) == []

    def test_tier_periods_of_live_configs(self, tiered_config, venue_id):
        CommissionTier.objects.create(
            venue_id=venue_id,
            config=CommissionConfig.objects.create(
                venue_id=venue_id, name='Weekly Sprint', calc_type=CommissionConfig.MILESTONE,
                priority=1,
            ),
            tier_level=1,
            min_threshold=Decimal('500'),
            rate=Decimal('0.01'),
            tier_period=WEEKLY,
        )
        assert SalesAggregateTracker.tracked_periods(venue_id) == [MONTHLY, WEEKLY]

    def test_inactive_config_not_tracked(self, tiered_config, venue_id):
        tiered_config.active = False
        tiered_config.save()
        assert SalesAggregateTracker.tracked_periods(venue_id) == []


@pytest.mark.django_db
class TestSnapshotAndCredit:

    def test_returns_totals_before_sale(self, venue_id, staff_id, sale_time):
        first = SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [MONTHLY], sale_time, Decimal('250.00'),
        )
        assert first[MONTHLY].amount == Decimal('0')
        assert first[MONTHLY].count == 0
        assert first[MONTHLY].bucket == '2025-03'

        second = SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [MONTHLY], sale_time, Decimal('100.00'),
        )
        assert second[MONTHLY].amount == Decimal('250.00')
        assert second[MONTHLY].count == 1

        row = StaffSalesAggregate.objects.get(venue_id=venue_id, staff_id=staff_id, period=MONTHLY)
        assert row.total_amount == Decimal('350.00')
        assert row.sale_count == 2

    def test_buckets_are_separate(self, venue_id, staff_id, sale_time):
        SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [MONTHLY], sale_time, Decimal('100.00'),
        )
        next_month = SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [MONTHLY], sale_time + timedelta(days=31), Decimal('100.00'),
        )
        assert next_month[MONTHLY].bucket == '2025-04'
        assert next_month[MONTHLY].amount == Decimal('0')

    def test_staff_are_separate(self, venue_id, staff_id, other_staff_id, sale_time):
        SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [MONTHLY], sale_time, Decimal('100.00'),
        )
        other = SalesAggregateTracker.snapshot_and_credit(
            venue_id, other_staff_id, [MONTHLY], sale_time, Decimal('100.00'),
        )
        assert other[MONTHLY].amount == Decimal('0')

    def test_credits_every_period(self, venue_id, staff_id, sale_time):
        SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [WEEKLY, MONTHLY], sale_time, Decimal('80.00'),
        )
        assert StaffSalesAggregate.objects.filter(venue_id=venue_id, staff_id=staff_id).count() == 2


@pytest.mark.django_db
class TestSnapshot:

    def test_snapshot_does_not_write(self, venue_id, staff_id, sale_time):
        totals = SalesAggregateTracker.snapshot(venue_id, staff_id, [MONTHLY], sale_time)
        assert totals[MONTHLY].amount == Decimal('0')
        assert not StaffSalesAggregate.objects.exists()

    def test_snapshot_reads_current_totals(self, venue_id, staff_id, sale_time):
        SalesAggregateTracker.snapshot_and_credit(
            venue_id, staff_id, [MONTHLY], sale_time, Decimal('420.00'),
        )
        totals = SalesAggregateTracker.snapshot(venue_id, staff_id, [MONTHLY], sale_time)
        assert totals[MONTHLY].amount == Decimal('420.00')
        assert totals[MONTHLY].count == 1
