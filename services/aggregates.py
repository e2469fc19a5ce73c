"""
Running staff sales totals used for tier and milestone lookups.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from ..models import CommissionConfig, CommissionTier, StaffSalesAggregate
from ..periods import period_key
from .types import PeriodTotals

logger = logging.getLogger(__name__)


class SalesAggregateTracker:
    """Per staff, per period-bucket sale totals."""

    @staticmethod
    def tracked_periods(venue_id) -> list:
        """Tier periods referenced by any live tiered or milestone config."""
        periods = CommissionTier.objects.filter(
            venue_id=venue_id,
            active=True,
            config__active=True,
            config__is_deleted=False,
            config__calc_type__in=CommissionConfig.TIER_CALC_TYPES,
        ).values_list('tier_period', flat=True).distinct()
        return sorted(set(periods))

    @staticmethod
    def snapshot(venue_id, staff_id, periods: Iterable[str], at) -> Dict[str, PeriodTotals]:
        """Current totals without locking or crediting anything."""
        totals = {}
        for period in periods:
            bucket = period_key(period, at)
            row = StaffSalesAggregate.objects.filter(
                venue_id=venue_id, staff_id=staff_id, period=period, bucket=bucket,
            ).first()
            if row is None:
                totals[period] = PeriodTotals(bucket=bucket)
            else:
                totals[period] = PeriodTotals(
                    bucket=bucket, amount=row.total_amount, count=row.sale_count,
                )
        return totals

    @staticmethod
    def snapshot_and_credit(
        venue_id, staff_id, periods: Iterable[str], at, amount: Decimal,
    ) -> Dict[str, PeriodTotals]:
        """
        Lock the staff's bucket rows, return their totals as they stood before
        this sale, then add the sale. Callers that need the lock to cover their
        own writes must already be inside ``transaction.atomic``.
        """
        amount = Decimal(amount)
        totals = {}
        with transaction.atomic():
            # Fixed lock order keeps concurrent sales of one staff deadlock free.
            for period in sorted(set(periods)):
                bucket = period_key(period, at)
                row, _ = StaffSalesAggregate.objects.get_or_create(
                    venue_id=venue_id, staff_id=staff_id, period=period, bucket=bucket,
                )
                row = StaffSalesAggregate.objects.select_for_update().get(pk=row.pk)
                totals[period] = PeriodTotals(
                    bucket=bucket, amount=row.total_amount, count=row.sale_count,
                )
                StaffSalesAggregate.objects.filter(pk=row.pk).update(
                    total_amount=F('total_amount') + amount,
                    sale_count=F('sale_count') + 1,
                    updated_at=timezone.now(),
                )
                logger.debug(
                    "Credited %s to staff=%s %s/%s (was %s over %s sales)",
                    amount, staff_id, period, bucket, row.total_amount, row.sale_count,
                )
        return totals
