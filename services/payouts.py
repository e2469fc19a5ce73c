"""
Payout aggregation and the payout state machine.

    PENDING -> APPROVED -> PROCESSING -> PAID | FAILED
    PENDING | APPROVED -> CANCELLED

A payout's amount is always recomputed from its source calculations, so
resolving the same period twice yields the same amounts.
"""
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidTransitionError
from ..models import (
    CommissionCalculation,
    CommissionConfig,
    CommissionPayout,
    CommissionsSettings,
    quantize_money,
)
from ..periods import period_bounds
from .dispatch import get_payment_dispatcher

logger = logging.getLogger(__name__)


class PayoutAggregator:
    """Bucket calculations into payouts and move payouts through their states."""

    # ==================== Aggregation ====================

    @classmethod
    def resolve(cls, venue_id, period_end: date) -> List[CommissionPayout]:
        """Create or recompute PENDING payouts for the periods holding ``period_end``."""
        with transaction.atomic():
            settings = CommissionsSettings.get_settings(venue_id)
            cadences = CommissionConfig.all_objects.filter(
                venue_id=venue_id, calculations__isnull=False,
            ).values_list('aggregation_period', flat=True).distinct()

            payouts = []
            for cadence in sorted(set(cadences)):
                start, end = period_bounds(cadence, period_end)
                calculations = CommissionCalculation.objects.filter(
                    venue_id=venue_id,
                    config__aggregation_period=cadence,
                    sale_at__date__gte=start,
                    sale_at__date__lte=end,
                ).order_by('sale_at', 'created_at')

                by_staff = defaultdict(list)
                for calc in calculations:
                    by_staff[calc.staff_id].append(calc)

                for staff_id in sorted(by_staff, key=str):
                    payout = cls._resolve_staff(
                        venue_id, staff_id, cadence, start, end, by_staff[staff_id], settings,
                    )
                    if payout is not None:
                        payouts.append(payout)
        return payouts

    @staticmethod
    def _resolve_staff(venue_id, staff_id, cadence, start, end, calculations, settings):
        pending = CommissionPayout.objects.select_for_update().filter(
            venue_id=venue_id, staff_id=staff_id, period=cadence,
            period_start=start, status=CommissionPayout.PENDING,
        ).first()

        Link = CommissionPayout.calculations.through
        claimed = Link.objects.filter(
            commissioncalculation_id__in=[c.pk for c in calculations],
            commissionpayout__status__in=CommissionPayout.CLAIMING_STATUSES,
            commissionpayout__is_deleted=False,
        )
        if pending is not None:
            claimed = claimed.exclude(commissionpayout_id=pending.pk)
        claimed_ids = set(claimed.values_list('commissioncalculation_id', flat=True))

        eligible = [c for c in calculations if c.pk not in claimed_ids]
        if not eligible:
            return None

        amount = quantize_money(sum((c.final_commission for c in eligible), Decimal('0')))
        minimum = settings.minimum_payout_amount
        if minimum > 0 and amount < minimum:
            logger.info(
                "Skipping payout for staff %s %s %s: %s below minimum %s",
                staff_id, cadence, start, amount, minimum,
            )
            return None

        if pending is None:
            pending = CommissionPayout.objects.create(
                venue_id=venue_id,
                staff_id=staff_id,
                period=cadence,
                period_start=start,
                period_end=end,
                amount=amount,
                calculation_count=len(eligible),
                payment_method=settings.default_payment_method,
                status=CommissionPayout.PENDING,
            )
            logger.info(
                "Created payout %s for staff %s: %s over %s calculations",
                pending.reference, staff_id, amount, len(eligible),
            )
        else:
            pending.amount = amount
            pending.calculation_count = len(eligible)
            pending.save(update_fields=['amount', 'calculation_count', 'updated_at'])
            logger.info("Recomputed payout %s for staff %s: %s", pending.reference, staff_id, amount)

        pending.calculations.set(eligible)
        return pending

    # ==================== State machine ====================

    @staticmethod
    def approve_payout(
        payout: CommissionPayout,
        approved_by_id=None,
    ) -> Tuple[bool, Optional[str]]:
        """Authorize a pending payout."""
        try:
            payout.transition_to(CommissionPayout.APPROVED)
        except InvalidTransitionError as e:
            return False, str(e)

        payout.approved_by_id = approved_by_id
        payout.approved_at = timezone.now()
        payout.save(update_fields=['status', 'approved_by_id', 'approved_at', 'updated_at'])
        logger.info("Payout %s approved", payout.reference)
        return True, None

    @staticmethod
    def dispatch_payout(
        payout: CommissionPayout,
        payment_method: str = '',
        dispatcher=None,
    ) -> Tuple[bool, Optional[str]]:
        """Start the payment attempt for an approved payout."""
        try:
            payout.transition_to(CommissionPayout.PROCESSING)
        except InvalidTransitionError as e:
            return False, str(e)

        if payment_method:
            payout.payment_method = payment_method
        payout.processed_at = timezone.now()
        payout.save(update_fields=['status', 'payment_method', 'processed_at', 'updated_at'])

        dispatcher = dispatcher or get_payment_dispatcher()
        try:
            dispatcher.dispatch(payout)
        except Exception as e:
            logger.exception("Dispatch of payout %s failed", payout.reference)
            PayoutAggregator.fail_payout(payout, str(e))
            return False, str(e)

        logger.info("Payout %s dispatched via %s", payout.reference, payout.payment_method)
        return True, None

    @staticmethod
    def complete_payout(
        payout: CommissionPayout,
        payment_reference: str = '',
    ) -> Tuple[bool, Optional[str]]:
        """Record a successful payment."""
        try:
            payout.transition_to(CommissionPayout.PAID)
        except InvalidTransitionError as e:
            return False, str(e)

        if payment_reference:
            payout.payment_reference = payment_reference
        payout.paid_at = timezone.now()
        payout.save(update_fields=['status', 'payment_reference', 'paid_at', 'updated_at'])
        logger.info("Payout %s paid", payout.reference)
        return True, None

    @staticmethod
    def fail_payout(
        payout: CommissionPayout,
        reason: str = '',
    ) -> Tuple[bool, Optional[str]]:
        """Record a failed payment; retrying means a new payout cycle."""
        try:
            payout.transition_to(CommissionPayout.FAILED)
        except InvalidTransitionError as e:
            return False, str(e)

        payout.failure_reason = reason
        payout.save(update_fields=['status', 'failure_reason', 'updated_at'])
        logger.warning("Payout %s failed: %s", payout.reference, reason)
        return True, None

    @staticmethod
    def cancel_payout(
        payout: CommissionPayout,
        reason: str = '',
    ) -> Tuple[bool, Optional[str]]:
        """Cancel a payout that has not started processing."""
        try:
            payout.transition_to(CommissionPayout.CANCELLED)
        except InvalidTransitionError as e:
            return False, str(e)

        if reason:
            payout.notes = f"{payout.notes}\nCancellation reason: {reason}".strip()
        payout.save(update_fields=['status', 'notes', 'updated_at'])
        logger.info("Payout %s cancelled", payout.reference)
        return True, None
