"""
Commission Service - Business logic for commission calculations and management.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone
from django.utils.module_loading import import_string

from ..exceptions import AmbiguousConfigError
from ..models import (
    CommissionCalculation,
    CommissionConfig,
    CommissionOverride,
    CommissionPayout,
    CommissionsSettings,
    CommissionTier,
    DeferredCalculation,
    MilestoneAward,
    quantize_money,
    validate_tier_set,
)
from .aggregates import SalesAggregateTracker
from .payouts import PayoutAggregator
from .rates import LimitClamper, OverrideApplier, RateCalculator
from .resolver import ConfigResolver
from .types import Sale

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

CONFIG_FIELDS = (
    'name', 'description', 'recipient', 'calc_type', 'default_rate',
    'min_amount', 'max_amount', 'role_rates', 'include_tips', 'include_discount',
    'include_tax', 'effective_from', 'effective_to', 'aggregation_period',
    'priority', 'active',
)
TIER_FIELDS = (
    'tier_level', 'tier_name', 'tier_type', 'min_threshold', 'max_threshold',
    'rate', 'tier_period', 'active',
)
OVERRIDE_FIELDS = (
    'custom_rate', 'exclude_from_commissions', 'effective_from', 'effective_to',
    'notes', 'active',
)


def _error_message(error: ValidationError) -> str:
    return '; '.join(str(m) for m in error.messages)


class CommissionService:
    """Service class for commission operations."""

    # ==================== Settings ====================

    @staticmethod
    def get_settings(venue_id) -> CommissionsSettings:
        """Get or create the venue's settings."""
        return CommissionsSettings.get_settings(venue_id)

    @staticmethod
    def update_settings(venue_id, **kwargs) -> Tuple[bool, Optional[str]]:
        """Update the venue's settings."""
        comm_settings = CommissionService.get_settings(venue_id)
        for key, value in kwargs.items():
            if hasattr(comm_settings, key):
                setattr(comm_settings, key, value)
        try:
            comm_settings.full_clean(exclude=['venue_id'])
        except ValidationError as e:
            comm_settings.refresh_from_db()
            return False, _error_message(e)
        comm_settings.save()
        return True, None

    # ==================== Configs ====================

    @staticmethod
    def get_configs(venue_id, active_only: bool = False) -> List[CommissionConfig]:
        """Get the venue's commission configs."""
        qs = CommissionConfig.objects.filter(venue_id=venue_id).order_by('-priority', 'name')
        if active_only:
            qs = qs.filter(active=True)
        return list(qs)

    @staticmethod
    def get_config(venue_id, config_id) -> Optional[CommissionConfig]:
        """Get a specific config by ID."""
        try:
            return CommissionConfig.objects.get(pk=config_id, venue_id=venue_id)
        except (CommissionConfig.DoesNotExist, ValidationError):
            return None

    @staticmethod
    def create_config(
        venue_id,
        name: str,
        calc_type: str = CommissionConfig.PERCENTAGE,
        default_rate: Decimal = ZERO,
        **kwargs
    ) -> Tuple[Optional[CommissionConfig], Optional[str]]:
        """Create a new commission config."""
        fields = {k: v for k, v in kwargs.items() if k in CONFIG_FIELDS}
        config = CommissionConfig(
            venue_id=venue_id, name=name, calc_type=calc_type,
            default_rate=default_rate, **fields
        )
        try:
            config.full_clean()
        except ValidationError as e:
            return None, _error_message(e)
        config.save()
        logger.info("Created commission config %s (%s) for venue %s", config.pk, name, venue_id)
        return config, None

    @staticmethod
    def update_config(config: CommissionConfig, **kwargs) -> Tuple[bool, Optional[str]]:
        """Update a config; rate fields are refused once calculations exist."""
        for key, value in kwargs.items():
            if key in CONFIG_FIELDS:
                setattr(config, key, value)
        try:
            config.full_clean()
        except ValidationError as e:
            config.refresh_from_db()
            return False, _error_message(e)
        config.save()
        return True, None

    @staticmethod
    def toggle_config(config: CommissionConfig) -> Tuple[bool, Optional[str]]:
        """Toggle config active status."""
        config.active = not config.active
        if config.active:
            try:
                config.full_clean()
            except ValidationError as e:
                config.active = False
                return False, _error_message(e)
        config.save(update_fields=['active', 'updated_at'])
        return config.active, None

    @staticmethod
    def delete_config(config: CommissionConfig) -> Tuple[bool, Optional[str]]:
        """Delete a commission config."""
        if config.calculations.exists():
            return False, "Cannot delete config that has been used in calculations"
        config.soft_delete()
        return True, None

    # ==================== Tiers ====================

    @staticmethod
    def get_tiers(config: CommissionConfig, active_only: bool = False) -> List[CommissionTier]:
        qs = config.tiers.order_by('tier_level')
        if active_only:
            qs = qs.filter(active=True)
        return list(qs)

    @staticmethod
    def create_tier(
        config: CommissionConfig,
        tier_level: int,
        min_threshold: Decimal,
        rate: Decimal,
        **kwargs
    ) -> Tuple[Optional[CommissionTier], Optional[str]]:
        """Add a tier to a tiered or milestone config."""
        fields = {k: v for k, v in kwargs.items() if k in TIER_FIELDS}
        tier = CommissionTier(
            venue_id=config.venue_id, config=config, tier_level=tier_level,
            min_threshold=min_threshold, rate=rate, **fields
        )
        try:
            tier.full_clean()
        except ValidationError as e:
            return None, _error_message(e)
        tier.save()
        return tier, None

    @staticmethod
    def update_tier(tier: CommissionTier, **kwargs) -> Tuple[bool, Optional[str]]:
        for key, value in kwargs.items():
            if key in TIER_FIELDS:
                setattr(tier, key, value)
        try:
            tier.full_clean()
        except ValidationError as e:
            tier.refresh_from_db()
            return False, _error_message(e)
        tier.save()
        return True, None

    @staticmethod
    def replace_tiers(
        config: CommissionConfig,
        tiers: List[Dict[str, Any]],
    ) -> Tuple[Optional[List[CommissionTier]], Optional[str]]:
        """Swap a config's whole tier table in one step."""
        try:
            with transaction.atomic():
                if config.is_rate_locked:
                    raise ValidationError(
                        "Tiers are locked once commissions were calculated for this config"
                    )
                config.tiers.all().delete()
                created = []
                for data in sorted(tiers, key=lambda d: d['tier_level']):
                    fields = {k: v for k, v in data.items() if k in TIER_FIELDS}
                    tier = CommissionTier(venue_id=config.venue_id, config=config, **fields)
                    tier.clean_fields()
                    tier.check_config()
                    created.append(tier)
                validate_tier_set(
                    [t for t in created if t.active],
                    complete=config.calc_type == CommissionConfig.TIERED,
                )
                for tier in created:
                    tier.save()
        except ValidationError as e:
            return None, _error_message(e)
        return created, None

    @staticmethod
    def delete_tier(tier: CommissionTier) -> Tuple[bool, Optional[str]]:
        config = tier.config
        if config.is_rate_locked:
            return False, "Tiers are locked once commissions were calculated for this config"
        remaining = config.tiers.filter(is_deleted=False, active=True).exclude(pk=tier.pk)
        try:
            validate_tier_set(remaining, complete=config.requires_complete_ladder)
        except ValidationError as e:
            return False, _error_message(e)
        tier.delete()
        return True, None

    # ==================== Overrides ====================

    @staticmethod
    def get_overrides(config: CommissionConfig, active_only: bool = False) -> List[CommissionOverride]:
        qs = config.overrides.all()
        if active_only:
            qs = qs.filter(active=True)
        return list(qs)

    @staticmethod
    def create_override(
        config: CommissionConfig,
        staff_id,
        **kwargs
    ) -> Tuple[Optional[CommissionOverride], Optional[str]]:
        """Create a staff-specific exception to a config."""
        fields = {k: v for k, v in kwargs.items() if k in OVERRIDE_FIELDS}
        override = CommissionOverride(
            venue_id=config.venue_id, config=config, staff_id=staff_id, **fields
        )
        try:
            override.full_clean()
        except ValidationError as e:
            return None, _error_message(e)
        override.save()
        return override, None

    @staticmethod
    def update_override(override: CommissionOverride, **kwargs) -> Tuple[bool, Optional[str]]:
        for key, value in kwargs.items():
            if key in OVERRIDE_FIELDS:
                setattr(override, key, value)
        try:
            override.full_clean()
        except ValidationError as e:
            override.refresh_from_db()
            return False, _error_message(e)
        override.save()
        return True, None

    @staticmethod
    def delete_override(override: CommissionOverride) -> Tuple[bool, Optional[str]]:
        override.soft_delete()
        return True, None

    # ==================== Commission Calculation ====================

    @staticmethod
    def lookup_staff_role(venue_id, staff_id) -> str:
        """Ask the staff directory for the staff member's current role."""
        path = getattr(settings, 'COMMISSIONS_STAFF_DIRECTORY', None)
        if not path:
            return ''
        return import_string(path)(venue_id, staff_id) or ''

    @staticmethod
    def calculate_commission(sale: Sale) -> Optional[CommissionCalculation]:
        """
        Compute and record the commission of one sale for one staff member.

        Returns the existing record if the sale was already calculated, or
        None when resolution was ambiguous and the sale has been deferred.
        """
        existing = CommissionCalculation.objects.filter(
            venue_id=sale.venue_id, sale_id=sale.sale_id, staff_id=sale.staff_id,
        ).first()
        if existing is not None:
            return existing

        role = sale.staff_role or CommissionService.lookup_staff_role(sale.venue_id, sale.staff_id)
        try:
            with transaction.atomic():
                calculation = CommissionService._calculate(sale, role)
        except AmbiguousConfigError as e:
            CommissionService._defer(sale, e)
            return None
        except IntegrityError:
            # Lost a race against a concurrent run for the same sale
            return CommissionCalculation.objects.get(
                venue_id=sale.venue_id, sale_id=sale.sale_id, staff_id=sale.staff_id,
            )

        logger.info(
            "Commission for sale %s staff %s: %s (%s)",
            sale.sale_id, sale.staff_id, calculation.final_commission, calculation.outcome,
        )
        return calculation

    @staticmethod
    def _calculate(sale: Sale, role: str) -> CommissionCalculation:
        at = sale.timestamp
        config = ConfigResolver.resolve(sale.venue_id, sale.staff_id, role, at)

        # Reads happen before this sale is credited, under the staff's row locks.
        periods = SalesAggregateTracker.tracked_periods(sale.venue_id)
        totals = SalesAggregateTracker.snapshot_and_credit(
            sale.venue_id, sale.staff_id, periods, at, sale.base_amount,
        )

        if config is None:
            return CommissionCalculation.objects.create(
                venue_id=sale.venue_id,
                sale_id=sale.sale_id,
                staff_id=sale.staff_id,
                staff_role=role,
                base_amount=quantize_money(sale.base_amount),
                outcome=CommissionCalculation.NO_CONFIG,
                sale_at=at,
            )

        base_amount = config.commissionable_amount(sale)
        tiers = list(config.tiers.filter(active=True)) if config.uses_tiers else []
        awarded = set()
        if config.calc_type == CommissionConfig.MILESTONE:
            buckets = {t.bucket for t in totals.values()}
            awarded = set(MilestoneAward.objects.filter(
                config=config, staff_id=sale.staff_id, bucket__in=buckets,
            ).values_list('tier_level', 'bucket'))

        result = RateCalculator.calculate(config, base_amount, role, tiers, totals, awarded)
        override = OverrideApplier.find(config, sale.staff_id, at)
        adjusted = OverrideApplier.apply(config, override, base_amount, result)

        if adjusted.excluded:
            gross, final = result.gross_commission, ZERO
            outcome = CommissionCalculation.EXCLUDED
        elif result.outcome == CommissionCalculation.CALCULATED or adjusted.amount > 0:
            gross = adjusted.amount
            final = LimitClamper.clamp(config, adjusted.amount)
            outcome = CommissionCalculation.CALCULATED
        else:
            gross, final = ZERO, ZERO
            outcome = result.outcome

        if result.milestones and not adjusted.excluded:
            levels = {t.tier_level: t for t in tiers}
            for level in result.milestones:
                MilestoneAward.objects.create(
                    venue_id=sale.venue_id,
                    config=config,
                    staff_id=sale.staff_id,
                    tier_level=level,
                    bucket=totals[levels[level].tier_period].bucket,
                    sale_id=sale.sale_id,
                )

        return CommissionCalculation.objects.create(
            venue_id=sale.venue_id,
            sale_id=sale.sale_id,
            staff_id=sale.staff_id,
            staff_role=role,
            config=config,
            config_name=config.name,
            tier_level=result.tier_level,
            override=adjusted.override,
            base_amount=quantize_money(base_amount),
            rate_applied=adjusted.rate_applied,
            gross_commission=quantize_money(gross),
            final_commission=final,
            outcome=outcome,
            sale_at=at,
        )

    @staticmethod
    def _defer(sale: Sale, error: AmbiguousConfigError) -> DeferredCalculation:
        deferred, _ = DeferredCalculation.all_objects.update_or_create(
            venue_id=sale.venue_id,
            sale_id=sale.sale_id,
            staff_id=sale.staff_id,
            defaults={
                'payload': sale.to_payload(),
                'error': str(error),
                'resolved': False,
                'resolved_at': None,
            },
        )
        logger.warning("Deferred commission for sale %s: %s", sale.sale_id, error)
        return deferred

    @staticmethod
    def get_deferred(venue_id) -> List[DeferredCalculation]:
        return list(DeferredCalculation.objects.filter(venue_id=venue_id, resolved=False))

    @staticmethod
    def retry_deferred(venue_id) -> Tuple[int, int]:
        """Re-run deferred sales; returns (resolved, still deferred)."""
        resolved = 0
        pending = 0
        for deferred in CommissionService.get_deferred(venue_id):
            calculation = CommissionService.calculate_commission(Sale.from_payload(deferred.payload))
            if calculation is None:
                pending += 1
                continue
            deferred.resolved = True
            deferred.resolved_at = timezone.now()
            deferred.save(update_fields=['resolved', 'resolved_at', 'updated_at'])
            resolved += 1
        return resolved, pending

    # ==================== Calculations ====================

    @staticmethod
    def get_calculations(
        venue_id,
        staff_id=None,
        config_id=None,
        outcome: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[CommissionCalculation]:
        """Get commission calculations with filters."""
        qs = CommissionCalculation.objects.filter(venue_id=venue_id).select_related('config')

        if staff_id:
            qs = qs.filter(staff_id=staff_id)
        if config_id:
            qs = qs.filter(config_id=config_id)
        if outcome:
            qs = qs.filter(outcome=outcome)
        if start_date:
            qs = qs.filter(sale_at__date__gte=start_date)
        if end_date:
            qs = qs.filter(sale_at__date__lte=end_date)

        return list(qs.order_by('-sale_at', '-created_at'))

    @staticmethod
    def get_calculation(venue_id, calculation_id) -> Optional[CommissionCalculation]:
        try:
            return CommissionCalculation.objects.select_related(
                'config', 'override'
            ).get(pk=calculation_id, venue_id=venue_id)
        except (CommissionCalculation.DoesNotExist, ValidationError):
            return None

    # ==================== Payouts ====================

    @staticmethod
    def resolve_payouts(venue_id, period_end: date) -> List[CommissionPayout]:
        """Batch entry point: build or refresh PENDING payouts for a period."""
        return PayoutAggregator.resolve(venue_id, period_end)

    approve_payout = staticmethod(PayoutAggregator.approve_payout)
    dispatch_payout = staticmethod(PayoutAggregator.dispatch_payout)
    complete_payout = staticmethod(PayoutAggregator.complete_payout)
    fail_payout = staticmethod(PayoutAggregator.fail_payout)
    cancel_payout = staticmethod(PayoutAggregator.cancel_payout)

    @staticmethod
    def get_payouts(
        venue_id,
        staff_id=None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[CommissionPayout]:
        """Get payouts with filters."""
        qs = CommissionPayout.objects.filter(venue_id=venue_id)

        if staff_id:
            qs = qs.filter(staff_id=staff_id)
        if status:
            qs = qs.filter(status=status)
        if start_date:
            qs = qs.filter(period_start__gte=start_date)
        if end_date:
            qs = qs.filter(period_end__lte=end_date)

        return list(qs.order_by('-period_end', '-created_at'))

    @staticmethod
    def get_payout(venue_id, payout_id) -> Optional[CommissionPayout]:
        """Get a specific payout."""
        try:
            return CommissionPayout.objects.prefetch_related('calculations').get(
                pk=payout_id, venue_id=venue_id
            )
        except (CommissionPayout.DoesNotExist, ValidationError):
            return None

    # ==================== Reports & Analytics ====================

    @staticmethod
    def get_staff_summary(
        venue_id,
        staff_id,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Get commission summary for a staff member."""
        qs = CommissionCalculation.objects.filter(venue_id=venue_id, staff_id=staff_id)

        if start_date:
            qs = qs.filter(sale_at__date__gte=start_date)
        if end_date:
            qs = qs.filter(sale_at__date__lte=end_date)

        totals = qs.aggregate(
            total_sales=Sum('base_amount'),
            total_commission=Sum('final_commission'),
            count=Count('id'),
        )

        payouts = CommissionPayout.objects.filter(venue_id=venue_id, staff_id=staff_id)
        paid = payouts.filter(status=CommissionPayout.PAID).aggregate(
            amount=Sum('amount'), count=Count('id'),
        )
        pending = payouts.filter(
            status__in=[CommissionPayout.PENDING, CommissionPayout.APPROVED, CommissionPayout.PROCESSING]
        ).aggregate(amount=Sum('amount'), count=Count('id'))

        return {
            'total_sales': totals['total_sales'] or ZERO,
            'total_commission': totals['total_commission'] or ZERO,
            'calculation_count': totals['count'] or 0,
            'pending_amount': pending['amount'] or ZERO,
            'pending_count': pending['count'] or 0,
            'paid_amount': paid['amount'] or ZERO,
            'paid_count': paid['count'] or 0,
        }

    @staticmethod
    def get_stats(
        venue_id,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Get dashboard statistics."""
        if not start_date:
            start_date = timezone.localdate().replace(day=1)
        if not end_date:
            end_date = timezone.localdate()

        calc_qs = CommissionCalculation.objects.filter(
            venue_id=venue_id,
            sale_at__date__gte=start_date,
            sale_at__date__lte=end_date,
        )
        earning = calc_qs.filter(final_commission__gt=0)
        calc_stats = earning.aggregate(
            total=Sum('final_commission'),
            average=Avg('final_commission'),
            staff=Count('staff_id', distinct=True),
        )

        by_outcome = {
            row['outcome']: {'count': row['count'], 'total': row['total'] or ZERO}
            for row in calc_qs.values('outcome').annotate(
                count=Count('id'), total=Sum('final_commission')
            ).order_by('outcome')
        }

        top_earners = (
            earning.values('staff_id')
            .annotate(total_earned=Sum('final_commission'), calculation_count=Count('id'))
            .order_by('-total_earned')[:5]
        )

        payout_stats = CommissionPayout.objects.filter(venue_id=venue_id).aggregate(
            total_paid=Sum('amount', filter=Q(status=CommissionPayout.PAID)),
            total_pending=Sum('amount', filter=Q(status=CommissionPayout.PENDING)),
            total_approved=Sum('amount', filter=Q(status=CommissionPayout.APPROVED)),
        )

        return {
            'period_start': start_date,
            'period_end': end_date,
            'total_commission': calc_stats['total'] or ZERO,
            'average_commission': quantize_money(calc_stats['average'] or ZERO),
            'staff_with_commissions': calc_stats['staff'] or 0,
            'calculation_count': calc_qs.count(),
            'by_outcome': by_outcome,
            'deferred_count': DeferredCalculation.objects.filter(
                venue_id=venue_id, resolved=False
            ).count(),
            'top_earners': list(top_earners),
            'total_paid': payout_stats['total_paid'] or ZERO,
            'total_pending': payout_stats['total_pending'] or ZERO,
            'total_approved': payout_stats['total_approved'] or ZERO,
        }

    @staticmethod
    def get_payout_stats(venue_id) -> Dict[str, Any]:
        qs = CommissionPayout.objects.filter(venue_id=venue_id).exclude(
            status=CommissionPayout.CANCELLED
        )
        stats = qs.aggregate(
            total_paid=Sum('amount', filter=Q(status=CommissionPayout.PAID)),
            total_pending=Sum('amount', filter=Q(status__in=[
                CommissionPayout.PENDING, CommissionPayout.APPROVED, CommissionPayout.PROCESSING,
            ])),
            payout_count=Count('id'),
            average=Avg('amount'),
        )
        return {
            'total_paid': stats['total_paid'] or ZERO,
            'total_pending': stats['total_pending'] or ZERO,
            'payout_count': stats['payout_count'] or 0,
            'average_payout': quantize_money(stats['average'] or ZERO),
        }

    @staticmethod
    def get_staff_tier_progress(
        config: CommissionConfig,
        staff_id,
        at=None,
    ) -> Optional[Dict[str, Any]]:
        """Where a staff member stands on a tiered config's ladder right now."""
        if not config.uses_tiers:
            return None
        tiers = CommissionService.get_tiers(config, active_only=True)
        if not tiers:
            return None

        at = at or timezone.now()
        periods = sorted({t.tier_period for t in tiers})
        totals = SalesAggregateTracker.snapshot(config.venue_id, staff_id, periods, at)

        # The first tier's period and measure drive the progress bar
        lead = tiers[0]
        lead_totals = totals[lead.tier_period]
        current_value = lead.measure(lead_totals.amount, lead_totals.count)

        current = RateCalculator.match_tier(tiers, totals)
        higher = [t for t in tiers if current is None or t.tier_level > current.tier_level]
        upcoming = higher[0] if higher else None

        if upcoming is None:
            progress = Decimal('100')
        else:
            floor = current.min_threshold if current is not None else ZERO
            span = upcoming.min_threshold - floor
            progress = Decimal('100') if span <= 0 else (current_value - floor) / span * 100
            progress = min(max(progress, ZERO), Decimal('100'))

        return {
            'staff_id': staff_id,
            'current_value': current_value,
            'current_tier': current.tier_level if current else None,
            'next_tier': upcoming.tier_level if upcoming else None,
            'progress_to_next': progress.quantize(Decimal('0.01')),
            'tiers': [
                {
                    'level': t.tier_level,
                    'name': t.tier_name,
                    'min_threshold': t.min_threshold,
                    'rate': t.rate,
                    'achieved': current_value >= t.min_threshold,
                }
                for t in tiers
            ],
        }
