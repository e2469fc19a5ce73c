"""
Rate calculation, staff overrides and commission limits.

Everything here is pure given its inputs: the resolved config, its tiers,
the staff's pre-sale period totals and the override in force. Persistence
is handled by CommissionService.
"""
from decimal import Decimal
from typing import Dict, Iterable, Optional, Set, Tuple

from ..models import CommissionCalculation, CommissionConfig, CommissionOverride, quantize_money
from .types import OverrideResult, PeriodTotals, RateResult

ZERO = Decimal('0')


class RateCalculator:
    """Compute (rate_applied, tier_level, gross_commission) for a config."""

    @classmethod
    def calculate(
        cls,
        config: CommissionConfig,
        base_amount: Decimal,
        role: str = '',
        tiers: Iterable = (),
        totals: Optional[Dict[str, PeriodTotals]] = None,
        awarded: Optional[Set[Tuple[int, str]]] = None,
    ) -> RateResult:
        base_amount = Decimal(base_amount)
        totals = totals or {}
        calc_type = config.calc_type

        if calc_type == CommissionConfig.PERCENTAGE:
            rate = config.rate_for_role(role)
            return RateResult(
                rate_applied=rate,
                gross_commission=quantize_money(base_amount * rate),
                outcome=CommissionCalculation.CALCULATED,
            )

        if calc_type == CommissionConfig.FIXED:
            return RateResult(
                rate_applied=config.default_rate,
                gross_commission=quantize_money(config.default_rate),
                outcome=CommissionCalculation.CALCULATED,
            )

        if calc_type == CommissionConfig.TIERED:
            return cls._tiered(base_amount, tiers, totals)

        if calc_type == CommissionConfig.MILESTONE:
            return cls._milestone(base_amount, tiers, totals, awarded or set())

        return RateResult(
            rate_applied=ZERO,
            gross_commission=ZERO,
            outcome=CommissionCalculation.MANUAL,
        )

    @staticmethod
    def match_tier(tiers, totals):
        """
        Highest active tier whose minimum the staff's period total has reached.
        Totals past a bounded top tier stay on that tier; only totals below the
        first tier match nothing.
        """
        matched = None
        for tier in sorted(tiers, key=lambda t: t.tier_level):
            if not tier.active:
                continue
            period_totals = totals.get(tier.tier_period) or PeriodTotals(bucket='')
            if tier.reached_by(tier.measure(period_totals.amount, period_totals.count)):
                matched = tier
        return matched

    @classmethod
    def _tiered(cls, base_amount, tiers, totals):
        tier = cls.match_tier(tiers, totals)
        if tier is None:
            return RateResult(
                rate_applied=ZERO,
                gross_commission=ZERO,
                outcome=CommissionCalculation.TIER_GAP,
            )
        return RateResult(
            rate_applied=tier.rate,
            gross_commission=quantize_money(base_amount * tier.rate),
            outcome=CommissionCalculation.CALCULATED,
            tier_level=tier.tier_level,
        )

    @staticmethod
    def _milestone(base_amount, tiers, totals, awarded):
        bonus = ZERO
        reached = []
        for tier in sorted(tiers, key=lambda t: t.tier_level):
            if not tier.active:
                continue
            period_totals = totals.get(tier.tier_period) or PeriodTotals(bucket='')
            before = tier.measure(period_totals.amount, period_totals.count)
            after = tier.measure(period_totals.amount + base_amount, period_totals.count + 1)
            if not before < tier.min_threshold <= after:
                continue
            if (tier.tier_level, period_totals.bucket) in awarded:
                continue
            reached.append(tier)
            bonus += tier.rate * (period_totals.amount + base_amount)

        if not reached:
            return RateResult(
                rate_applied=ZERO,
                gross_commission=ZERO,
                outcome=CommissionCalculation.MILESTONE_PENDING,
            )
        top = reached[-1]
        return RateResult(
            rate_applied=top.rate,
            gross_commission=quantize_money(bonus),
            outcome=CommissionCalculation.CALCULATED,
            tier_level=top.tier_level,
            milestones=[t.tier_level for t in reached],
        )


class OverrideApplier:
    """Apply a staff member's exclusion or custom rate."""

    @staticmethod
    def find(config: CommissionConfig, staff_id, at) -> Optional[CommissionOverride]:
        overrides = config.overrides.filter(
            staff_id=staff_id, active=True,
        ).order_by('-effective_from', '-created_at')
        for override in overrides:
            if override.is_effective_at(at):
                return override
        return None

    @staticmethod
    def apply(
        config: CommissionConfig,
        override: Optional[CommissionOverride],
        base_amount: Decimal,
        result: RateResult,
    ) -> OverrideResult:
        if override is None:
            return OverrideResult(amount=result.gross_commission, rate_applied=result.rate_applied)

        if override.exclude_from_commissions:
            return OverrideResult(
                amount=ZERO, rate_applied=ZERO, excluded=True, override=override,
            )

        custom = override.custom_rate
        if custom is None:
            return OverrideResult(
                amount=result.gross_commission,
                rate_applied=result.rate_applied,
                override=override,
            )

        calc_type = config.calc_type
        if calc_type == CommissionConfig.PERCENTAGE:
            amount = quantize_money(Decimal(base_amount) * custom)
        elif calc_type in (CommissionConfig.FIXED, CommissionConfig.TIERED):
            amount = quantize_money(custom)
        elif calc_type == CommissionConfig.MILESTONE and result.milestones:
            amount = quantize_money(custom)
        else:
            return OverrideResult(
                amount=result.gross_commission,
                rate_applied=result.rate_applied,
                override=override,
            )
        return OverrideResult(amount=amount, rate_applied=custom, override=override)


class LimitClamper:
    """Clamp a commission to the config's bounds, never below zero."""

    @staticmethod
    def clamp(config: CommissionConfig, amount: Decimal, has_sale_context: bool = True) -> Decimal:
        """
        The calculation pipeline always clamps with a sale in hand.
        ``has_sale_context=False`` is for direct callers quoting a FIXED amount
        outside any sale; the bounds are then skipped and only the zero floor
        applies.
        """
        amount = Decimal(amount)
        if config.calc_type == CommissionConfig.FIXED and not has_sale_context:
            return quantize_money(max(amount, ZERO))
        if config.min_amount is not None and amount < config.min_amount:
            amount = config.min_amount
        if config.max_amount is not None and amount > config.max_amount:
            amount = config.max_amount
        return quantize_money(max(amount, ZERO))
