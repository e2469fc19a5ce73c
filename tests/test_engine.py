"""
Tests for config resolution, rate calculation, overrides and limits.
"""
import itertools
import uuid
import pytest
from datetime import timedelta
from decimal import Decimal

from commissions.exceptions import AmbiguousConfigError
from commissions.models import (
    CommissionCalculation,
    CommissionConfig,
    CommissionOverride,
    CommissionTier,
)
from commissions.services.rates import LimitClamper, OverrideApplier, RateCalculator
from commissions.services.resolver import ConfigResolver
from commissions.services.types import PeriodTotals, RateResult


def _config(**kwargs):
    data = {'name': 'Config', 'calc_type': CommissionConfig.PERCENTAGE, 'default_rate': Decimal('0.03')}
    data.update(kwargs)
    return CommissionConfig(**data)


def _tier(level, low, high=None, rate='0.02', **kwargs):
    return CommissionTier(
        tier_level=level,
        min_threshold=Decimal(low),
        max_threshold=None if high is None else Decimal(high),
        rate=Decimal(rate),
        **kwargs
    )


LADDER = [
    _tier(1, '0', '10000', '0.02'),
    _tier(2, '10000', '25000', '0.03'),
    _tier(3, '25000', None, '0.04'),
]


class TestConfigResolverSelect:

    def test_no_candidates(self):
        assert ConfigResolver.select([]) is None

    def test_highest_priority_wins(self):
        low = _config(name='Low', priority=1)
        high = _config(name='High', priority=5)
        assert ConfigResolver.select([low, high]) is high

    def test_newest_start_breaks_priority_tie(self, sale_time):
        old = _config(name='Old', effective_from=sale_time - timedelta(days=30))
        new = _config(name='New', effective_from=sale_time - timedelta(days=1))
        assert ConfigResolver.select([old, new]) is new

    def test_dated_config_beats_undated(self, sale_time):
        undated = _config(name='Always')
        dated = _config(name='Spring', effective_from=sale_time - timedelta(days=1))
        assert ConfigResolver.select([undated, dated]) is dated

    def test_full_tie_is_ambiguous(self, sale_time):
        a = _config(name='A', effective_from=sale_time)
        b = _config(name='B', effective_from=sale_time)
        with pytest.raises(AmbiguousConfigError) as exc:
            ConfigResolver.select([a, b], venue_id='venue-1')
        assert set(exc.value.configs) == {a, b}
        assert 'A, B' in str(exc.value)

    def test_priority_beats_ambiguity(self, sale_time):
        a = _config(name='A', effective_from=sale_time)
        b = _config(name='B', effective_from=sale_time)
        top = _config(name='Top', priority=10)
        assert ConfigResolver.select([a, b, top]) is top

    def test_select_ignores_candidate_order(self, sale_time):
        configs = [
            _config(name='Base'),
            _config(name='Spring', effective_from=sale_time - timedelta(days=10)),
            _config(name='Promo', priority=3, effective_from=sale_time - timedelta(days=30)),
            _config(name='Late Promo', priority=3, effective_from=sale_time - timedelta(days=2)),
        ]
        winners = {ConfigResolver.select(list(order)).name for order in itertools.permutations(configs)}
        assert winners == {'Late Promo'}


@pytest.mark.django_db
class TestConfigResolverResolve:

    def test_resolves_effective_config(self, percentage_config, venue_id, staff_id, sale_time):
        assert ConfigResolver.resolve(venue_id, staff_id, '', sale_time) == percentage_config

    def test_skips_inactive_and_expired(self, percentage_config, venue_id, staff_id, sale_time):
        percentage_config.effective_to = sale_time - timedelta(days=1)
        percentage_config.save()
        CommissionConfig.objects.create(
            venue_id=venue_id, name='Paused', active=False, priority=9,
        )
        assert ConfigResolver.resolve(venue_id, staff_id, '', sale_time) is None

    def test_skips_future_and_deleted(self, percentage_config, venue_id, staff_id, sale_time):
        CommissionConfig.objects.create(
            venue_id=venue_id, name='Next Month', priority=9,
            effective_from=sale_time + timedelta(days=30),
        )
        deleted = CommissionConfig.objects.create(venue_id=venue_id, name='Gone', priority=8)
        deleted.soft_delete()
        assert ConfigResolver.resolve(venue_id, staff_id, '', sale_time) == percentage_config

    def test_resolve_is_repeatable(self, percentage_config, venue_id, staff_id, sale_time):
        CommissionConfig.objects.create(
            venue_id=venue_id, name='Weekend', priority=2,
            effective_from=sale_time - timedelta(days=1),
        )
        CommissionConfig.objects.create(venue_id=venue_id, name='House', priority=2)
        first = ConfigResolver.resolve(venue_id, staff_id, 'SERVER', sale_time)
        second = ConfigResolver.resolve(venue_id, staff_id, 'SERVER', sale_time)
        assert first == second
        assert first.name == 'Weekend'

    def test_other_venue_ignored(self, percentage_config, staff_id, sale_time):
        assert ConfigResolver.resolve(uuid.uuid4(), staff_id, '', sale_time) is None


class TestRateCalculator:

    def test_percentage(self):
        result = RateCalculator.calculate(_config(), Decimal('1000'))
        assert result.rate_applied == Decimal('0.03')
        assert result.gross_commission == Decimal('30.00')
        assert result.outcome == CommissionCalculation.CALCULATED

    def test_percentage_role_rate(self):
        config = _config(role_rates={'BARTENDER': '0.05'})
        assert RateCalculator.calculate(config, Decimal('1000'), 'bartender').gross_commission == Decimal('50.00')
        assert RateCalculator.calculate(config, Decimal('1000'), 'HOST').gross_commission == Decimal('30.00')

    def test_percentage_rounds_half_up(self):
        config = _config(default_rate=Decimal('0.025'))
        assert RateCalculator.calculate(config, Decimal('9.80')).gross_commission == Decimal('0.25')

    def test_fixed_ignores_amount(self):
        config = _config(calc_type=CommissionConfig.FIXED, default_rate=Decimal('5'))
        result = RateCalculator.calculate(config, Decimal('1000'))
        assert result.gross_commission == Decimal('5.00')

    def test_tiered_uses_pre_sale_total(self):
        config = _config(calc_type=CommissionConfig.TIERED)
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('12000'), count=3)}
        result = RateCalculator.calculate(config, Decimal('5000'), tiers=LADDER, totals=totals)
        assert result.tier_level == 2
        assert result.rate_applied == Decimal('0.03')
        assert result.gross_commission == Decimal('150.00')

    def test_tiered_first_sale_uses_lowest_tier(self):
        config = _config(calc_type=CommissionConfig.TIERED)
        result = RateCalculator.calculate(config, Decimal('50000'), tiers=LADDER, totals={})
        assert result.tier_level == 1
        assert result.gross_commission == Decimal('1000.00')

    def test_tiered_boundary_goes_up(self):
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('25000'))}
        assert RateCalculator.match_tier(LADDER, totals).tier_level == 3

    def test_tiered_gap(self):
        config = _config(calc_type=CommissionConfig.TIERED)
        tiers = [_tier(1, '1000', None, '0.05')]
        result = RateCalculator.calculate(config, Decimal('500'), tiers=tiers, totals={})
        assert result.outcome == CommissionCalculation.TIER_GAP
        assert result.gross_commission == Decimal('0')
        assert result.tier_level is None

    def test_tiered_by_quantity(self):
        config = _config(calc_type=CommissionConfig.TIERED)
        tiers = [
            _tier(1, '0', '10', '0.01', tier_type=CommissionTier.BY_QUANTITY),
            _tier(2, '10', None, '0.02', tier_type=CommissionTier.BY_QUANTITY),
        ]
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('100'), count=10)}
        result = RateCalculator.calculate(config, Decimal('100'), tiers=tiers, totals=totals)
        assert result.tier_level == 2

    def test_tiered_skips_inactive_tier(self):
        tiers = [_tier(1, '0', '100', '0.01'), _tier(2, '100', None, '0.02', active=False)]
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('500'))}
        assert RateCalculator.match_tier(tiers, totals).tier_level == 1

    def test_tiered_past_bounded_top_keeps_top_rate(self):
        config = _config(calc_type=CommissionConfig.TIERED)
        tiers = [_tier(1, '0', '10000', '0.02'), _tier(2, '10000', '25000', '0.03')]
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('31000'), count=2)}
        result = RateCalculator.calculate(config, Decimal('1000'), tiers=tiers, totals=totals)
        assert result.outcome == CommissionCalculation.CALCULATED
        assert result.tier_level == 2
        assert result.gross_commission == Decimal('30.00')

    def test_tier_rate_never_drops_as_total_grows(self):
        tiers = [_tier(1, '1000', '10000', '0.02'), _tier(2, '10000', '25000', '0.03')]
        rates = []
        for amount in ('0', '999.99', '1000', '9999.99', '10000', '24999.99', '25000', '90000'):
            match = RateCalculator.match_tier(
                tiers, {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal(amount))}
            )
            rates.append(match.rate if match else Decimal('0'))
        assert rates == sorted(rates)
        assert rates[-1] == Decimal('0.03')

    def test_milestone_reached(self):
        config = _config(calc_type=CommissionConfig.MILESTONE)
        tiers = [_tier(1, '5000', None, '0.01')]
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('4000'), count=4)}
        result = RateCalculator.calculate(config, Decimal('1500'), tiers=tiers, totals=totals)
        assert result.outcome == CommissionCalculation.CALCULATED
        assert result.milestones == [1]
        assert result.gross_commission == Decimal('55.00')

    def test_milestone_already_awarded(self):
        config = _config(calc_type=CommissionConfig.MILESTONE)
        tiers = [_tier(1, '5000', None, '0.01')]
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('4000'), count=4)}
        result = RateCalculator.calculate(
            config, Decimal('1500'), tiers=tiers, totals=totals, awarded={(1, '2025-03')},
        )
        assert result.outcome == CommissionCalculation.MILESTONE_PENDING
        assert result.gross_commission == Decimal('0')

    def test_milestone_not_crossed(self):
        config = _config(calc_type=CommissionConfig.MILESTONE)
        tiers = [_tier(1, '5000', None, '0.01')]
        totals = {'MONTHLY': PeriodTotals(bucket='2025-03', amount=Decimal('6000'), count=4)}
        result = RateCalculator.calculate(config, Decimal('100'), tiers=tiers, totals=totals)
        assert result.outcome == CommissionCalculation.MILESTONE_PENDING

    def test_milestone_crossing_two_levels(self):
        config = _config(calc_type=CommissionConfig.MILESTONE)
        tiers = [_tier(1, '1000', '2000', '0.01'), _tier(2, '2000', None, '0.02')]
        result = RateCalculator.calculate(config, Decimal('2500'), tiers=tiers, totals={})
        assert result.milestones == [1, 2]
        assert result.tier_level == 2
        assert result.gross_commission == Decimal('75.00')

    def test_manual(self):
        config = _config(calc_type=CommissionConfig.MANUAL)
        result = RateCalculator.calculate(config, Decimal('1000'))
        assert result.outcome == CommissionCalculation.MANUAL
        assert result.gross_commission == Decimal('0')


class TestOverrideApplier:

    def _result(self, gross='30.00', rate='0.03', **kwargs):
        return RateResult(
            rate_applied=Decimal(rate), gross_commission=Decimal(gross),
            outcome=CommissionCalculation.CALCULATED, **kwargs
        )

    def test_no_override(self):
        adjusted = OverrideApplier.apply(_config(), None, Decimal('1000'), self._result())
        assert adjusted.amount == Decimal('30.00')
        assert adjusted.override is None

    def test_custom_rate_wins(self):
        override = CommissionOverride(custom_rate=Decimal('0.05'))
        adjusted = OverrideApplier.apply(_config(), override, Decimal('1000'), self._result())
        assert adjusted.rate_applied == Decimal('0.05')
        assert adjusted.amount == Decimal('50.00')
        assert adjusted.override is override

    def test_exclusion_zeroes(self):
        override = CommissionOverride(exclude_from_commissions=True, custom_rate=Decimal('0.05'))
        adjusted = OverrideApplier.apply(_config(), override, Decimal('1000'), self._result())
        assert adjusted.excluded
        assert adjusted.amount == Decimal('0')

    def test_custom_rate_is_flat_for_fixed_and_tiered(self):
        override = CommissionOverride(custom_rate=Decimal('12'))
        for calc_type in (CommissionConfig.FIXED, CommissionConfig.TIERED):
            adjusted = OverrideApplier.apply(
                _config(calc_type=calc_type), override, Decimal('1000'), self._result(),
            )
            assert adjusted.amount == Decimal('12.00')

    def test_milestone_custom_rate_needs_milestone(self):
        config = _config(calc_type=CommissionConfig.MILESTONE)
        override = CommissionOverride(custom_rate=Decimal('20'))
        pending = RateResult(
            rate_applied=Decimal('0'), gross_commission=Decimal('0'),
            outcome=CommissionCalculation.MILESTONE_PENDING,
        )
        assert OverrideApplier.apply(config, override, Decimal('100'), pending).amount == Decimal('0')

        reached = self._result(gross='55.00', rate='0.01', milestones=[1])
        assert OverrideApplier.apply(config, override, Decimal('100'), reached).amount == Decimal('20.00')

    def test_override_without_rate_keeps_result(self):
        override = CommissionOverride(notes='Reviewed')
        adjusted = OverrideApplier.apply(_config(), override, Decimal('1000'), self._result())
        assert adjusted.amount == Decimal('30.00')
        assert adjusted.override is override


@pytest.mark.django_db
class TestOverrideFind:

    def test_finds_effective_override(self, percentage_config, staff_id, sale_time):
        override = CommissionOverride.objects.create(
            venue_id=percentage_config.venue_id, config=percentage_config,
            staff_id=staff_id, custom_rate=Decimal('0.05'),
        )
        assert OverrideApplier.find(percentage_config, staff_id, sale_time) == override

    def test_ignores_expired_and_other_staff(self, percentage_config, staff_id, other_staff_id, sale_time):
        CommissionOverride.objects.create(
            venue_id=percentage_config.venue_id, config=percentage_config,
            staff_id=staff_id, custom_rate=Decimal('0.05'),
            effective_to=sale_time - timedelta(days=1),
        )
        CommissionOverride.objects.create(
            venue_id=percentage_config.venue_id, config=percentage_config,
            staff_id=other_staff_id, exclude_from_commissions=True,
        )
        assert OverrideApplier.find(percentage_config, staff_id, sale_time) is None


class TestLimitClamper:

    def test_max(self):
        config = _config(max_amount=Decimal('20'))
        assert LimitClamper.clamp(config, Decimal('30')) == Decimal('20.00')

    def test_min(self):
        config = _config(min_amount=Decimal('2'))
        assert LimitClamper.clamp(config, Decimal('0.50')) == Decimal('2.00')

    def test_within_bounds(self):
        config = _config(min_amount=Decimal('1'), max_amount=Decimal('100'))
        assert LimitClamper.clamp(config, Decimal('30.004')) == Decimal('30.00')

    def test_never_negative(self):
        assert LimitClamper.clamp(_config(), Decimal('-5')) == Decimal('0.00')

    def test_fixed_without_sale_context_skips_bounds(self):
        config = _config(calc_type=CommissionConfig.FIXED, max_amount=Decimal('3'))
        assert LimitClamper.clamp(config, Decimal('5'), has_sale_context=False) == Decimal('5')
        assert LimitClamper.clamp(config, Decimal('5')) == Decimal('3.00')
