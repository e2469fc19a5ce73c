"""Commissions module views."""

from functools import wraps

from django.shortcuts import get_object_or_404
from django.http import Http404, JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .forms import (
    CommissionConfigForm,
    CommissionOverrideForm,
    CommissionsSettingsForm,
    CommissionTierForm,
    DateRangeForm,
    PayoutProcessForm,
    PayoutResolveForm,
    SaleForm,
)
from .models import (
    CommissionCalculation,
    CommissionConfig,
    CommissionOverride,
    CommissionPayout,
    CommissionTier,
)
from .services import CommissionService, Sale


def _venue(request):
    return request.session.get('venue_id')


def _employee_id(request):
    return request.session.get('local_user_id')


def venue_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not _venue(request):
            return JsonResponse({'success': False, 'error': 'No venue selected'}, status=400)
        try:
            return view(request, *args, **kwargs)
        except Http404 as e:
            return JsonResponse({'success': False, 'error': str(e)}, status=404)
    return wrapper


# =============================================================================
# Serializers
# =============================================================================

def _config_data(config):
    return {
        'id': config.pk,
        'name': config.name,
        'description': config.description,
        'recipient': config.recipient,
        'calc_type': config.calc_type,
        'default_rate': config.default_rate,
        'min_amount': config.min_amount,
        'max_amount': config.max_amount,
        'role_rates': config.role_rates,
        'include_tips': config.include_tips,
        'include_discount': config.include_discount,
        'include_tax': config.include_tax,
        'effective_from': config.effective_from,
        'effective_to': config.effective_to,
        'aggregation_period': config.aggregation_period,
        'priority': config.priority,
        'active': config.active,
    }


def _tier_data(tier):
    return {
        'id': tier.pk,
        'tier_level': tier.tier_level,
        'tier_name': tier.tier_name,
        'tier_type': tier.tier_type,
        'min_threshold': tier.min_threshold,
        'max_threshold': tier.max_threshold,
        'rate': tier.rate,
        'tier_period': tier.tier_period,
        'active': tier.active,
    }


def _override_data(override):
    return {
        'id': override.pk,
        'staff_id': override.staff_id,
        'custom_rate': override.custom_rate,
        'exclude_from_commissions': override.exclude_from_commissions,
        'effective_from': override.effective_from,
        'effective_to': override.effective_to,
        'notes': override.notes,
        'active': override.active,
    }


def _calculation_data(calc):
    return {
        'id': calc.pk,
        'sale_id': calc.sale_id,
        'staff_id': calc.staff_id,
        'staff_role': calc.staff_role,
        'config_id': calc.config_id,
        'config_name': calc.config_name,
        'tier_level': calc.tier_level,
        'override_id': calc.override_id,
        'base_amount': calc.base_amount,
        'rate_applied': calc.rate_applied,
        'gross_commission': calc.gross_commission,
        'final_commission': calc.final_commission,
        'outcome': calc.outcome,
        'sale_at': calc.sale_at,
        'created_at': calc.created_at,
    }


def _payout_data(payout):
    return {
        'id': payout.pk,
        'reference': payout.reference,
        'staff_id': payout.staff_id,
        'period': payout.period,
        'period_start': payout.period_start,
        'period_end': payout.period_end,
        'amount': payout.amount,
        'calculation_count': payout.calculation_count,
        'status': payout.status,
        'payment_method': payout.payment_method,
        'payment_reference': payout.payment_reference,
        'approved_at': payout.approved_at,
        'processed_at': payout.processed_at,
        'paid_at': payout.paid_at,
        'failure_reason': payout.failure_reason,
    }


# =============================================================================
# Dashboard
# =============================================================================

@require_GET
@venue_required
def dashboard(request):
    dates = DateRangeForm(request.GET)
    if not dates.is_valid():
        return JsonResponse({'success': False, 'errors': dates.errors.get_json_data()}, status=400)
    stats = CommissionService.get_stats(
        _venue(request),
        start_date=dates.cleaned_data['start_date'],
        end_date=dates.cleaned_data['end_date'],
    )
    stats['payouts'] = CommissionService.get_payout_stats(_venue(request))
    return JsonResponse(stats)


# =============================================================================
# Calculations
# =============================================================================

@require_GET
@venue_required
def calculation_list(request):
    dates = DateRangeForm(request.GET)
    if not dates.is_valid():
        return JsonResponse({'success': False, 'errors': dates.errors.get_json_data()}, status=400)
    calculations = CommissionService.get_calculations(
        _venue(request),
        staff_id=request.GET.get('staff_id') or None,
        config_id=request.GET.get('config_id') or None,
        outcome=request.GET.get('outcome') or None,
        start_date=dates.cleaned_data['start_date'],
        end_date=dates.cleaned_data['end_date'],
    )
    return JsonResponse({'calculations': [_calculation_data(c) for c in calculations]})


@require_GET
@venue_required
def calculation_detail(request, pk):
    calc = get_object_or_404(CommissionCalculation, pk=pk, venue_id=_venue(request))
    return JsonResponse({'calculation': _calculation_data(calc)})


@require_GET
@venue_required
def deferred_list(request):
    deferred = CommissionService.get_deferred(_venue(request))
    return JsonResponse({'deferred': [
        {'id': d.pk, 'sale_id': d.sale_id, 'staff_id': d.staff_id, 'error': d.error}
        for d in deferred
    ]})


@require_POST
@venue_required
def deferred_retry(request):
    resolved, pending = CommissionService.retry_deferred(_venue(request))
    return JsonResponse({'success': True, 'resolved': resolved, 'pending': pending})


# =============================================================================
# Payouts
# =============================================================================

@require_GET
@venue_required
def payout_list(request):
    payouts = CommissionService.get_payouts(
        _venue(request),
        staff_id=request.GET.get('staff_id') or None,
        status=request.GET.get('status') or None,
    )
    return JsonResponse({'payouts': [_payout_data(p) for p in payouts]})


@require_POST
@venue_required
def payout_resolve(request):
    form = PayoutResolveForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)
    payouts = CommissionService.resolve_payouts(_venue(request), form.cleaned_data['period_end'])
    return JsonResponse({'success': True, 'payouts': [_payout_data(p) for p in payouts]})


@require_GET
@venue_required
def payout_detail(request, pk):
    payout = get_object_or_404(CommissionPayout, pk=pk, venue_id=_venue(request))
    return JsonResponse({
        'payout': _payout_data(payout),
        'calculations': [_calculation_data(c) for c in payout.calculations.all()],
    })


def _transition_response(success, error):
    if not success:
        return JsonResponse({'success': False, 'error': error}, status=400)
    return JsonResponse({'success': True})


@require_POST
@venue_required
def payout_approve(request, pk):
    payout = get_object_or_404(CommissionPayout, pk=pk, venue_id=_venue(request))
    return _transition_response(
        *CommissionService.approve_payout(payout, approved_by_id=_employee_id(request))
    )


@require_POST
@venue_required
def payout_process(request, pk):
    payout = get_object_or_404(CommissionPayout, pk=pk, venue_id=_venue(request))
    form = PayoutProcessForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)
    return _transition_response(
        *CommissionService.dispatch_payout(payout, form.cleaned_data['payment_method'])
    )


@require_POST
@venue_required
def payout_complete(request, pk):
    payout = get_object_or_404(CommissionPayout, pk=pk, venue_id=_venue(request))
    return _transition_response(
        *CommissionService.complete_payout(payout, request.POST.get('payment_reference', ''))
    )


@require_POST
@venue_required
def payout_fail(request, pk):
    payout = get_object_or_404(CommissionPayout, pk=pk, venue_id=_venue(request))
    return _transition_response(
        *CommissionService.fail_payout(payout, request.POST.get('reason', ''))
    )


@require_POST
@venue_required
def payout_cancel(request, pk):
    payout = get_object_or_404(CommissionPayout, pk=pk, venue_id=_venue(request))
    return _transition_response(
        *CommissionService.cancel_payout(payout, request.POST.get('reason', ''))
    )


# =============================================================================
# Configs
# =============================================================================

@require_GET
@venue_required
def config_list(request):
    active_only = request.GET.get('active') == '1'
    configs = CommissionService.get_configs(_venue(request), active_only=active_only)
    return JsonResponse({'configs': [_config_data(c) for c in configs]})


@require_POST
@venue_required
def config_create(request):
    form = CommissionConfigForm(request.POST, instance=CommissionConfig(venue_id=_venue(request)))
    if form.is_valid():
        config = form.save()
        return JsonResponse({'success': True, 'id': str(config.pk)})
    return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)


@require_GET
@venue_required
def config_detail(request, pk):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    return JsonResponse({
        'config': _config_data(config),
        'tiers': [_tier_data(t) for t in CommissionService.get_tiers(config)],
        'overrides': [_override_data(o) for o in CommissionService.get_overrides(config)],
        'calculation_count': config.calculations.count(),
        'rate_locked': config.is_rate_locked,
    })


@require_POST
@venue_required
def config_edit(request, pk):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    form = CommissionConfigForm(request.POST, instance=config)
    if form.is_valid():
        form.save()
        return JsonResponse({'success': True})
    return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)


@require_POST
@venue_required
def config_delete(request, pk):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    return _transition_response(*CommissionService.delete_config(config))


@require_POST
@venue_required
def config_toggle(request, pk):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    active, error = CommissionService.toggle_config(config)
    if error:
        return JsonResponse({'success': False, 'error': error}, status=400)
    return JsonResponse({'success': True, 'active': active})


@require_GET
@venue_required
def config_staff_progress(request, pk, staff_id):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    return JsonResponse({'progress': CommissionService.get_staff_tier_progress(config, staff_id)})


# =============================================================================
# Tiers
# =============================================================================

@require_POST
@venue_required
def tier_create(request, pk):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    form = CommissionTierForm(
        request.POST, instance=CommissionTier(venue_id=config.venue_id, config=config)
    )
    if form.is_valid():
        tier = form.save()
        return JsonResponse({'success': True, 'id': str(tier.pk)})
    return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)


@require_POST
@venue_required
def tier_edit(request, pk):
    tier = get_object_or_404(CommissionTier, pk=pk, venue_id=_venue(request))
    form = CommissionTierForm(request.POST, instance=tier)
    if form.is_valid():
        form.save()
        return JsonResponse({'success': True})
    return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)


@require_POST
@venue_required
def tier_delete(request, pk):
    tier = get_object_or_404(CommissionTier, pk=pk, venue_id=_venue(request))
    return _transition_response(*CommissionService.delete_tier(tier))


# =============================================================================
# Overrides
# =============================================================================

@require_POST
@venue_required
def override_create(request, pk):
    config = get_object_or_404(CommissionConfig, pk=pk, venue_id=_venue(request))
    form = CommissionOverrideForm(
        request.POST, instance=CommissionOverride(venue_id=config.venue_id, config=config)
    )
    if form.is_valid():
        override = form.save()
        return JsonResponse({'success': True, 'id': str(override.pk)})
    return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)


@require_POST
@venue_required
def override_edit(request, pk):
    override = get_object_or_404(CommissionOverride, pk=pk, venue_id=_venue(request))
    form = CommissionOverrideForm(request.POST, instance=override)
    if form.is_valid():
        form.save()
        return JsonResponse({'success': True})
    return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)


@require_POST
@venue_required
def override_delete(request, pk):
    override = get_object_or_404(CommissionOverride, pk=pk, venue_id=_venue(request))
    return _transition_response(*CommissionService.delete_override(override))


# =============================================================================
# Settings
# =============================================================================

@require_http_methods(['GET', 'POST'])
@venue_required
def settings(request):
    comm_settings = CommissionService.get_settings(_venue(request))
    if request.method == 'POST':
        form = CommissionsSettingsForm(request.POST, instance=comm_settings)
        if not form.is_valid():
            return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)
        form.save()
    return JsonResponse({
        'minimum_payout_amount': comm_settings.minimum_payout_amount,
        'default_payment_method': comm_settings.default_payment_method,
    })


# =============================================================================
# API Endpoints
# =============================================================================

@require_POST
@venue_required
def api_calculate(request):
    """Calculate and record the commission for a completed sale."""
    form = SaleForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form.errors.get_json_data()}, status=400)

    sale = Sale(venue_id=_venue(request), **form.cleaned_data)
    calculation = CommissionService.calculate_commission(sale)
    if calculation is None:
        return JsonResponse(
            {'success': False, 'deferred': True,
             'error': 'Ambiguous commission configuration; calculation deferred'},
            status=409
        )
    return JsonResponse({'success': True, 'calculation': _calculation_data(calculation)})


@require_GET
@venue_required
def api_staff_summary(request, staff_id):
    """Get commission summary for a staff member."""
    dates = DateRangeForm(request.GET)
    if not dates.is_valid():
        return JsonResponse({'success': False, 'errors': dates.errors.get_json_data()}, status=400)

    summary = CommissionService.get_staff_summary(
        _venue(request), staff_id,
        start_date=dates.cleaned_data['start_date'],
        end_date=dates.cleaned_data['end_date'],
    )
    return JsonResponse(summary)
