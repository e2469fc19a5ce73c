"""Commissions forms."""

from decimal import Decimal

from django import forms
from django.utils.translation import gettext_lazy as _

from .models import (
    CommissionConfig,
    CommissionOverride,
    CommissionsSettings,
    CommissionTier,
)


class CommissionConfigForm(forms.ModelForm):
    class Meta:
        model = CommissionConfig
        fields = [
            'name', 'description', 'recipient', 'calc_type', 'default_rate',
            'min_amount', 'max_amount', 'role_rates',
            'include_tips', 'include_discount', 'include_tax',
            'effective_from', 'effective_to', 'aggregation_period',
            'priority', 'active',
        ]
        widgets = {
            'name': forms.TextInput(attrs={'class': 'input'}),
            'description': forms.Textarea(attrs={'class': 'textarea', 'rows': 2}),
            'recipient': forms.Select(attrs={'class': 'select'}),
            'calc_type': forms.Select(attrs={'class': 'select'}),
            'default_rate': forms.NumberInput(attrs={'class': 'input', 'step': '0.0001', 'min': '0'}),
            'min_amount': forms.NumberInput(attrs={'class': 'input', 'step': '0.01', 'min': '0'}),
            'max_amount': forms.NumberInput(attrs={'class': 'input', 'step': '0.01', 'min': '0'}),
            'effective_from': forms.DateTimeInput(attrs={'class': 'input', 'type': 'datetime-local'}),
            'effective_to': forms.DateTimeInput(attrs={'class': 'input', 'type': 'datetime-local'}),
            'aggregation_period': forms.Select(attrs={'class': 'select'}),
            'priority': forms.NumberInput(attrs={'class': 'input'}),
            'active': forms.CheckboxInput(attrs={'class': 'toggle'}),
        }


class CommissionTierForm(forms.ModelForm):
    class Meta:
        model = CommissionTier
        fields = [
            'tier_level', 'tier_name', 'tier_type', 'min_threshold',
            'max_threshold', 'rate', 'tier_period', 'active',
        ]
        widgets = {
            'tier_level': forms.NumberInput(attrs={'class': 'input', 'min': '1'}),
            'tier_name': forms.TextInput(attrs={'class': 'input'}),
            'tier_type': forms.Select(attrs={'class': 'select'}),
            'min_threshold': forms.NumberInput(attrs={'class': 'input', 'step': '0.01', 'min': '0'}),
            'max_threshold': forms.NumberInput(attrs={'class': 'input', 'step': '0.01', 'min': '0'}),
            'rate': forms.NumberInput(attrs={'class': 'input', 'step': '0.0001', 'min': '0'}),
            'tier_period': forms.Select(attrs={'class': 'select'}),
            'active': forms.CheckboxInput(attrs={'class': 'toggle'}),
        }


class CommissionOverrideForm(forms.ModelForm):
    class Meta:
        model = CommissionOverride
        fields = [
            'staff_id', 'custom_rate', 'exclude_from_commissions',
            'effective_from', 'effective_to', 'notes', 'active',
        ]
        widgets = {
            'custom_rate': forms.NumberInput(attrs={'class': 'input', 'step': '0.0001', 'min': '0'}),
            'exclude_from_commissions': forms.CheckboxInput(attrs={'class': 'toggle'}),
            'effective_from': forms.DateTimeInput(attrs={'class': 'input', 'type': 'datetime-local'}),
            'effective_to': forms.DateTimeInput(attrs={'class': 'input', 'type': 'datetime-local'}),
            'notes': forms.Textarea(attrs={'class': 'textarea', 'rows': 2}),
            'active': forms.CheckboxInput(attrs={'class': 'toggle'}),
        }


class SaleForm(forms.Form):
    """A completed sale submitted for commission calculation."""

    sale_id = forms.CharField(max_length=100)
    staff_id = forms.UUIDField()
    staff_role = forms.CharField(max_length=50, required=False)
    base_amount = forms.DecimalField(max_digits=12, decimal_places=2)
    timestamp = forms.DateTimeField()
    tip_amount = forms.DecimalField(max_digits=12, decimal_places=2, required=False)
    tax_amount = forms.DecimalField(max_digits=12, decimal_places=2, required=False)
    discount_amount = forms.DecimalField(max_digits=12, decimal_places=2, required=False)

    def clean(self):
        cleaned = super().clean()
        for field in ('tip_amount', 'tax_amount', 'discount_amount'):
            if cleaned.get(field) is None:
                cleaned[field] = Decimal('0')
        return cleaned


class DateRangeForm(forms.Form):
    start_date = forms.DateField(required=False)
    end_date = forms.DateField(required=False)


class PayoutResolveForm(forms.Form):
    period_end = forms.DateField(widget=forms.DateInput(attrs={
        'class': 'input', 'type': 'date'
    }))


class PayoutProcessForm(forms.Form):
    payment_method = forms.ChoiceField(
        required=False,
        choices=[('', _('Select...'))] + CommissionsSettings.PAYMENT_METHOD_CHOICES,
        widget=forms.Select(attrs={'class': 'select'})
    )


class CommissionsSettingsForm(forms.ModelForm):
    class Meta:
        model = CommissionsSettings
        fields = ['minimum_payout_amount', 'default_payment_method']
        widgets = {
            'minimum_payout_amount': forms.NumberInput(attrs={'class': 'input', 'step': '0.01', 'min': '0'}),
            'default_payment_method': forms.Select(attrs={'class': 'select'}),
        }
