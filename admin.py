from django.contrib import admin
from .models import (
    CommissionsSettings,
    CommissionConfig,
    CommissionTier,
    CommissionOverride,
    CommissionCalculation,
    CommissionPayout,
    DeferredCalculation,
    StaffSalesAggregate,
)


@admin.register(CommissionsSettings)
class CommissionsSettingsAdmin(admin.ModelAdmin):
    list_display = ['venue_id', 'minimum_payout_amount', 'default_payment_method', 'updated_at']
    readonly_fields = ['created_at', 'updated_at']

    def has_delete_permission(self, request, obj=None):
        return False


class CommissionTierInline(admin.TabularInline):
    model = CommissionTier
    extra = 0
    fields = ['tier_level', 'tier_name', 'tier_type', 'min_threshold', 'max_threshold', 'rate',
              'tier_period', 'active']


@admin.register(CommissionConfig)
class CommissionConfigAdmin(admin.ModelAdmin):
    list_display = ['name', 'calc_type', 'default_rate', 'priority', 'effective_from',
                    'effective_to', 'active']
    list_filter = ['calc_type', 'aggregation_period', 'active']
    search_fields = ['name', 'description']
    ordering = ['-priority', 'name']
    inlines = [CommissionTierInline]


@admin.register(CommissionOverride)
class CommissionOverrideAdmin(admin.ModelAdmin):
    list_display = ['config', 'staff_id', 'custom_rate', 'exclude_from_commissions',
                    'effective_from', 'effective_to', 'active']
    list_filter = ['exclude_from_commissions', 'active']
    search_fields = ['staff_id', 'notes']


@admin.register(CommissionCalculation)
class CommissionCalculationAdmin(admin.ModelAdmin):
    list_display = [
        'sale_id', 'staff_id', 'config_name', 'base_amount',
        'final_commission', 'outcome', 'sale_at'
    ]
    list_filter = ['outcome', 'sale_at']
    search_fields = ['sale_id', 'config_name']
    date_hierarchy = 'sale_at'

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(DeferredCalculation)
class DeferredCalculationAdmin(admin.ModelAdmin):
    list_display = ['sale_id', 'staff_id', 'resolved', 'created_at', 'resolved_at']
    list_filter = ['resolved']
    search_fields = ['sale_id']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(StaffSalesAggregate)
class StaffSalesAggregateAdmin(admin.ModelAdmin):
    list_display = ['staff_id', 'period', 'bucket', 'total_amount', 'sale_count']
    list_filter = ['period']
    search_fields = ['bucket']


@admin.register(CommissionPayout)
class CommissionPayoutAdmin(admin.ModelAdmin):
    list_display = [
        'reference', 'staff_id', 'amount', 'calculation_count', 'status',
        'period_start', 'period_end', 'paid_at'
    ]
    list_filter = ['status', 'period', 'period_start']
    search_fields = ['reference', 'payment_reference']
    date_hierarchy = 'period_start'
    readonly_fields = ['created_at', 'updated_at']
