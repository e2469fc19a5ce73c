from django.urls import path
from . import views

app_name = 'commissions'

urlpatterns = [
    # Dashboard
    path('', views.dashboard, name='dashboard'),

    # Calculations
    path('calculations/', views.calculation_list, name='calculation_list'),
    path('calculations/<uuid:pk>/', views.calculation_detail, name='calculation_detail'),
    path('calculations/deferred/', views.deferred_list, name='deferred_list'),
    path('calculations/deferred/retry/', views.deferred_retry, name='deferred_retry'),

    # Payouts
    path('payouts/', views.payout_list, name='payout_list'),
    path('payouts/resolve/', views.payout_resolve, name='payout_resolve'),
    path('payouts/<uuid:pk>/', views.payout_detail, name='payout_detail'),
    path('payouts/<uuid:pk>/approve/', views.payout_approve, name='payout_approve'),
    path('payouts/<uuid:pk>/process/', views.payout_process, name='payout_process'),
    path('payouts/<uuid:pk>/complete/', views.payout_complete, name='payout_complete'),
    path('payouts/<uuid:pk>/fail/', views.payout_fail, name='payout_fail'),
    path('payouts/<uuid:pk>/cancel/', views.payout_cancel, name='payout_cancel'),

    # Configs
    path('configs/', views.config_list, name='config_list'),
    path('configs/create/', views.config_create, name='config_create'),
    path('configs/<uuid:pk>/', views.config_detail, name='config_detail'),
    path('configs/<uuid:pk>/edit/', views.config_edit, name='config_edit'),
    path('configs/<uuid:pk>/delete/', views.config_delete, name='config_delete'),
    path('configs/<uuid:pk>/toggle/', views.config_toggle, name='config_toggle'),
    path('configs/<uuid:pk>/staff/<uuid:staff_id>/progress/',
         views.config_staff_progress, name='config_staff_progress'),

    # Tiers
    path('configs/<uuid:pk>/tiers/create/', views.tier_create, name='tier_create'),
    path('tiers/<uuid:pk>/edit/', views.tier_edit, name='tier_edit'),
    path('tiers/<uuid:pk>/delete/', views.tier_delete, name='tier_delete'),

    # Overrides
    path('configs/<uuid:pk>/overrides/create/', views.override_create, name='override_create'),
    path('overrides/<uuid:pk>/edit/', views.override_edit, name='override_edit'),
    path('overrides/<uuid:pk>/delete/', views.override_delete, name='override_delete'),

    # Settings
    path('settings/', views.settings, name='settings'),

    # API endpoints
    path('api/calculate/', views.api_calculate, name='api_calculate'),
    path('api/staff/<uuid:staff_id>/summary/', views.api_staff_summary, name='api_staff_summary'),
]
