"""
Commissions module metadata.

Identity, navigation tabs, permissions and default settings that a host
project reads when it mounts the app under /modules/commissions/.
"""
from django.utils.translation import gettext_lazy as _

# Module Identification
MODULE_ID = "commissions"
MODULE_NAME = _("Commissions")
MODULE_ICON = "wallet-outline"
MODULE_VERSION = "1.0.0"
MODULE_CATEGORY = "sales"

# Target Industries (business verticals this module is designed for)
MODULE_INDUSTRIES = [
    "restaurant",   # Restaurants & bars
    "retail",       # Retail stores
    "beauty",       # Beauty & wellness
    "hospitality",  # Hotels & venues
]

# Sidebar Menu Configuration
MENU = {
    "label": _("Commissions"),
    "icon": "wallet-outline",
    "order": 55,
    "show": True,
}

# Internal Navigation (Tabs)
NAVIGATION = [
    {
        "id": "dashboard",
        "label": _("Overview"),
        "icon": "stats-chart-outline",
        "view": "",
    },
    {
        "id": "calculations",
        "label": _("Calculations"),
        "icon": "receipt-outline",
        "view": "calculations",
    },
    {
        "id": "payouts",
        "label": _("Payouts"),
        "icon": "cash-outline",
        "view": "payouts",
    },
    {
        "id": "configs",
        "label": _("Configs"),
        "icon": "options-outline",
        "view": "configs",
    },
    {
        "id": "settings",
        "label": _("Settings"),
        "icon": "settings-outline",
        "view": "settings",
    },
]

# Module Dependencies
DEPENDENCIES = ["staff>=1.0.0", "sales>=1.0.0"]

# Default Settings
SETTINGS = {
    "calc_type": "PERCENTAGE",
    "default_rate": "0.05",
    "aggregation_period": "MONTHLY",
    "minimum_payout_amount": "0.00",
}

# Permissions - tuple format (action_suffix, display_name)
PERMISSIONS = [
    ("view_config", _("Can view commission configs")),
    ("add_config", _("Can add commission configs")),
    ("change_config", _("Can change commission configs")),
    ("delete_config", _("Can delete commission configs")),
    ("view_calculation", _("Can view commission calculations")),
    ("calculate_commission", _("Can calculate commissions")),
    ("view_payout", _("Can view payouts")),
    ("approve_payout", _("Can approve payouts")),
    ("process_payout", _("Can process payouts")),
    ("view_settings", _("Can view settings")),
    ("change_settings", _("Can change settings")),
]

# Role-based permission assignments
ROLE_PERMISSIONS = {
    "admin": ["*"],  # All permissions
    "manager": [
        "view_config",
        "add_config",
        "change_config",
        "view_calculation",
        "calculate_commission",
        "view_payout",
        "approve_payout",
        "view_settings",
    ],
    "employee": [
        "view_calculation",
        "view_payout",
    ],
}
