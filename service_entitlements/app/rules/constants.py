"""
Fixed entitlement constants.
"""

from typing import Dict, List

# Trial subscriptions ignore plan caps up to these ceilings
TRIAL_MAX_BEDS = 30
TRIAL_MAX_BRANCHES = 10
TRIAL_BILLING_CYCLE = "trial"

# Caps used when a subscription or its restriction field is absent
DEFAULT_MAX_BEDS = 10
DEFAULT_MAX_BRANCHES = 1

DEFAULT_APPROACHING_THRESHOLD = 0.8

SUBSCRIBED_STATUSES = frozenset({"active", "trial"})
FREE_PLAN_NAME = "Free Plan"
SUPERADMIN_ROLE = "superadmin"

PERMISSION_KEYS = ("create", "read", "update", "delete")

# Verb synonyms accepted by can_perform_action_on_submodule
ACTION_TO_PERMISSION: Dict[str, str] = {
    "create": "create",
    "read": "read",
    "view": "read",
    "list": "read",
    "update": "update",
    "edit": "update",
    "delete": "delete",
    "remove": "delete",
}

# Resource types counted against plan caps
BED_RESOURCES = frozenset({"bed", "beds"})
BRANCH_RESOURCES = frozenset({"branch", "branches"})

# Resource type -> module that must be enabled
RESOURCE_MODULES: Dict[str, str] = {
    "beds": "resident_management",
    "residents": "resident_management",
    "rooms": "room_allocation",
    "branches": "multi_branch",
    "payments": "payment_tracking",
    "reports": "analytics_reports",
    "tickets": "ticket_system",
    "qr_codes": "qr_code_payments",
}

# Named actions gated by a single module
ACTION_MODULES: Dict[str, str] = {
    "bulk_upload": "bulk_upload",
    "analytics": "analytics_reports",
    "custom_reports": "custom_reports",
    "api_access": "api_access",
}

