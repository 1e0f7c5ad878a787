"""
Subscription entitlement evaluator for Entitlements Service.
"""

import math
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Optional

from pydantic import ValidationError as SchemaValidationError

from shared.logging import get_logger
from shared.models import ModuleEntitlement, PermissionSet, Subscription
from .constants import (
    ACTION_MODULES, ACTION_TO_PERMISSION, BED_RESOURCES, BRANCH_RESOURCES,
    DEFAULT_APPROACHING_THRESHOLD, DEFAULT_MAX_BEDS, DEFAULT_MAX_BRANCHES,
    FREE_PLAN_NAME, PERMISSION_KEYS, RESOURCE_MODULES, SUBSCRIBED_STATUSES,
    SUPERADMIN_ROLE, TRIAL_BILLING_CYCLE, TRIAL_MAX_BEDS, TRIAL_MAX_BRANCHES,
)
from .models import FeatureAccessCheck, SubscriptionSummary, UsageCheck
from .routes import RouteAccessTable


def coerce_subscription(value: Any) -> Optional[Subscription]:
    """Return a Subscription, or None for anything that is not one."""
    if isinstance(value, Subscription):
        return value
    if isinstance(value, Mapping):
        try:
            return Subscription.model_validate(dict(value))
        except SchemaValidationError:
            return None
    return None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class EntitlementEvaluator:
    """Answers allow/deny questions about a subscription snapshot.

    Every public method accepts a ``Subscription``, a mapping in the
    platform's subscription shape, or None. Nothing here raises: missing
    data denies, except for routes that match no rule in the route table.
    Trial subscriptions short-circuit module, permission, route and branch
    checks before any other rule is consulted.
    """

    def __init__(self, route_table: Optional[RouteAccessTable] = None,
                 approaching_threshold: float = DEFAULT_APPROACHING_THRESHOLD):
        self.logger = get_logger("entitlements.evaluator")
        self.route_table = route_table or RouteAccessTable()
        self.approaching_threshold = approaching_threshold

    # Trial

    def is_trial(self, subscription: Any) -> bool:
        """Check whether the trial bypass applies."""
        sub = coerce_subscription(subscription)
        if sub is None:
            return False
        return sub.billing_cycle == TRIAL_BILLING_CYCLE or sub.is_trial_active is True

    def _trial_bypass(self, sub: Optional[Subscription], check: str, **context) -> bool:
        if self.is_trial(sub):
            self.logger.debug("Trial bypass", check=check, subscription_id=sub.id, **context)
            return True
        return False

    # Subscription state

    def is_subscribed(self, subscription: Any) -> bool:
        """Check if the subscription is active or in trial."""
        sub = coerce_subscription(subscription)
        return sub is not None and sub.status in SUBSCRIBED_STATUSES

    def is_free_plan(self, subscription: Any) -> bool:
        """Check if the tenant is on the free plan."""
        sub = coerce_subscription(subscription)
        return sub is None or sub.status == "free" or sub.plan is None

    def get_plan_name(self, subscription: Any) -> str:
        sub = coerce_subscription(subscription)
        if sub is None or sub.plan is None:
            return FREE_PLAN_NAME
        return sub.plan.name

    def allows_multiple_branches(self, subscription: Any) -> bool:
        """Check if the plan allows more than one branch."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "multi_branch"):
            return True
        if sub is None or sub.plan is None:
            return False
        return sub.plan.allow_multiple_branches is True

    # Caps and usage

    def get_max_beds(self, subscription: Any) -> int:
        """Get the bed cap, raised to the trial ceiling during trials."""
        sub = coerce_subscription(subscription)
        if self.is_trial(sub):
            return TRIAL_MAX_BEDS
        if sub is None or sub.restrictions.max_beds is None:
            return DEFAULT_MAX_BEDS
        return sub.restrictions.max_beds

    def get_max_branches(self, subscription: Any) -> int:
        """Get the branch cap, raised to the trial ceiling during trials."""
        sub = coerce_subscription(subscription)
        if self.is_trial(sub):
            return TRIAL_MAX_BRANCHES
        if sub is None or sub.restrictions.max_branches is None:
            return DEFAULT_MAX_BRANCHES
        return sub.restrictions.max_branches

    def can_add_beds(self, current_beds: int, additional: int = 1, subscription: Any = None) -> bool:
        """Check if ``additional`` beds fit under the cap. Inputs are not sign-checked."""
        return (current_beds + additional) <= self.get_max_beds(subscription)

    def can_add_branches(self, current_branches: int, additional: int = 1, subscription: Any = None) -> bool:
        """Check if ``additional`` branches fit under the cap. Inputs are not sign-checked."""
        return (current_branches + additional) <= self.get_max_branches(subscription)

    def is_at_bed_limit(self, current_beds: int, subscription: Any = None) -> bool:
        return current_beds >= self.get_max_beds(subscription)

    def _beds_used(self, sub: Optional[Subscription]) -> int:
        return sub.usage.beds_used if sub is not None else 0

    def _branches_used(self, sub: Optional[Subscription]) -> int:
        return sub.usage.branches_used if sub is not None else 0

    def get_remaining_beds(self, subscription: Any) -> int:
        sub = coerce_subscription(subscription)
        return max(0, self.get_max_beds(sub) - self._beds_used(sub))

    def get_remaining_branches(self, subscription: Any) -> int:
        sub = coerce_subscription(subscription)
        return max(0, self.get_max_branches(sub) - self._branches_used(sub))

    def _approaching(self, used: int, cap: int, threshold: Optional[float]) -> bool:
        if cap <= 0:
            return False
        if threshold is None:
            threshold = self.approaching_threshold
        return (used / cap) >= threshold

    def is_approaching_bed_limit(self, subscription: Any, threshold: Optional[float] = None) -> bool:
        """Check if bed usage reached ``threshold`` of the cap. A zero cap never approaches."""
        sub = coerce_subscription(subscription)
        if sub is None:
            return False
        return self._approaching(self._beds_used(sub), self.get_max_beds(sub), threshold)

    def is_approaching_branch_limit(self, subscription: Any, threshold: Optional[float] = None) -> bool:
        """Check if branch usage reached ``threshold`` of the cap."""
        sub = coerce_subscription(subscription)
        if sub is None:
            return False
        return self._approaching(self._branches_used(sub), self.get_max_branches(sub), threshold)

    def get_bed_usage_percentage(self, subscription: Any) -> int:
        sub = coerce_subscription(subscription)
        if sub is None:
            return 0
        cap = self.get_max_beds(sub)
        return round_half_up(self._beds_used(sub) / cap * 100) if cap > 0 else 0

    def get_branch_usage_percentage(self, subscription: Any) -> int:
        sub = coerce_subscription(subscription)
        if sub is None:
            return 0
        cap = self.get_max_branches(sub)
        return round_half_up(self._branches_used(sub) / cap * 100) if cap > 0 else 0

    def check_usage_limit(self, resource_type: str, amount: int = 1, subscription: Any = None) -> UsageCheck:
        """Check whether ``amount`` more units of a capped resource fit."""
        sub = coerce_subscription(subscription)

        if resource_type in BED_RESOURCES:
            current, limit = self._beds_used(sub), self.get_max_beds(sub)
        elif resource_type in BRANCH_RESOURCES:
            current, limit = self._branches_used(sub), self.get_max_branches(sub)
        else:
            return UsageCheck(allowed=True, resource_type=resource_type)

        would_exceed = (current + amount) > limit
        if would_exceed:
            self.logger.debug(
                "Usage limit exceeded",
                resource_type=resource_type,
                current_usage=current,
                limit=limit,
                requested=amount
            )

        return UsageCheck(
            allowed=not would_exceed,
            resource_type=resource_type,
            current_usage=current,
            limit=limit,
            remaining=max(0, limit - current),
            reason=f"{resource_type} usage would exceed limit ({limit})" if would_exceed else None
        )

    # Modules, features and permissions

    def _find_enabled_module(self, module_name: str, sub: Optional[Subscription]) -> Optional[ModuleEntitlement]:
        if sub is None:
            return None
        for module in sub.restrictions.modules:
            if module.name == module_name and module.enabled:
                return module
        return None

    def has_module(self, module_name: str, subscription: Any) -> bool:
        """Check if the module is enabled for the subscription."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "module", module=module_name):
            return True
        return self._find_enabled_module(module_name, sub) is not None

    def has_feature(self, feature_name: str, subscription: Any) -> bool:
        """Check if a feature toggle is enabled for the subscription."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "feature", feature=feature_name):
            return True
        if sub is None:
            return False
        return any(
            feature.name == feature_name and feature.enabled
            for feature in sub.restrictions.features
        )

    def has_permission(self, module_name: str, submodule_name: str, permission: str,
                       subscription: Any) -> bool:
        """Check one CRUD permission on a submodule of an enabled module."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "permission", module=module_name,
                              submodule=submodule_name, permission=permission):
            return True

        module = self._find_enabled_module(module_name, sub)
        if module is None:
            return False

        permissions = module.permissions.get(submodule_name)
        if permissions is None or permission not in PERMISSION_KEYS:
            return False

        return getattr(permissions, permission) is True

    def can_perform_action_on_submodule(self, module_name: str, submodule_name: str, action: str,
                                        subscription: Any) -> bool:
        """Map an action verb to its permission key and check it."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "action", module=module_name,
                              submodule=submodule_name, action=action):
            return True

        if not isinstance(action, str):
            return False
        permission = ACTION_TO_PERMISSION.get(action.lower())
        if permission is None:
            return False

        return self.has_permission(module_name, submodule_name, permission, sub)

    def get_submodule_permissions(self, module_name: str, submodule_name: str,
                                  subscription: Any) -> Optional[PermissionSet]:
        """Raw permission set of a submodule for display. No trial bypass."""
        sub = coerce_subscription(subscription)
        module = self._find_enabled_module(module_name, sub)
        if module is None:
            return None
        return module.permissions.get(submodule_name)

    def get_module_permissions(self, module_name: str, subscription: Any) -> Dict[str, PermissionSet]:
        sub = coerce_subscription(subscription)
        module = self._find_enabled_module(module_name, sub)
        if module is None:
            return {}
        return dict(module.permissions)

    def has_restricted_permissions(self, module_name: str, subscription: Any) -> bool:
        """Check if an enabled module is only partially unlocked."""
        sub = coerce_subscription(subscription)
        if self.is_trial(sub):
            return False

        module = self._find_enabled_module(module_name, sub)
        if module is None:
            return False

        return any(not permissions.is_complete() for permissions in module.permissions.values())

    def check_feature_access(self, resource_type: str, subscription: Any) -> FeatureAccessCheck:
        """Check the module a resource type depends on."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "feature_access", resource_type=resource_type):
            return FeatureAccessCheck(allowed=True, resource_type=resource_type)

        if sub is None or sub.plan is None:
            return FeatureAccessCheck(
                allowed=False,
                resource_type=resource_type,
                reason="No plan associated with subscription"
            )

        required_module = RESOURCE_MODULES.get(resource_type)
        if required_module is None:
            return FeatureAccessCheck(allowed=True, resource_type=resource_type)

        allowed = self.has_module(required_module, sub)
        return FeatureAccessCheck(
            allowed=allowed,
            resource_type=resource_type,
            required_module=required_module,
            reason=None if allowed else f"Required module '{required_module}' not enabled in current plan"
        )

    def check_module_access(self, required_modules: Iterable[str], subscription: Any,
                            role: Optional[str] = None) -> bool:
        """Check that every required module is enabled. Superadmins pass."""
        if role == SUPERADMIN_ROLE:
            return True

        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "module_access"):
            return True

        return all(self.has_module(module_name, sub) for module_name in required_modules)

    @staticmethod
    def has_role(role: Optional[str], allowed_roles: Iterable[str]) -> bool:
        return bool(role) and role in set(allowed_roles)

    # Routes and named actions

    def can_access_route(self, route_path: str, subscription: Any) -> bool:
        """Check a route against the route access table."""
        sub = coerce_subscription(subscription)
        if self._trial_bypass(sub, "route", route=route_path):
            return True

        rule = self.route_table.match(route_path if isinstance(route_path, str) else "")
        if rule is None:
            return self.route_table.default_allow
        if rule.always_allowed:
            return True
        if rule.requires_multiple_branches:
            return self.allows_multiple_branches(sub)
        return self.has_module(rule.module, sub)

    def can_perform_action(self, action: str, subscription: Any) -> bool:
        """Check a named platform action such as ``create_branch`` or ``add_bed``."""
        sub = coerce_subscription(subscription)

        if action == "create_branch":
            return self.allows_multiple_branches(sub) and self.get_remaining_branches(sub) > 0
        if action == "add_bed":
            return self.get_remaining_beds(sub) > 0
        if action in ACTION_MODULES:
            return self.has_module(ACTION_MODULES[action], sub)

        return True

    # Summary

    def get_subscription_summary(self, subscription: Any) -> SubscriptionSummary:
        sub = coerce_subscription(subscription)
        if sub is None:
            return SubscriptionSummary(
                plan_name=FREE_PLAN_NAME,
                status="free",
                beds_used=0,
                beds_limit=DEFAULT_MAX_BEDS,
                branches_used=0,
                branches_limit=DEFAULT_MAX_BRANCHES,
                allows_multiple_branches=False,
                is_subscribed=False
            )

        return SubscriptionSummary(
            plan_name=self.get_plan_name(sub),
            status=sub.status,
            beds_used=self._beds_used(sub),
            beds_limit=self.get_max_beds(sub),
            branches_used=self._branches_used(sub),
            branches_limit=self.get_max_branches(sub),
            allows_multiple_branches=self.allows_multiple_branches(sub),
            is_subscribed=self.is_subscribed(sub),
            trial_end_date=sub.trial_end_date,
            end_date=sub.end_date
        )
