"""
Unit tests for the entitlement evaluator.
"""

import pytest

from service_entitlements.app.rules.evaluator import EntitlementEvaluator, coerce_subscription, round_half_up
from service_entitlements.app.rules.routes import RouteAccessTable
from shared.models import PermissionSet
from shared.test_helpers import (
    full_permissions, make_module, make_plan, make_subscription, make_trial_subscription,
)


@pytest.fixture
def evaluator():
    """Create EntitlementEvaluator instance."""
    return EntitlementEvaluator()


@pytest.fixture
def plan():
    return make_plan(id="plan-standard", name="Standard")


@pytest.fixture
def subscription(plan):
    """Active subscription with residents and payments enabled."""
    return make_subscription(
        plan=plan,
        modules=["resident_management", "payment_tracking"],
        max_beds=20,
        max_branches=2,
        beds_used=16,
        branches_used=1
    )


class TestCoercion:
    """Test cases for subscription coercion."""

    def test_model_passes_through(self, subscription):
        assert coerce_subscription(subscription) is subscription

    def test_mapping_in_platform_shape(self):
        sub = coerce_subscription({
            "status": "active",
            "billingCycle": "monthly",
            "restrictions": {"maxBeds": 12, "modules": [{"moduleName": "ticket_system"}]}
        })

        assert sub.restrictions.max_beds == 12
        assert sub.restrictions.modules[0].name == "ticket_system"

    @pytest.mark.parametrize("value", [None, "active", 42, {"status": "unknown-status"}])
    def test_invalid_values_become_none(self, value):
        assert coerce_subscription(value) is None

    def test_round_half_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(12.49) == 12
        assert round_half_up(0) == 0


class TestTrialBypass:
    """Trial subscriptions pass every gate regardless of their plan."""

    @pytest.fixture
    def trial(self):
        return make_trial_subscription()

    def test_trial_detection(self, evaluator, trial):
        assert evaluator.is_trial(trial) is True
        assert evaluator.is_trial(make_subscription(is_trial_active=True)) is True
        assert evaluator.is_trial(make_subscription(status="trial", billing_cycle="monthly")) is False
        assert evaluator.is_trial(None) is False

    def test_all_checks_allowed(self, evaluator, trial):
        assert evaluator.has_module("analytics_reports", trial) is True
        assert evaluator.has_feature("sms", trial) is True
        assert evaluator.has_permission("ticket_system", "tickets", "delete", trial) is True
        assert evaluator.can_perform_action_on_submodule("ticket_system", "tickets", "remove", trial) is True
        assert evaluator.can_access_route("/reports/monthly", trial) is True
        assert evaluator.can_access_route("/branch-activities", trial) is True
        assert evaluator.allows_multiple_branches(trial) is True
        assert evaluator.check_module_access(["api_access", "mobile_app"], trial) is True
        assert evaluator.check_feature_access("tickets", trial).allowed is True

    def test_trial_ceilings_replace_caps(self, evaluator, trial):
        assert evaluator.get_max_beds(trial) == 30
        assert evaluator.get_max_branches(trial) == 10
        assert evaluator.can_add_beds(29, 1, trial) is True
        assert evaluator.can_add_beds(30, 1, trial) is False

    def test_trial_is_never_restricted(self, evaluator):
        trial = make_trial_subscription(
            restrictions={"modules": [{"name": "ticket_system", "permissions": {"tickets": {"read": True}}}]}
        )
        assert evaluator.has_restricted_permissions("ticket_system", trial) is False

    def test_submodule_permissions_have_no_bypass(self, evaluator, trial):
        assert evaluator.get_submodule_permissions("ticket_system", "tickets", trial) is None


class TestDenyByDefault:
    """Missing data denies."""

    def test_no_subscription(self, evaluator):
        assert evaluator.has_module("resident_management", None) is False
        assert evaluator.has_permission("resident_management", "residents", "read", None) is False
        assert evaluator.allows_multiple_branches(None) is False
        assert evaluator.is_free_plan(None) is True
        assert evaluator.is_subscribed(None) is False
        assert evaluator.get_plan_name(None) == "Free Plan"

    def test_empty_modules(self, evaluator, plan):
        sub = make_subscription(plan=plan, modules=[])

        assert evaluator.has_module("resident_management", sub) is False
        assert evaluator.has_permission("resident_management", "residents", "read", sub) is False
        assert evaluator.get_module_permissions("resident_management", sub) == {}

    def test_disabled_module_masks_permissions(self, evaluator, plan):
        sub = make_subscription(
            plan=plan,
            restrictions={"modules": [make_module("resident_management", enabled=False)]}
        )

        assert evaluator.has_module("resident_management", sub) is False
        assert evaluator.has_permission("resident_management", "residents", "read", sub) is False
        assert evaluator.get_submodule_permissions("resident_management", "residents", sub) is None

    def test_defaults_without_restrictions(self, evaluator):
        sub = make_subscription()

        assert evaluator.get_max_beds(sub) == 10
        assert evaluator.get_max_branches(sub) == 1
        assert evaluator.get_remaining_branches(None) == 1


class TestPermissions:
    """Test cases for module and permission checks."""

    @pytest.fixture
    def partial(self, plan):
        return make_subscription(plan=plan, restrictions={"modules": [
            make_module("ticket_system", permissions={
                "tickets": PermissionSet(read=True, update=True),
                "ticket_categories": full_permissions(),
            })
        ]})

    def test_has_module(self, evaluator, subscription):
        assert evaluator.has_module("resident_management", subscription) is True
        assert evaluator.has_module("ticket_system", subscription) is False

    def test_has_permission(self, evaluator, partial):
        assert evaluator.has_permission("ticket_system", "tickets", "read", partial) is True
        assert evaluator.has_permission("ticket_system", "tickets", "delete", partial) is False
        assert evaluator.has_permission("ticket_system", "ticket_priorities", "read", partial) is False
        assert evaluator.has_permission("ticket_system", "tickets", "approve", partial) is False

    @pytest.mark.parametrize("action,expected", [
        ("view", True),
        ("LIST", True),
        ("Edit", True),
        ("create", False),
        ("remove", False),
        ("archive", False),
    ])
    def test_action_synonyms(self, evaluator, partial, action, expected):
        assert evaluator.can_perform_action_on_submodule("ticket_system", "tickets", action, partial) is expected

    def test_raw_permissions(self, evaluator, partial):
        permissions = evaluator.get_submodule_permissions("ticket_system", "tickets", partial)

        assert permissions == PermissionSet(read=True, update=True)
        assert evaluator.get_submodule_permissions("ticket_system", "missing", partial) is None
        assert set(evaluator.get_module_permissions("ticket_system", partial)) == {"tickets", "ticket_categories"}

    def test_restricted_permissions(self, evaluator, partial, subscription):
        assert evaluator.has_restricted_permissions("ticket_system", partial) is True
        assert evaluator.has_restricted_permissions("resident_management", subscription) is False
        assert evaluator.has_restricted_permissions("ticket_system", subscription) is False

    def test_features(self, evaluator, plan):
        sub = make_subscription(plan=plan, restrictions={"features": [
            {"name": "sms", "enabled": True},
            {"name": "email", "enabled": False},
        ]})

        assert evaluator.has_feature("sms", sub) is True
        assert evaluator.has_feature("email", sub) is False
        assert evaluator.has_feature("push", sub) is False


class TestUsage:
    """Test cases for caps and usage signals."""

    def test_caps_and_remaining(self, evaluator, subscription):
        assert evaluator.get_max_beds(subscription) == 20
        assert evaluator.get_remaining_beds(subscription) == 4
        assert evaluator.get_remaining_branches(subscription) == 1

    def test_can_add(self, evaluator, subscription):
        assert evaluator.can_add_beds(16, 4, subscription) is True
        assert evaluator.can_add_beds(16, 5, subscription) is False
        assert evaluator.can_add_branches(1, 1, subscription) is True
        assert evaluator.can_add_branches(2, 1, subscription) is False
        assert evaluator.is_at_bed_limit(20, subscription) is True

    def test_remaining_never_negative(self, evaluator):
        sub = make_subscription(max_beds=5, beds_used=9)
        assert evaluator.get_remaining_beds(sub) == 0

    def test_approaching_limit(self, evaluator, subscription):
        assert evaluator.is_approaching_bed_limit(subscription) is True
        assert evaluator.is_approaching_bed_limit(subscription, threshold=0.9) is False
        assert evaluator.is_approaching_branch_limit(subscription) is False
        assert evaluator.is_approaching_branch_limit(subscription, threshold=0.5) is True

    def test_zero_cap_never_approaches(self, evaluator):
        sub = make_subscription(max_beds=0, beds_used=0)

        assert evaluator.is_approaching_bed_limit(sub) is False
        assert evaluator.get_bed_usage_percentage(sub) == 0

    def test_configured_threshold(self, subscription):
        evaluator = EntitlementEvaluator(approaching_threshold=0.9)
        assert evaluator.is_approaching_bed_limit(subscription) is False

    def test_usage_percentage(self, evaluator, subscription):
        assert evaluator.get_bed_usage_percentage(subscription) == 80
        assert evaluator.get_branch_usage_percentage(subscription) == 50
        assert evaluator.get_bed_usage_percentage(make_subscription(max_beds=8, beds_used=1)) == 13

    def test_check_usage_limit(self, evaluator, subscription):
        result = evaluator.check_usage_limit("beds", 5, subscription)

        assert result.allowed is False
        assert result.current_usage == 16
        assert result.limit == 20
        assert result.remaining == 4
        assert "exceed" in result.reason

        assert evaluator.check_usage_limit("branch", 1, subscription).allowed is True
        assert evaluator.check_usage_limit("residents", 100, subscription).allowed is True


class TestAccessGuards:
    """Test cases for resource, module and role guards."""

    def test_feature_access_without_plan(self, evaluator):
        result = evaluator.check_feature_access("payments", make_subscription(modules=["payment_tracking"]))

        assert result.allowed is False
        assert result.reason == "No plan associated with subscription"

    def test_feature_access_by_resource(self, evaluator, subscription):
        assert evaluator.check_feature_access("payments", subscription).allowed is True

        denied = evaluator.check_feature_access("tickets", subscription)
        assert denied.allowed is False
        assert denied.required_module == "ticket_system"

        assert evaluator.check_feature_access("notices", subscription).allowed is True

    def test_module_access(self, evaluator, subscription):
        assert evaluator.check_module_access(["resident_management", "payment_tracking"], subscription) is True
        assert evaluator.check_module_access(["resident_management", "ticket_system"], subscription) is False
        assert evaluator.check_module_access(["ticket_system"], None, role="superadmin") is True

    def test_has_role(self, evaluator):
        assert evaluator.has_role("admin", ["admin", "owner"]) is True
        assert evaluator.has_role(None, ["admin"]) is False
        assert evaluator.has_role("staff", []) is False


class TestRoutesAndActions:
    """Test cases for route gating and named actions."""

    @pytest.mark.parametrize("route,expected", [
        ("/dashboard", True),
        ("/settings/profile", True),
        ("/activities", True),
        ("/residents/42", True),
        ("/payments/history", True),
        ("/tickets", False),
        ("/reports", False),
        ("/branch-activities", False),
        ("/unknown", True),
    ])
    def test_routes(self, evaluator, subscription, route, expected):
        assert evaluator.can_access_route(route, subscription) is expected

    def test_branch_activities_with_multi_branch_plan(self, evaluator):
        sub = make_subscription(plan=make_plan(allow_multiple_branches=True))
        assert evaluator.can_access_route("/branch-activities", sub) is True

    def test_unmatched_route_fail_closed(self, subscription):
        evaluator = EntitlementEvaluator(route_table=RouteAccessTable(default_allow=False))

        assert evaluator.can_access_route("/unknown", subscription) is False
        assert evaluator.can_access_route("/dashboard", subscription) is True

    def test_named_actions(self, evaluator, subscription):
        assert evaluator.can_perform_action("add_bed", subscription) is True
        assert evaluator.can_perform_action("create_branch", subscription) is False
        assert evaluator.can_perform_action("bulk_upload", subscription) is False
        assert evaluator.can_perform_action("export", subscription) is True

    def test_create_branch_needs_capacity(self, evaluator):
        plan = make_plan(allow_multiple_branches=True)

        assert evaluator.can_perform_action(
            "create_branch", make_subscription(plan=plan, max_branches=3, branches_used=1)
        ) is True
        assert evaluator.can_perform_action(
            "create_branch", make_subscription(plan=plan, max_branches=3, branches_used=3)
        ) is False


class TestSummary:
    """Test cases for the subscription summary."""

    def test_summary(self, evaluator, subscription):
        summary = evaluator.get_subscription_summary(subscription)

        assert summary.plan_name == "Standard"
        assert summary.status == "active"
        assert summary.beds_used == 16
        assert summary.beds_limit == 20
        assert summary.is_subscribed is True
        assert summary.allows_multiple_branches is False

    def test_summary_without_subscription(self, evaluator):
        summary = evaluator.get_subscription_summary(None)

        assert summary.plan_name == "Free Plan"
        assert summary.status == "free"
        assert summary.beds_limit == 10
        assert summary.branches_limit == 1
        assert summary.is_subscribed is False
