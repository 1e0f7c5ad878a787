"""
Integration tests for the subscription flow across entitlements and pricing.
"""

import pytest
from fastapi.testclient import TestClient

from service_entitlements.app.main import create_app as create_entitlements_app
from service_pricing.app.main import create_app as create_pricing_app
from service_pricing.app.catalog.store import PlanCatalog
from shared.models import Plan
from shared.test_helpers import PlanFactory, make_subscription


def subscribe(plan: Plan, beds: int, beds_used: int = 0, **overrides):
    """Subscription payload granting the plan's modules, as the billing backend stores it."""
    subscription = make_subscription(
        plan=plan,
        max_beds=beds,
        max_branches=plan.branch_count,
        beds_used=beds_used,
        **overrides
    )
    subscription = subscription.model_copy(update={
        "restrictions": subscription.restrictions.model_copy(update={"modules": plan.modules})
    })
    return subscription.model_dump(mode="json", by_alias=True)


class TestSubscriptionFlow:
    """Integration tests for choosing, using and upgrading a plan."""

    @pytest.fixture
    def catalog(self):
        return PlanCatalog(PlanFactory.catalog_plans())

    @pytest.fixture
    def pricing(self, catalog):
        return TestClient(create_pricing_app(catalog=catalog))

    @pytest.fixture
    def entitlements(self):
        return TestClient(create_entitlements_app())

    def check(self, client, subscription, **request):
        response = client.post("/entitlements/check", json={"subscription": subscription, **request})
        assert response.status_code == 200
        return response.json()["allowed"]

    def test_choose_use_and_upgrade(self, pricing, entitlements, catalog):
        # Tenant with 15 beds picks the cheapest suitable plan
        tiers = pricing.post("/pricing/tiers", json={"beds": 15}).json()
        assert tiers["recommendedTier"]["id"] == "plan-budget"

        # ... but needs payments, so subscribes to the standard plan
        standard = catalog.require_plan("plan-standard")
        subscription = subscribe(standard, beds=15, beds_used=13)

        assert self.check(entitlements, subscription, check="route", route="/payments") is True
        assert self.check(entitlements, subscription, check="route", route="/tickets") is False
        assert self.check(
            entitlements, subscription,
            check="permission", module="payment_tracking", submodule="payment_history", permission="delete"
        ) is True

        denied = entitlements.post("/entitlements/require", json={
            "subscription": subscription, "check": "route", "route": "/branch-activities"
        })
        assert denied.status_code == 403
        assert denied.json()["details"]["upgrade_required"] is True

        usage = entitlements.post("/entitlements/usage", json={"subscription": subscription}).json()
        assert usage["remainingBeds"] == 2
        assert usage["approachingBedLimit"] is True

        current = pricing.post("/pricing/optimization", json={"subscription": subscription}).json()
        assert current["currentCost"]["totalPrice"] == pytest.approx(1475)

        # Upgrade prompt leads to the premium plan
        upgrade = pricing.post("/pricing/upgrade", json={
            "currentPlanId": "plan-standard",
            "targetPlanId": "plan-premium",
            "configuration": {"beds": 15}
        }).json()
        assert upgrade["additionalCost"] == pytest.approx(525)

        premium = catalog.require_plan("plan-premium")
        upgraded = subscribe(premium, beds=20, beds_used=13)

        assert self.check(entitlements, upgraded, check="route", route="/tickets") is True
        assert self.check(entitlements, upgraded, check="route", route="/branch-activities") is True
        assert self.check(entitlements, upgraded, check="multi_branch") is True

        cost = pricing.post("/pricing/optimization", json={"subscription": upgraded}).json()
        assert cost["currentCost"]["totalPrice"] == pytest.approx(2000)

    def test_trial_then_expiry(self, pricing, entitlements, catalog):
        standard = catalog.require_plan("plan-standard")
        trial = subscribe(standard, beds=5, status="trial", billing_cycle="trial")

        assert self.check(entitlements, trial, check="module", module="api_access") is True
        usage = entitlements.post("/entitlements/usage", json={"subscription": trial}).json()
        assert usage["summary"]["bedsLimit"] == 30
        assert usage["summary"]["branchesLimit"] == 10

        # Trial is priced on the plan's own cycle
        trial_cost = pricing.post("/pricing/optimization", json={"subscription": trial})
        assert trial_cost.status_code == 200

        expired = subscribe(standard, beds=5, status="expired", billing_cycle="monthly")
        assert self.check(entitlements, expired, check="module", module="api_access") is False

        response = pricing.post("/pricing/optimization", json={"subscription": expired})
        assert response.status_code == 403
        assert response.json()["code"] == "NO_ACTIVE_SUBSCRIPTION"

    def test_catalog_changes_do_not_reprice_live_subscriptions(self, pricing, catalog):
        subscription = subscribe(catalog.require_plan("plan-standard"), beds=15)

        response = pricing.post("/pricing/plans", json={
            "id": "plan-standard", "name": "Standard", "basePrice": 5000, "baseBedCount": 10
        })
        assert response.status_code == 201

        report = pricing.post("/pricing/optimization", json={"subscription": subscription}).json()
        assert report["currentCost"]["totalPrice"] == pytest.approx(1475)

        new_quote = pricing.post("/pricing/calculate", json={
            "planId": "plan-standard", "configuration": {"beds": 15}
        }).json()
        assert new_quote["calculation"]["totalPrice"] == pytest.approx(5900)
