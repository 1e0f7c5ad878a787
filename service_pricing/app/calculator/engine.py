"""
Pricing engine for Pricing Service.
"""

import math
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as SchemaValidationError

from shared.logging import get_logger, set_subscription_context
from shared.metrics import MetricsCollector
from shared.models import BillingCycle, Plan, Subscription
from ..catalog.store import PlanCatalog
from .breakdown import calculate_plan_cost, get_plan_tier
from .constants import MONTHS_PER_YEAR, RECOMMENDATION_CAPACITY_SHARE, RECOMMENDATION_MIN_FILL
from .models import (
    BreakEven, BreakEvenStatus, CostBreakdown, CostRecommendation, FailureCode,
    OptimizationReport, PlanComparison, PlanConfiguration, PlanCost, PlanSummary,
    PricingFailure, PricingResult, PricingTier, PricingTiers, RecommendationType,
    ScalingProjection, ScalingReport, ScalingScenario, UpgradeReport, UsageProfile,
)

PlanRef = Union[Plan, str]


class PricingEngine:
    """Catalog-aware pricing reports.

    Plan references are ``Plan`` objects or catalog ids. Unknown ids and
    invalid configurations come back as ``PricingFailure`` values; nothing
    here raises for them, and numeric edge cases are guarded.
    """

    def __init__(self, catalog: Optional[PlanCatalog] = None, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("pricing.engine")
        self.catalog = catalog if catalog is not None else PlanCatalog()
        self.metrics = metrics

    def _record(self, operation: str, outcome: str):
        if self.metrics:
            self.metrics.increment_counter("pricing_calculations_total", operation=operation, outcome=outcome)

    def _fail(self, operation: str, code: FailureCode, message: str,
              plan_id: Optional[str] = None) -> PricingFailure:
        self._record(operation, "failure")
        self.logger.warning("Pricing failure", operation=operation, code=code.value,
                            message=message, plan_id=plan_id)
        return PricingFailure(code=code, message=message, plan_id=plan_id)

    # Input resolution

    def resolve_plan(self, plan: Any) -> Union[Plan, PricingFailure]:
        """Resolve a plan reference through the catalog."""
        if isinstance(plan, Plan):
            return plan
        if isinstance(plan, str) and plan:
            resolved = self.catalog.get_plan(plan)
            if resolved is not None:
                return resolved
            return self._fail("resolve_plan", FailureCode.PLAN_NOT_FOUND, "Plan not found", plan)
        return self._fail("resolve_plan", FailureCode.PLAN_NOT_FOUND, "Invalid plan reference")

    def _configuration(self, configuration: Any) -> Union[PlanConfiguration, PricingFailure]:
        if configuration is None:
            return PlanConfiguration()
        if isinstance(configuration, PlanConfiguration):
            return configuration
        if isinstance(configuration, Mapping):
            try:
                return PlanConfiguration.model_validate(dict(configuration))
            except SchemaValidationError as e:
                return self._fail("configuration", FailureCode.INVALID_CONFIGURATION,
                                  f"Invalid configuration: {e.error_count()} error(s)")
        return self._fail("configuration", FailureCode.INVALID_CONFIGURATION, "Invalid configuration")

    def _subscription(self, subscription: Any) -> Union[Subscription, PricingFailure]:
        if isinstance(subscription, Mapping):
            try:
                subscription = Subscription.model_validate(dict(subscription))
            except SchemaValidationError:
                return self._fail("subscription", FailureCode.INVALID_CONFIGURATION, "Invalid subscription")
        if isinstance(subscription, Subscription):
            set_subscription_context(subscription.id)
        if not isinstance(subscription, Subscription) or subscription.status not in ("active", "trial"):
            return self._fail("subscription", FailureCode.NO_ACTIVE_SUBSCRIPTION, "No active subscription found")
        if subscription.plan is None:
            return self._fail("subscription", FailureCode.PLAN_NOT_FOUND, "Subscription has no plan")
        return subscription

    # Core calculation

    def calculate_plan_cost(self, plan: PlanRef, configuration: Any = None) -> PricingResult:
        """Price one plan under a configuration."""
        resolved = self.resolve_plan(plan)
        if isinstance(resolved, PricingFailure):
            return resolved

        config = self._configuration(configuration)
        if isinstance(config, PricingFailure):
            return config.model_copy(update={"plan_id": resolved.id})

        calculation = calculate_plan_cost(resolved, config)
        self._record("calculate", "success")
        self.logger.debug(
            "Plan cost calculated",
            plan_id=resolved.id,
            billing_cycle=calculation.billing_cycle,
            total_price=calculation.total_price
        )
        return PlanCost(plan=PlanSummary.from_plan(resolved), calculation=calculation)

    def compare_plans(self, plans: Iterable[PlanRef], configuration: Any = None) -> Union[PlanComparison, PricingFailure]:
        """Price several plans under one configuration, cheapest first.

        Plans that fail to price are reported in ``failures`` and in
        ``results`` rather than dropped.
        """
        config = self._configuration(configuration)
        if isinstance(config, PricingFailure):
            return config

        results = [self.calculate_plan_cost(plan, config) for plan in plans]
        comparisons = sorted(
            (result for result in results if isinstance(result, PlanCost)),
            key=lambda result: result.calculation.total_price
        )
        failures = [result for result in results if isinstance(result, PricingFailure)]

        self._record("compare", "success")
        return PlanComparison(
            comparisons=comparisons,
            best_value=comparisons[0] if comparisons else None,
            failures=failures,
            results=results,
            configuration=config
        )

    def calculate_upgrade_cost(self, current_plan: PlanRef, target_plan: PlanRef,
                               configuration: Any = None) -> Union[UpgradeReport, PricingFailure]:
        """Cost delta of moving from one plan to another under one configuration."""
        current = self.calculate_plan_cost(current_plan, configuration)
        if isinstance(current, PricingFailure):
            return current
        target = self.calculate_plan_cost(target_plan, configuration)
        if isinstance(target, PricingFailure):
            return target

        difference = target.calculation.total_price - current.calculation.total_price
        monthly_difference = target.calculation.monthly_equivalent - current.calculation.monthly_equivalent

        self._record("upgrade", "success")
        return UpgradeReport(
            from_plan=current.plan,
            to_plan=target.plan,
            current_cost=current.calculation,
            target_cost=target.calculation,
            price_difference=difference,
            monthly_difference=monthly_difference,
            is_upgrade=difference > 0,
            savings=max(0.0, -difference),
            additional_cost=max(0.0, difference)
        )

    @staticmethod
    def calculate_break_even(current_cost: CostBreakdown, new_cost: CostBreakdown) -> BreakEven:
        """Months for a pricier plan's total to be recovered through its monthly delta.

        Returns the ``undefined`` status when the monthly equivalents are
        equal but the totals differ (only the setup fee changed).
        """
        difference = new_cost.total_price - current_cost.total_price
        monthly_savings = current_cost.monthly_equivalent - new_cost.monthly_equivalent

        if difference <= 0:
            return BreakEven(
                status=BreakEvenStatus.IMMEDIATE,
                break_even_months=0,
                break_even_cost=difference,
                monthly_savings=monthly_savings,
                message="No break-even needed - new plan is cheaper"
            )

        monthly_delta = new_cost.monthly_equivalent - current_cost.monthly_equivalent
        if monthly_delta == 0:
            return BreakEven(
                status=BreakEvenStatus.UNDEFINED,
                break_even_months=None,
                break_even_cost=difference,
                monthly_savings=monthly_savings,
                message="Break-even undefined - monthly cost is unchanged"
            )

        months = math.ceil(difference / abs(monthly_delta))
        return BreakEven(
            status=BreakEvenStatus.MONTHS,
            break_even_months=months,
            break_even_cost=difference,
            monthly_savings=monthly_savings,
            message=f"Break-even in {months} months"
        )

    # Tiers and recommendations

    @staticmethod
    def get_plan_tier(price: float) -> str:
        return get_plan_tier(price)

    @staticmethod
    def is_recommended_for_usage(plan: Plan, usage: Optional[UsageProfile] = None) -> bool:
        """Check if a plan suits the beds a tenant needs.

        Without a bed count the catalog's own ``is_recommended`` flag
        decides. A plan without ``max_beds_allowed`` has no upper bound.
        """
        beds = usage.beds if usage is not None else None
        if not beds:
            return plan.is_recommended

        if plan.max_beds_allowed is None:
            capacity = math.inf
        else:
            headroom = math.floor(plan.max_beds_allowed - plan.base_bed_count)
            capacity = plan.base_bed_count + headroom * RECOMMENDATION_CAPACITY_SHARE

        return plan.base_bed_count * RECOMMENDATION_MIN_FILL <= beds <= capacity

    def get_pricing_tiers(self, usage: Optional[UsageProfile] = None) -> PricingTiers:
        """Price every active public plan for the expected usage."""
        usage = usage or UsageProfile()
        tiers: List[PricingTier] = []

        for plan in self.catalog.list_plans(active_only=True, include_custom=False):
            configuration = PlanConfiguration(
                beds=usage.beds or plan.base_bed_count,
                branches=usage.branches or 1,
                billing_cycle=usage.billing_cycle or BillingCycle.MONTHLY
            )
            tiers.append(PricingTier(
                id=plan.id,
                name=plan.name,
                tier=get_plan_tier(plan.base_price),
                cost=calculate_plan_cost(plan, configuration),
                features=len(plan.modules),
                recommended=self.is_recommended_for_usage(plan, usage)
            ))

        tiers.sort(key=lambda tier: tier.cost.total_price)
        self._record("tiers", "success")
        return PricingTiers(
            tiers=tiers,
            recommended_tier=next((tier for tier in tiers if tier.recommended), None)
        )

    # Subscription reports

    @staticmethod
    def current_configuration(subscription: Subscription) -> PlanConfiguration:
        """Configuration a live subscription is billed for."""
        plan = subscription.plan
        restrictions = subscription.restrictions
        billing_cycle = subscription.billing_cycle
        if billing_cycle not in (BillingCycle.MONTHLY.value, BillingCycle.ANNUAL.value):
            billing_cycle = plan.billing_cycle

        return PlanConfiguration(
            beds=restrictions.max_beds if restrictions.max_beds is not None else plan.base_bed_count,
            branches=restrictions.max_branches if restrictions.max_branches is not None else plan.branch_count,
            billing_cycle=billing_cycle
        )

    def _current(self, subscription: Any) -> Union[Tuple[Subscription, PlanCost], PricingFailure]:
        sub = self._subscription(subscription)
        if isinstance(sub, PricingFailure):
            return sub
        # Priced from the plan snapshot held by the subscription
        current = self.calculate_plan_cost(sub.plan, self.current_configuration(sub))
        if isinstance(current, PricingFailure):
            return current
        return sub, current

    def get_current_usage_cost(self, subscription: Any) -> PricingResult:
        """Price a subscription's current configuration."""
        current = self._current(subscription)
        if isinstance(current, PricingFailure):
            return current
        return current[1]

    def get_scaling_projections(self, subscription: Any,
                                scenarios: Iterable[Any]) -> Union[ScalingReport, PricingFailure]:
        """Price perturbed configurations against the current one."""
        current = self._current(subscription)
        if isinstance(current, PricingFailure):
            return current
        sub, current_cost = current
        calculation = current_cost.calculation

        projections: List[ScalingProjection] = []
        for scenario in scenarios:
            if not isinstance(scenario, ScalingScenario):
                try:
                    scenario = ScalingScenario.model_validate(scenario)
                except SchemaValidationError:
                    return self._fail("projections", FailureCode.INVALID_CONFIGURATION,
                                      "Invalid scaling scenario", sub.plan.id)

            configuration = PlanConfiguration(
                beds=scenario.beds if scenario.beds is not None else calculation.beds,
                branches=scenario.branches if scenario.branches is not None else calculation.branches,
                billing_cycle=scenario.billing_cycle or calculation.billing_cycle
            )
            projected = calculate_plan_cost(sub.plan, configuration)
            difference = projected.total_price - calculation.total_price

            projections.append(ScalingProjection(
                scenario=scenario.name,
                configuration=configuration,
                current_cost=calculation.total_price,
                projected_cost=projected.total_price,
                difference=difference,
                monthly_impact=projected.monthly_equivalent - calculation.monthly_equivalent,
                potential_savings=max(0.0, -difference)
            ))

        recommendations = sorted(
            (projection for projection in projections if projection.difference < 0),
            key=lambda projection: projection.potential_savings,
            reverse=True
        )

        self._record("projections", "success")
        return ScalingReport(
            current_cost=calculation,
            projections=projections,
            recommendations=recommendations
        )

    def get_cost_optimization(self, subscription: Any) -> Union[OptimizationReport, PricingFailure]:
        """Suggest cheaper billing cycle, bed count or plan for a subscription."""
        current = self._current(subscription)
        if isinstance(current, PricingFailure):
            return current
        sub, current_cost = current
        plan = sub.plan
        calculation = current_cost.calculation
        configuration = PlanConfiguration(
            beds=calculation.beds,
            branches=calculation.branches,
            billing_cycle=calculation.billing_cycle
        )

        recommendations: List[CostRecommendation] = []

        if calculation.billing_cycle == BillingCycle.MONTHLY:
            annual = calculate_plan_cost(
                plan, configuration.model_copy(update={"billing_cycle": BillingCycle.ANNUAL})
            )
            # Recurring charges only; the setup fee is paid once either way
            savings = (calculation.monthly_equivalent - annual.monthly_equivalent) * MONTHS_PER_YEAR
            if savings > 0:
                recommendations.append(CostRecommendation(
                    type=RecommendationType.BILLING_CYCLE,
                    title="Switch to Annual Billing",
                    description=f"Save ₹{savings:,.2f} annually by switching to annual billing",
                    potential_savings=savings,
                    priority="high"
                ))

        if calculation.beds > plan.base_bed_count:
            reduced = calculate_plan_cost(
                plan,
                configuration.model_copy(update={"beds": max(plan.base_bed_count, calculation.beds - 1)})
            )
            savings = calculation.total_price - reduced.total_price
            if savings > 0:
                recommendations.append(CostRecommendation(
                    type=RecommendationType.BED_OPTIMIZATION,
                    title="Optimize Bed Count",
                    description=f"Reduce bed count by 1 to save ₹{savings:,.2f} per {calculation.billing_cycle} cycle",
                    potential_savings=savings,
                    priority="medium"
                ))

        cheapest: Optional[Tuple[Plan, float]] = None
        for candidate in self.catalog.list_plans(active_only=True, include_custom=False):
            if candidate.id == plan.id:
                continue
            savings = calculation.total_price - calculate_plan_cost(candidate, configuration).total_price
            if savings > 0 and (cheapest is None or savings > cheapest[1]):
                cheapest = (candidate, savings)

        if cheapest is not None:
            candidate, savings = cheapest
            recommendations.append(CostRecommendation(
                type=RecommendationType.PLAN_CHANGE,
                title=f"Switch to {candidate.name}",
                description=f"{candidate.name} costs ₹{savings:,.2f} less for the same configuration",
                potential_savings=savings,
                priority="low",
                plan_id=candidate.id
            ))

        recommendations.sort(key=lambda recommendation: recommendation.potential_savings, reverse=True)

        self._record("optimization", "success")
        return OptimizationReport(
            current_cost=calculation,
            recommendations=recommendations,
            total_potential_savings=sum(r.potential_savings for r in recommendations)
        )
