"""
Plan cost arithmetic.
"""

from typing import Optional

from shared.models import BillingCycle, Plan
from .constants import GST_RATE_PERCENT, MONTHS_PER_YEAR, TIER_BREAKPOINTS, TOP_TIER
from .models import CostBreakdown, PlanConfiguration


def calculate_plan_cost(plan: Plan, configuration: Optional[PlanConfiguration] = None) -> CostBreakdown:
    """Price a plan for the given beds, branches and billing cycle.

    Unset configuration fields fall back to the plan's own base bed count,
    branch count and billing cycle. Beds above the base are topped up per
    bed; branches above the included count are charged only on plans that
    allow multiple branches. Annual billing multiplies the monthly charge
    by twelve and applies the plan's discount. GST is charged on the
    subtotal, then the one-time setup fee is added untaxed. The monthly
    equivalent excludes the setup fee.

    Nothing is rounded here; presentation rounds for display.
    """
    configuration = configuration or PlanConfiguration()

    beds = configuration.beds if configuration.beds is not None else plan.base_bed_count
    branches = configuration.branches if configuration.branches is not None else plan.branch_count
    billing_cycle = configuration.billing_cycle or plan.billing_cycle
    annual = billing_cycle == BillingCycle.ANNUAL

    extra_beds = max(0, beds - plan.base_bed_count)
    extra_bed_cost = extra_beds * plan.top_up_price_per_bed

    extra_branches = max(0, branches - plan.branch_count) if plan.allow_multiple_branches else 0
    branch_cost = extra_branches * plan.cost_per_branch

    raw_monthly = plan.base_price + extra_bed_cost + branch_cost

    if annual:
        annual_discount = raw_monthly * MONTHS_PER_YEAR * (plan.annual_discount_percent / 100)
        subtotal = raw_monthly * MONTHS_PER_YEAR - annual_discount
    else:
        annual_discount = 0.0
        subtotal = raw_monthly

    tax_amount = subtotal * GST_RATE_PERCENT / 100
    recurring = subtotal + tax_amount
    total_price = recurring + plan.setup_fee
    monthly_equivalent = recurring / MONTHS_PER_YEAR if annual else recurring

    return CostBreakdown(
        billing_cycle=billing_cycle,
        beds=beds,
        base_price=plan.base_price,
        extra_beds=extra_beds,
        extra_bed_cost=extra_bed_cost,
        branches=branches,
        extra_branches=extra_branches,
        branch_cost=branch_cost,
        subtotal=subtotal,
        annual_discount=annual_discount,
        tax_rate=GST_RATE_PERCENT,
        tax_amount=tax_amount,
        setup_fee=plan.setup_fee,
        total_price=total_price,
        monthly_equivalent=monthly_equivalent,
        savings=annual_discount
    )


def get_plan_tier(price: float) -> str:
    """Map a base price onto a coarse tier label."""
    for upper_bound, tier in TIER_BREAKPOINTS:
        if price < upper_bound:
            return tier
    return TOP_TIER
