"""
Pricing data models.

Every engine operation returns either a success model (``success`` is
true) or a ``PricingFailure`` so batch callers can skip a bad plan and
keep going.
"""

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import ConfigDict, Field

from shared.errors import (
    InvalidConfigurationError, PGAccessException, PlanNotFoundError, SubscriptionRequiredError,
)
from shared.models import ApiModel, BillingCycle, Plan, Subscription


class PlanConfiguration(ApiModel):
    """Desired beds, branches and cycle. Unset fields fall back to the plan."""
    beds: Optional[int] = Field(None, ge=0)
    branches: Optional[int] = Field(None, ge=0)
    billing_cycle: Optional[BillingCycle] = None


class CostBreakdown(ApiModel):
    """Itemised charge for one plan and configuration."""

    model_config = ConfigDict(frozen=True)

    billing_cycle: BillingCycle
    beds: int
    base_price: float
    extra_beds: int
    extra_bed_cost: float
    branches: int
    extra_branches: int
    branch_cost: float
    subtotal: float
    annual_discount: float
    tax_rate: float
    tax_amount: float
    setup_fee: float
    total_price: float
    monthly_equivalent: float
    savings: float


class PlanSummary(ApiModel):
    """Plan identity attached to a calculation."""
    id: str
    name: str
    billing_cycle: BillingCycle
    base_bed_count: int
    branch_count: int
    features: int = Field(0, description="Number of modules on the plan")

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanSummary":
        return cls(
            id=plan.id,
            name=plan.name,
            billing_cycle=plan.billing_cycle,
            base_bed_count=plan.base_bed_count,
            branch_count=plan.branch_count,
            features=len(plan.modules)
        )


class FailureCode(str, Enum):
    """Structural pricing failures."""
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"


class PricingFailure(ApiModel):
    """Tagged failure result."""
    success: Literal[False] = False
    code: FailureCode
    message: str
    plan_id: Optional[str] = None

    def to_exception(self) -> PGAccessException:
        """Convert to the service error for this failure."""
        details = {"plan_id": self.plan_id} if self.plan_id else {}
        if self.code == FailureCode.PLAN_NOT_FOUND:
            return PlanNotFoundError(self.plan_id, self.message)
        if self.code == FailureCode.NO_ACTIVE_SUBSCRIPTION:
            return SubscriptionRequiredError(self.message, details)
        return InvalidConfigurationError(self.message, details)


class PlanCost(ApiModel):
    """Successful calculation for one plan."""
    success: Literal[True] = True
    plan: PlanSummary
    calculation: CostBreakdown


PricingResult = Union[PlanCost, PricingFailure]


class PlanComparison(ApiModel):
    """Plans priced under one configuration, cheapest first."""
    success: Literal[True] = True
    comparisons: List[PlanCost] = Field(default_factory=list)
    best_value: Optional[PlanCost] = None
    failures: List[PricingFailure] = Field(default_factory=list)
    results: List[Union[PlanCost, PricingFailure]] = Field(
        default_factory=list, description="Per-plan outcome in request order"
    )
    configuration: PlanConfiguration


class UpgradeReport(ApiModel):
    """Cost delta of moving between two plans."""
    success: Literal[True] = True
    from_plan: PlanSummary
    to_plan: PlanSummary
    current_cost: CostBreakdown
    target_cost: CostBreakdown
    price_difference: float
    monthly_difference: float
    is_upgrade: bool
    savings: float
    additional_cost: float


class BreakEvenStatus(str, Enum):
    IMMEDIATE = "immediate"
    MONTHS = "months"
    UNDEFINED = "undefined"


class BreakEven(ApiModel):
    """Months until a pricier plan pays back through its monthly delta."""
    status: BreakEvenStatus
    break_even_months: Optional[int] = None
    break_even_cost: float = 0
    monthly_savings: float = 0
    message: str


class UsageProfile(ApiModel):
    """Usage a tenant expects, used for tiers and recommendations."""
    beds: Optional[int] = Field(None, ge=0)
    branches: Optional[int] = Field(None, ge=0)
    billing_cycle: Optional[BillingCycle] = None


class PricingTier(ApiModel):
    id: str
    name: str
    tier: str
    cost: CostBreakdown
    features: int
    recommended: bool


class PricingTiers(ApiModel):
    success: Literal[True] = True
    tiers: List[PricingTier] = Field(default_factory=list)
    recommended_tier: Optional[PricingTier] = None


class ScalingScenario(ApiModel):
    """Perturbed configuration to project. Unset fields keep current values."""
    name: str
    beds: Optional[int] = Field(None, ge=0)
    branches: Optional[int] = Field(None, ge=0)
    billing_cycle: Optional[BillingCycle] = None


class ScalingProjection(ApiModel):
    scenario: str
    configuration: PlanConfiguration
    current_cost: float
    projected_cost: float
    difference: float
    monthly_impact: float
    potential_savings: float


class ScalingReport(ApiModel):
    success: Literal[True] = True
    current_cost: CostBreakdown
    projections: List[ScalingProjection] = Field(default_factory=list)
    recommendations: List[ScalingProjection] = Field(
        default_factory=list, description="Cheaper projections, largest savings first"
    )


class RecommendationType(str, Enum):
    BILLING_CYCLE = "billing_cycle"
    BED_OPTIMIZATION = "bed_optimization"
    PLAN_CHANGE = "plan_change"


class CostRecommendation(ApiModel):
    type: RecommendationType
    title: str
    description: str
    potential_savings: float
    priority: Literal["high", "medium", "low"]
    plan_id: Optional[str] = None


class OptimizationReport(ApiModel):
    success: Literal[True] = True
    current_cost: CostBreakdown
    recommendations: List[CostRecommendation] = Field(default_factory=list)
    total_potential_savings: float = 0


# Request payloads

class PlanReferenceRequest(ApiModel):
    """A catalog plan id or an inline plan."""
    plan_id: Optional[str] = None
    plan: Optional[Plan] = None

    def reference(self) -> Union[Plan, str, None]:
        return self.plan if self.plan is not None else self.plan_id


class CalculateRequest(PlanReferenceRequest):
    configuration: Optional[PlanConfiguration] = None


class CompareRequest(ApiModel):
    plan_ids: List[str] = Field(..., min_length=1)
    configuration: Optional[PlanConfiguration] = None


class UpgradeRequest(ApiModel):
    current_plan_id: str
    target_plan_id: str
    configuration: Optional[PlanConfiguration] = None


class SubscriptionRequest(ApiModel):
    subscription: Subscription


class ProjectionRequest(SubscriptionRequest):
    scenarios: List[ScalingScenario] = Field(default_factory=list)
