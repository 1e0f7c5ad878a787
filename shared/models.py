"""
Plan and subscription models shared by the entitlements and pricing services.

Shapes accept the camelCase field names used by the platform API as well as
snake_case names, and serialize with camelCase aliases.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model for platform payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


class BillingCycle(str, Enum):
    """Plan billing cycles."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states."""
    FREE = "free"
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PlanStatus(str, Enum):
    """Catalog plan states."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


# Submodules a newly authored plan module grants full access to
MODULE_SUBMODULES: Dict[str, List[str]] = {
    "resident_management": ["residents", "onboarding", "offboarding", "room_switching", "moved_out"],
    "payment_tracking": ["payments", "payment_history", "payment_reports"],
    "room_allocation": ["rooms", "room_availability", "room_assignments"],
    "qr_code_payments": ["qr_generation", "qr_scanning", "payment_processing"],
    "ticket_system": ["tickets", "ticket_categories", "ticket_priorities"],
    "analytics_reports": ["dashboard", "reports", "charts", "exports"],
    "bulk_upload": ["file_upload", "data_validation", "bulk_import"],
    "email_notifications": ["email_templates", "email_sending", "email_history"],
    "sms_notifications": ["sms_templates", "sms_sending", "sms_history"],
    "multi_branch": ["branch_management", "branch_switching", "branch_reports"],
    "custom_reports": ["report_builder", "custom_queries", "report_scheduling"],
    "api_access": ["api_keys", "api_endpoints", "api_logs"],
    "mobile_app": ["mobile_sync", "push_notifications", "offline_mode"],
    "advanced_analytics": ["advanced_charts", "predictive_analytics", "data_insights"],
}


class PermissionSet(ApiModel):
    """CRUD capability tuple for a submodule. Missing verbs deny."""
    create: bool = False
    read: bool = False
    update: bool = False
    delete: bool = False

    def is_complete(self) -> bool:
        return self.create and self.read and self.update and self.delete


class ModuleEntitlement(ApiModel):
    """Module entry of a plan or of a subscription's restrictions."""
    name: str = Field(..., validation_alias=AliasChoices("name", "moduleName", "module_name"))
    enabled: bool = True
    limit: Optional[int] = None
    permissions: Dict[str, PermissionSet] = Field(default_factory=dict)

    def with_default_permissions(self) -> "ModuleEntitlement":
        """Grant full access on every known submodule when no permission map was supplied.

        An authored map, even an empty one, is kept as is; submodules it
        leaves out stay denied.
        """
        if "permissions" in self.model_fields_set:
            return self
        permissions = {
            submodule: PermissionSet(create=True, read=True, update=True, delete=True)
            for submodule in MODULE_SUBMODULES.get(self.name, [])
        }
        return self.model_copy(update={"permissions": permissions})


class Feature(ApiModel):
    """Named boolean toggle."""
    name: str
    description: Optional[str] = None
    enabled: bool = True


class Plan(ApiModel):
    """Immutable catalog entry."""
    id: str
    name: str = Field(..., validation_alias=AliasChoices("name", "planName", "plan_name"))
    description: Optional[str] = None
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    base_price: float = Field(..., ge=0)
    base_bed_count: int = Field(..., ge=0)
    branch_count: int = Field(default=1, ge=0)
    top_up_price_per_bed: float = Field(default=0, ge=0)
    cost_per_branch: float = Field(default=0, ge=0)
    allow_multiple_branches: bool = False
    annual_discount_percent: float = Field(
        default=0,
        ge=0,
        le=100,
        validation_alias=AliasChoices(
            "annualDiscountPercent", "annual_discount_percent", "annualDiscount", "annual_discount"
        ),
    )
    setup_fee: float = Field(default=0, ge=0)
    max_beds_allowed: Optional[int] = Field(default=None, ge=0)
    is_recommended: bool = False
    is_custom_plan: bool = False
    status: PlanStatus = PlanStatus.ACTIVE
    trial_period_days: int = Field(default=0, ge=0)
    modules: List[ModuleEntitlement] = Field(default_factory=list)
    features: List[Feature] = Field(default_factory=list)


class Usage(ApiModel):
    """Mutable usage counters of a subscription."""
    beds_used: int = Field(default=0, ge=0)
    branches_used: int = Field(default=0, ge=0)


class Restrictions(ApiModel):
    """Cached view of the plan limits attached to a subscription."""
    max_beds: Optional[int] = Field(default=None, ge=0)
    max_branches: Optional[int] = Field(default=None, ge=0)
    modules: List[ModuleEntitlement] = Field(default_factory=list)
    features: List[Feature] = Field(default_factory=list)


class Subscription(ApiModel):
    """A tenant's live binding to a plan.

    ``plan`` is the snapshot taken when the tenant subscribed; pricing of a
    live subscription reads this snapshot, not the current catalog row.
    """
    id: Optional[str] = None
    user_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.FREE
    plan: Optional[Plan] = None
    billing_cycle: Optional[str] = None
    usage: Usage = Field(default_factory=Usage)
    restrictions: Restrictions = Field(default_factory=Restrictions)
    is_trial_active: bool = False
    trial_end_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
