"""
Entitlement request, response and result models.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from shared.models import ApiModel, PermissionSet


class CheckType(str, Enum):
    """Kinds of entitlement checks exposed over HTTP."""
    MODULE = "module"
    FEATURE = "feature"
    PERMISSION = "permission"
    ACTION = "action"
    ROUTE = "route"
    MULTI_BRANCH = "multi_branch"


@dataclass
class UsageCheck:
    """Outcome of a bed/branch cap check."""
    allowed: bool
    resource_type: str
    current_usage: Optional[int] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class FeatureAccessCheck:
    """Outcome of a resource -> module check."""
    allowed: bool
    resource_type: str
    required_module: Optional[str] = None
    reason: Optional[str] = None


class SubscriptionSummary(ApiModel):
    """Display summary of a subscription's limits and usage."""
    plan_name: str
    status: str
    beds_used: int
    beds_limit: int
    branches_used: int
    branches_limit: int
    allows_multiple_branches: bool
    is_subscribed: bool
    trial_end_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class EntitlementCheckRequest(ApiModel):
    """Request model for entitlement checks.

    ``subscription`` is kept as a raw mapping; the evaluator treats a
    payload that does not validate as an absent subscription.
    """
    subscription: Optional[Dict[str, Any]] = Field(None, description="Subscription snapshot")
    check: CheckType = Field(..., description="Kind of check")
    module: Optional[str] = Field(None, description="Module name")
    submodule: Optional[str] = Field(None, description="Submodule name")
    permission: Optional[str] = Field(None, description="create|read|update|delete")
    action: Optional[str] = Field(None, description="Action verb, e.g. view or edit")
    route: Optional[str] = Field(None, description="Route path")
    feature: Optional[str] = Field(None, description="Feature toggle name")


class EntitlementCheckResponse(ApiModel):
    """Response model for entitlement checks."""
    allowed: bool = Field(..., description="Whether the action is allowed")
    check: CheckType
    reason: Optional[str] = Field(None, description="Reason for the decision")
    upgrade_required: bool = Field(False, description="Caller should render an upgrade prompt")
    trial: bool = Field(False, description="Decision came from the trial bypass")


class PermissionLookupRequest(ApiModel):
    """Request model for raw submodule permissions."""
    subscription: Optional[Dict[str, Any]] = None
    module: str
    submodule: str


class PermissionLookupResponse(ApiModel):
    """Raw permission set of a submodule, or null."""
    module: str
    submodule: str
    permissions: Optional[PermissionSet] = None
    restricted: bool = False


class UsageRequest(ApiModel):
    """Request model for usage signals."""
    subscription: Optional[Dict[str, Any]] = None
    threshold: Optional[float] = Field(None, ge=0)


class UsageResponse(ApiModel):
    """Usage signals derived from a subscription."""
    summary: SubscriptionSummary
    remaining_beds: int
    remaining_branches: int
    bed_usage_percentage: int
    branch_usage_percentage: int
    approaching_bed_limit: bool
    approaching_branch_limit: bool
    is_free_plan: bool
    module_names: List[str] = Field(default_factory=list)
