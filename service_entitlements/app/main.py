"""
Entitlements service for PG Access Layer.
"""

from typing import Optional, Tuple

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AuthorizationError, ValidationError
from shared.logging import set_subscription_context
from shared.models import Subscription

from .rules.evaluator import EntitlementEvaluator, coerce_subscription
from .rules.models import (
    CheckType, EntitlementCheckRequest, EntitlementCheckResponse,
    PermissionLookupRequest, PermissionLookupResponse,
    UsageRequest, UsageResponse,
)
from .rules.routes import RouteAccessTable


class EntitlementsService(BaseService):
    """Entitlements service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("entitlements", 8011, config)

        self.evaluator = EntitlementEvaluator(
            route_table=RouteAccessTable(default_allow=self.config.route_default_allow),
            approaching_threshold=self.config.approaching_limit_threshold
        )

        self._setup_entitlements_routes()

    def evaluate(self, request: EntitlementCheckRequest) -> EntitlementCheckResponse:
        """Run one entitlement check."""
        subscription = coerce_subscription(request.subscription)
        set_subscription_context(subscription.id if subscription else None)
        trial = self.evaluator.is_trial(subscription)
        check = CheckType(request.check)

        with self.metrics.time_operation("entitlement_check_duration_seconds", check=check.value):
            allowed, subject = self._dispatch(check, request, subscription)

        decision = "allow" if allowed else "deny"
        self.metrics.increment_counter("entitlement_checks_total", check=check.value, decision=decision)

        self.logger.debug(
            "Entitlement check result",
            check=check.value,
            subject=subject,
            allowed=allowed,
            trial=trial,
            subscription_id=subscription.id if subscription else None
        )

        if allowed:
            reason = "Trial access" if trial else f"Plan includes {subject}"
        else:
            reason = f"Current plan does not include {subject}"

        return EntitlementCheckResponse(
            allowed=allowed,
            check=check,
            reason=reason,
            upgrade_required=not allowed,
            trial=trial
        )

    def _dispatch(self, check: CheckType, request: EntitlementCheckRequest,
                  subscription: Optional[Subscription]) -> Tuple[bool, str]:
        if check == CheckType.MODULE:
            self._require(request, "module")
            return self.evaluator.has_module(request.module, subscription), request.module
        if check == CheckType.FEATURE:
            self._require(request, "feature")
            return self.evaluator.has_feature(request.feature, subscription), request.feature
        if check == CheckType.PERMISSION:
            self._require(request, "module", "submodule", "permission")
            allowed = self.evaluator.has_permission(
                request.module, request.submodule, request.permission, subscription
            )
            return allowed, f"{request.module}.{request.submodule}:{request.permission}"
        if check == CheckType.ACTION:
            self._require(request, "module", "submodule", "action")
            allowed = self.evaluator.can_perform_action_on_submodule(
                request.module, request.submodule, request.action, subscription
            )
            return allowed, f"{request.module}.{request.submodule}:{request.action}"
        if check == CheckType.ROUTE:
            self._require(request, "route")
            return self.evaluator.can_access_route(request.route, subscription), request.route
        return self.evaluator.allows_multiple_branches(subscription), "multiple branches"

    @staticmethod
    def _require(request: EntitlementCheckRequest, *fields: str):
        missing = [field for field in fields if not getattr(request, field)]
        if missing:
            raise ValidationError(
                f"Missing fields for {CheckType(request.check).value} check",
                details={"missing": missing}
            )

    def _setup_entitlements_routes(self):
        """Set up entitlements-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "entitlements",
                "message": "PG Access Layer - Entitlements Service",
                "version": "1.0.0",
                "capabilities": ["modules", "permissions", "routes", "usage"]
            }

        @self.app.post("/entitlements/check", response_model=EntitlementCheckResponse)
        async def check_entitlements(request: EntitlementCheckRequest):
            """Check one entitlement and return the decision."""
            return self.evaluate(request)

        @self.app.post("/entitlements/require", response_model=EntitlementCheckResponse)
        async def require_entitlement(request: EntitlementCheckRequest):
            """Check one entitlement and reject with 403 when denied."""
            result = self.evaluate(request)
            if not result.allowed:
                self.metrics.record_business_event("upgrade_prompt")
                raise AuthorizationError(
                    details={
                        "check": result.check,
                        "reason": result.reason,
                        "upgrade_required": True,
                        "module": request.module,
                        "route": request.route,
                    }
                )
            return result

        @self.app.post("/entitlements/permissions", response_model=PermissionLookupResponse)
        async def submodule_permissions(request: PermissionLookupRequest):
            """Raw submodule permissions for UI indicators."""
            subscription = coerce_subscription(request.subscription)
            return PermissionLookupResponse(
                module=request.module,
                submodule=request.submodule,
                permissions=self.evaluator.get_submodule_permissions(
                    request.module, request.submodule, subscription
                ),
                restricted=self.evaluator.has_restricted_permissions(request.module, subscription)
            )

        @self.app.post("/entitlements/usage", response_model=UsageResponse)
        async def usage(request: UsageRequest):
            """Usage signals for dashboards."""
            subscription = coerce_subscription(request.subscription)
            return UsageResponse(
                summary=self.evaluator.get_subscription_summary(subscription),
                remaining_beds=self.evaluator.get_remaining_beds(subscription),
                remaining_branches=self.evaluator.get_remaining_branches(subscription),
                bed_usage_percentage=self.evaluator.get_bed_usage_percentage(subscription),
                branch_usage_percentage=self.evaluator.get_branch_usage_percentage(subscription),
                approaching_bed_limit=self.evaluator.is_approaching_bed_limit(
                    subscription, request.threshold
                ),
                approaching_branch_limit=self.evaluator.is_approaching_branch_limit(
                    subscription, request.threshold
                ),
                is_free_plan=self.evaluator.is_free_plan(subscription),
                module_names=[
                    module.name for module in subscription.restrictions.modules if module.enabled
                ] if subscription else []
            )


def create_app(config: Optional[ServiceConfig] = None):
    """Create entitlements service application."""
    service = EntitlementsService(config)
    return service.app


if __name__ == "__main__":
    service = EntitlementsService()
    service.run()
