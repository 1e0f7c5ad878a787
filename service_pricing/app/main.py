"""
Pricing service for PG Access Layer.
"""

from typing import Any, Dict, List, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.models import Plan

from .calculator.engine import PricingEngine
from .calculator.models import (
    BreakEven, CalculateRequest, CompareRequest, OptimizationReport, PlanComparison,
    PlanCost, PricingFailure, PricingTiers, ProjectionRequest, ScalingReport,
    SubscriptionRequest, UpgradeReport, UpgradeRequest, UsageProfile,
)
from .catalog.store import PlanCatalog


class PricingService(BaseService):
    """Pricing service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, catalog: Optional[PlanCatalog] = None):
        super().__init__("pricing", 8012, config)

        self.catalog = catalog if catalog is not None else PlanCatalog()
        if self.config.plan_catalog_file:
            self.catalog.load_from_file(self.config.plan_catalog_file)

        self.engine = PricingEngine(self.catalog, metrics=self.metrics)

        self._setup_pricing_routes()

    def _timed(self, operation: str):
        return self.metrics.time_operation("pricing_calculation_duration_seconds", operation=operation)

    @staticmethod
    def _unwrap(result: Any) -> Any:
        """Raise the mapped service error for a failure, else pass the result through."""
        if isinstance(result, PricingFailure):
            raise result.to_exception()
        return result

    def _setup_pricing_routes(self):
        """Set up pricing-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "pricing",
                "message": "PG Access Layer - Pricing Service",
                "version": "1.0.0",
                "catalog": self.catalog.get_catalog_stats()
            }

        @self.app.get("/pricing/plans", response_model=List[Plan])
        async def list_plans(active_only: bool = False, include_custom: bool = True):
            """List catalog plans ordered by base price."""
            return self.catalog.list_plans(active_only=active_only, include_custom=include_custom)

        @self.app.post("/pricing/plans", response_model=Plan, status_code=201)
        async def add_plan(plan: Dict[str, Any]):
            """Add or replace a catalog plan."""
            created = self.catalog.add_plan(plan)
            self.metrics.record_business_event("plan_saved")
            return created

        @self.app.get("/pricing/plans/{plan_id}", response_model=Plan)
        async def get_plan(plan_id: str):
            """Get a catalog plan."""
            return self.catalog.require_plan(plan_id)

        @self.app.post("/pricing/calculate", response_model=PlanCost)
        async def calculate(request: CalculateRequest):
            """Price one plan under a configuration."""
            with self._timed("calculate"):
                result = self.engine.calculate_plan_cost(request.reference(), request.configuration)
            return self._unwrap(result)

        @self.app.post("/pricing/compare", response_model=PlanComparison)
        async def compare(request: CompareRequest):
            """Compare plans; unknown ids are reported, not fatal."""
            with self._timed("compare"):
                result = self.engine.compare_plans(request.plan_ids, request.configuration)
            return self._unwrap(result)

        @self.app.post("/pricing/upgrade", response_model=UpgradeReport)
        async def upgrade(request: UpgradeRequest):
            """Cost delta between two plans."""
            with self._timed("upgrade"):
                result = self.engine.calculate_upgrade_cost(
                    request.current_plan_id, request.target_plan_id, request.configuration
                )
            return self._unwrap(result)

        @self.app.post("/pricing/break-even", response_model=BreakEven)
        async def break_even(request: UpgradeRequest):
            """Months until a plan change pays back."""
            with self._timed("break_even"):
                result = self.engine.calculate_upgrade_cost(
                    request.current_plan_id, request.target_plan_id, request.configuration
                )
            report = self._unwrap(result)
            return self.engine.calculate_break_even(report.current_cost, report.target_cost)

        @self.app.post("/pricing/tiers", response_model=PricingTiers)
        async def tiers(usage: Optional[UsageProfile] = None):
            """Active public plans priced for the expected usage."""
            with self._timed("tiers"):
                return self.engine.get_pricing_tiers(usage)

        @self.app.post("/pricing/optimization", response_model=OptimizationReport)
        async def optimization(request: SubscriptionRequest):
            """Savings suggestions for a live subscription."""
            with self._timed("optimization"):
                result = self.engine.get_cost_optimization(request.subscription)
            return self._unwrap(result)

        @self.app.post("/pricing/projections", response_model=ScalingReport)
        async def projections(request: ProjectionRequest):
            """Cost of scaling a live subscription up or down."""
            with self._timed("projections"):
                result = self.engine.get_scaling_projections(request.subscription, request.scenarios)
            return self._unwrap(result)


def create_app(config: Optional[ServiceConfig] = None, catalog: Optional[PlanCatalog] = None):
    """Create pricing service application."""
    service = PricingService(config, catalog)
    return service.app


if __name__ == "__main__":
    service = PricingService()
    service.run()
