"""
In-memory plan catalog for Pricing Service.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from shared.errors import InvalidConfigurationError, PlanNotFoundError
from shared.logging import get_logger
from shared.models import Plan


class PlanCatalog:
    """Plan store keyed by plan id.

    Stands in for the platform's document store. Plans added here get
    full access on every known submodule of their modules that carries no
    explicit permission entry.
    """

    def __init__(self, plans: Optional[List[Plan]] = None):
        self.logger = get_logger("pricing.catalog")
        self.plans: Dict[str, Plan] = {}
        for plan in plans or []:
            self.add_plan(plan)

    def add_plan(self, plan: Union[Plan, Dict[str, Any]]) -> Plan:
        """Add or replace a plan."""
        if not isinstance(plan, Plan):
            try:
                plan = Plan.model_validate(plan)
            except SchemaValidationError as e:
                raise InvalidConfigurationError(
                    "Invalid plan definition",
                    details={"errors": [error["msg"] for error in e.errors()]}
                ) from e

        plan = plan.model_copy(update={
            "modules": [module.with_default_permissions() for module in plan.modules]
        })
        self.plans[plan.id] = plan
        self.logger.info("Plan added", plan_id=plan.id, name=plan.name)
        return plan

    def update_plan(self, plan: Plan) -> bool:
        """Replace an existing plan."""
        if plan.id not in self.plans:
            return False
        self.add_plan(plan)
        return True

    def remove_plan(self, plan_id: str) -> bool:
        """Remove a plan from the catalog."""
        if plan_id in self.plans:
            plan = self.plans.pop(plan_id)
            self.logger.info("Plan removed", plan_id=plan_id, name=plan.name)
            return True
        return False

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        """Get a plan by ID."""
        return self.plans.get(plan_id)

    def require_plan(self, plan_id: str) -> Plan:
        """Get a plan by ID or raise PlanNotFoundError."""
        plan = self.get_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def list_plans(self, active_only: bool = False, include_custom: bool = True) -> List[Plan]:
        """List plans ordered by base price."""
        plans = [
            plan for plan in self.plans.values()
            if (not active_only or plan.status == "active")
            and (include_custom or not plan.is_custom_plan)
        ]
        plans.sort(key=lambda p: p.base_price)
        return plans

    def load_from_file(self, path: Union[str, Path]) -> int:
        """Load a JSON list of plans. Returns the number loaded."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, dict):
            data = data.get("plans", [])

        for entry in data:
            self.add_plan(entry)

        self.logger.info("Plan catalog loaded", path=str(path), plans=len(data))
        return len(data)

    def clear(self):
        """Clear all plans from the catalog."""
        self.plans.clear()
        self.logger.info("Plan catalog cleared")

    def get_catalog_stats(self) -> Dict[str, Any]:
        """Get catalog statistics."""
        return {
            "total_plans": len(self.plans),
            "active_plans": len([p for p in self.plans.values() if p.status == "active"]),
            "custom_plans": len([p for p in self.plans.values() if p.is_custom_plan]),
            "billing_cycles": sorted(set(p.billing_cycle for p in self.plans.values()))
        }
