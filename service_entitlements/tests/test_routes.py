"""
Unit tests for the route access table.
"""

import pytest

from service_entitlements.app.rules.routes import DEFAULT_ROUTE_RULES, RouteAccessTable, RouteRule


class TestRouteAccessTable:
    """Test cases for RouteAccessTable."""

    @pytest.fixture
    def table(self):
        return RouteAccessTable()

    @pytest.mark.parametrize("path,module", [
        ("/residents", "resident_management"),
        ("/onboarding/new", "resident_management"),
        ("/moved-out", "resident_management"),
        ("/room-availability", "room_allocation"),
        ("/payments", "payment_tracking"),
        ("/tickets/12", "ticket_system"),
        ("/reports", "analytics_reports"),
        ("/qr-management", "qr_code_payments"),
    ])
    def test_module_routes(self, table, path, module):
        rule = table.match(path)

        assert rule is not None
        assert rule.module == module
        assert rule.always_allowed is False

    def test_always_allowed_routes(self, table):
        for path in ("/dashboard", "/settings", "/pg-management", "/activities"):
            assert table.match(path).always_allowed is True

    def test_branch_activities_is_not_an_activity_route(self, table):
        rule = table.match("/branch-activities")

        assert rule.requires_multiple_branches is True
        assert rule.always_allowed is False

    def test_first_match_wins(self, table):
        # Dashboard sub-pages are open even when they name a gated section
        assert table.match("/dashboard/payments").always_allowed is True

    def test_unmatched(self, table):
        assert table.match("/profile") is None
        assert table.default_allow is True

    def test_custom_rules(self):
        table = RouteAccessTable(
            rules=[RouteRule(patterns=("/exports",), module="bulk_upload")],
            default_allow=False
        )

        assert table.match("/exports/csv").module == "bulk_upload"
        assert table.match("/residents") is None
        assert table.default_allow is False

    def test_default_rules_are_ordered(self):
        assert DEFAULT_ROUTE_RULES[0].always_allowed is True
        assert DEFAULT_ROUTE_RULES[-1].requires_multiple_branches is True
