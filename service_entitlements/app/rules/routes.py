"""
Route access table for the Entitlements Service.

Maps URL path substrings to the module a subscription must have enabled.
Rules are checked in order and the first match decides. Paths that match
no rule fall back to ``default_allow``.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple


@dataclass(frozen=True)
class RouteRule:
    """A group of path substrings sharing one requirement."""
    patterns: Tuple[str, ...]
    module: Optional[str] = None
    requires_multiple_branches: bool = False
    excludes: Tuple[str, ...] = ()

    @property
    def always_allowed(self) -> bool:
        return self.module is None and not self.requires_multiple_branches

    def matches(self, path: str) -> bool:
        if any(excluded in path for excluded in self.excludes):
            return False
        return any(pattern in path for pattern in self.patterns)


DEFAULT_ROUTE_RULES: Tuple[RouteRule, ...] = (
    RouteRule(patterns=("/dashboard", "/settings", "/pg-management")),
    RouteRule(patterns=("/activities",), excludes=("/branch-activities",)),
    RouteRule(
        patterns=("/residents", "/onboarding", "/offboarding", "/moved-out"),
        module="resident_management",
    ),
    RouteRule(patterns=("/room-switching", "/room-availability"), module="room_allocation"),
    RouteRule(patterns=("/payments",), module="payment_tracking"),
    RouteRule(patterns=("/tickets",), module="ticket_system"),
    RouteRule(patterns=("/reports",), module="analytics_reports"),
    RouteRule(patterns=("/qr-management",), module="qr_code_payments"),
    RouteRule(patterns=("/branch-activities",), requires_multiple_branches=True),
)


class RouteAccessTable:
    """Ordered route rules plus the decision for unmatched paths."""

    def __init__(self, rules: Optional[Iterable[RouteRule]] = None, default_allow: bool = True):
        self.rules: Tuple[RouteRule, ...] = tuple(rules) if rules is not None else DEFAULT_ROUTE_RULES
        # Unmatched paths are allowed unless configured otherwise
        self.default_allow = default_allow

    def match(self, path: str) -> Optional[RouteRule]:
        """Return the first rule matching the path, if any."""
        for rule in self.rules:
            if rule.matches(path):
                return rule
        return None
