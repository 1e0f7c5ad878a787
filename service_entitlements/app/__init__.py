"""
Entitlements Service package for the PG Access Layer.

This package decides whether a tenant's subscription may use a module,
submodule permission, feature or route, and derives usage signals from
the subscription's caps. It provides:

- app.main: API surface for entitlement checks and health.
- app.rules: Subscription evaluator, route access table and constants.

Guidelines:
- The service is stateless; subscription snapshots arrive with each request.
- Missing data denies. Routes matching no rule follow configuration.
- Keep evaluation deterministic and observable (metrics + logs).
"""
