"""
Pricing Service package for the PG Access Layer.

Turns a catalog plan plus a desired configuration (beds, branches,
billing cycle) into an itemised charge, and builds comparison, upgrade,
break-even, tier and optimisation reports on top of that calculation.

- app.main: API surface for pricing and plan catalog endpoints.
- app.calculator: Cost breakdown arithmetic, pricing engine and result models.
- app.catalog: In-memory plan catalog.

Currency values stay unrounded floats; presentation rounds for display.
"""
