"""
Pricing calculator package.

- constants: GST rate, tier breakpoints, recommendation factors.
- models: Configuration, breakdown and tagged result models.
- breakdown: Pure plan cost arithmetic.
- engine: Catalog-aware reports built on the breakdown.
"""
