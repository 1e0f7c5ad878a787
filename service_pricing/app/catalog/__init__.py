"""Plan catalog storage for the Pricing Service."""
