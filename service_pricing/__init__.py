"""Pricing service for the PG Access Layer."""
