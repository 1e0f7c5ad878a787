"""Entitlements service for the PG Access Layer."""
