"""Shared parsing and Decimal helpers."""
