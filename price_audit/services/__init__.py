"""Matching, comparison, currency, mapping and verification services."""
