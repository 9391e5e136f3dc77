"""Spreadsheet column mapping and row validation."""
from price_audit.services.mapping.mapper import (
    apply_column_mapping,
    clean_text,
    to_catalogue_candidates,
    to_query_items,
    validate_mapped_data,
)

__all__ = [
    "apply_column_mapping",
    "clean_text",
    "to_catalogue_candidates",
    "to_query_items",
    "validate_mapped_data",
]
