"""Error handling module."""
from price_audit.errors.exceptions import (
    PriceAuditError,
    ConfigurationError,
    ValidationError,
    RateFetchError,
)

__all__ = [
    "PriceAuditError",
    "ConfigurationError",
    "ValidationError",
    "RateFetchError",
]
