"""Custom exception hierarchy for price audit errors."""
from typing import Any, Optional


class PriceAuditError(Exception):
    """Base exception for all price audit errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """Initialize error with message and optional structured details."""
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(PriceAuditError):
    """Raised when matching or comparison configuration is invalid."""
    pass


class ValidationError(PriceAuditError):
    """Raised when input records or column mappings fail validation."""
    pass


class RateFetchError(PriceAuditError):
    """Raised by rate fetchers when live exchange rates cannot be retrieved.

    The rate provider always catches this and falls back to cached or
    static rates, so it never reaches comparison callers.
    """
    pass
