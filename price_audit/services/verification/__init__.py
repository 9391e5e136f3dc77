"""End-to-end document verification."""
from price_audit.services.verification.service import DocumentVerifier

__all__ = ["DocumentVerifier"]
