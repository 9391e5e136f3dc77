"""Pytest configuration and fixtures for test suite.

Provides:
- Python path setup (so tests run without an editable install)
- Environment defaults and settings cache reset
- Shared catalogue / line item fixtures
"""
import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Project root is the directory holding the price_audit package
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from price_audit import config  # noqa: E402
from price_audit.models import CatalogueCandidate, QueryItem  # noqa: E402
from price_audit.services.matching.scorer import get_default_scorer  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set basic environment variables before any tests run."""
    os.environ.setdefault("LOG_LEVEL", "INFO")
    os.environ.setdefault("ENVIRONMENT", "development")
    yield


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear cached settings so monkeypatched env vars take effect."""
    getters = (
        config.get_settings,
        config.get_matching_settings,
        config.get_comparison_settings,
        config.get_currency_settings,
        get_default_scorer,
    )
    for getter in getters:
        getter.cache_clear()
    yield
    for getter in getters:
        getter.cache_clear()


@pytest.fixture
def make_item():
    """Factory for QueryItem with sensible defaults."""

    def _make(product_name: str, unit_price="1.00", row_index: int = 1, **kwargs) -> QueryItem:
        return QueryItem(
            row_index=row_index,
            product_name=product_name,
            unit_price=Decimal(str(unit_price)),
            **kwargs,
        )

    return _make


@pytest.fixture
def catalogue():
    """Small grocery catalogue priced in EUR."""
    return [
        CatalogueCandidate(id="cat-1", product_name="Tomato 1kg", code="VEG-TOM-1", price=Decimal("2.00")),
        CatalogueCandidate(id="cat-2", product_name="Potato 2kg", code="VEG-POT-2", price=Decimal("3.50")),
        CatalogueCandidate(id="cat-3", product_name="Coca-Cola 1.5L", code="DRK-COK-15", price=Decimal("1.80")),
        CatalogueCandidate(id="cat-4", product_name="Whole Milk 1L", code="DRY-MLK-1", price=Decimal("1.10")),
        CatalogueCandidate(id="cat-5", product_name="Olive Oil Extra Virgin 500ml", price=Decimal("6.90")),
    ]
