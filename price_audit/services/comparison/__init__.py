"""Price comparison and aggregation."""
from price_audit.services.comparison.comparator import PriceComparator, compare, summarize

__all__ = ["PriceComparator", "compare", "summarize"]
