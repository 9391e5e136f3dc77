"""Data models for matching, comparison and column mapping."""
from price_audit.models.column_mapping import (
    ColumnMapping,
    MappedRow,
    MappingValidationResult,
    RowValidationIssue,
)
from price_audit.models.comparison import (
    ComparisonItem,
    ComparisonReport,
    ComparisonStatus,
    ComparisonSummary,
    MatchConfidence,
    PairingSource,
    PriceComparison,
    ReportStatistics,
)
from price_audit.models.matching import (
    AUTO_MATCH_TIERS,
    CatalogueCandidate,
    ConfidenceTier,
    MatchResult,
    MatchSuggestion,
    QueryItem,
    ScoreResult,
)

__all__ = [
    "AUTO_MATCH_TIERS",
    "CatalogueCandidate",
    "ColumnMapping",
    "ComparisonItem",
    "ComparisonReport",
    "ComparisonStatus",
    "ComparisonSummary",
    "ConfidenceTier",
    "MappedRow",
    "MappingValidationResult",
    "MatchConfidence",
    "MatchResult",
    "MatchSuggestion",
    "PairingSource",
    "PriceComparison",
    "QueryItem",
    "ReportStatistics",
    "RowValidationIssue",
    "ScoreResult",
]
