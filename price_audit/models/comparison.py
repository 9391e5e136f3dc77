"""Pydantic models for price comparison and report aggregation."""
import re
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from price_audit.models.matching import MatchResult
from price_audit.utils.money import quantize_money

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

TOP_OVERCHARGES_LIMIT = 5


class ComparisonStatus(str, Enum):
    """Outcome of comparing a document price against the catalogue."""
    MATCH = "MATCH"
    OVERCHARGE = "OVERCHARGE"
    UNDERCHARGE = "UNDERCHARGE"
    UNMATCHED = "UNMATCHED"


class MatchConfidence(str, Enum):
    """Confidence recorded on a comparison item."""
    EXACT = "EXACT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNMATCHED = "UNMATCHED"


class PairingSource(str, Enum):
    """Where a query/catalogue pairing came from.

    LINKED pairings were confirmed by a catalogue link or a reviewer;
    SUGGESTED pairings were accepted automatically from fuzzy matching.
    """
    LINKED = "linked"
    SUGGESTED = "suggested"


class PriceComparison(BaseModel):
    """Price discrepancy between one query price and one catalogue price.

    Attributes:
        query_price: Document unit price in the document currency
        quantity: Purchased quantity used for aggregation
        query_price_converted: Document price in the catalogue currency
        candidate_price: Catalogue unit price, None when unmatched
        price_difference: converted - candidate_price
        percentage_diff: Difference relative to the catalogue price
        exchange_rate: Rate applied, reported only across currencies
        status: Classification of the discrepancy
    """

    query_price: Decimal = Field(..., ge=0)
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    query_price_converted: Optional[Decimal] = None
    candidate_price: Optional[Decimal] = Field(default=None, ge=0)
    price_difference: Optional[Decimal] = None
    percentage_diff: Optional[Decimal] = None
    exchange_rate: Optional[float] = Field(default=None, gt=0)
    status: ComparisonStatus

    @model_validator(mode="after")
    def validate_unmatched_consistency(self) -> "PriceComparison":
        """UNMATCHED and a missing price difference go together."""
        unmatched = self.status == ComparisonStatus.UNMATCHED
        if unmatched != (self.price_difference is None):
            raise ValueError(
                "price_difference must be None exactly when status is UNMATCHED"
            )
        return self

    @field_serializer("query_price_converted", "price_difference", "percentage_diff")
    def serialize_rounded(self, value: Optional[Decimal]) -> Optional[Decimal]:
        return quantize_money(value)

    @property
    def is_mismatch(self) -> bool:
        return self.status in (ComparisonStatus.OVERCHARGE, ComparisonStatus.UNDERCHARGE)

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json")


class ComparisonItem(PriceComparison):
    """A per-line comparison result as stored in a report.

    Attributes:
        query_item_id: Identifier of the document line
        row_index: Source row of the document line
        candidate_id: Linked catalogue item, None when unmatched
        match_confidence: How the pairing was established
        pairing_source: LINKED or SUGGESTED, None when unmatched
    """

    query_item_id: str
    row_index: Optional[int] = Field(default=None, ge=1)
    candidate_id: Optional[str] = None
    match_confidence: MatchConfidence = MatchConfidence.UNMATCHED
    pairing_source: Optional[PairingSource] = None

    @model_validator(mode="after")
    def validate_candidate_link(self) -> "ComparisonItem":
        """A comparison item is unmatched exactly when it has no candidate."""
        if (self.candidate_id is None) != (self.status == ComparisonStatus.UNMATCHED):
            raise ValueError("candidate_id must be None exactly when status is UNMATCHED")
        return self


class ComparisonSummary(BaseModel):
    """Aggregate totals for one verified document.

    Totals are expressed in the catalogue currency (``currency_to``).
    """

    total_items: int = Field(default=0, ge=0)
    matched_items: int = Field(default=0, ge=0)
    mismatches: int = Field(default=0, ge=0)
    total_overcharge: Decimal = Field(default=Decimal("0"), ge=0)
    total_undercharge: Decimal = Field(default=Decimal("0"), ge=0)
    currency_from: str
    currency_to: str
    exchange_rate: Optional[float] = Field(default=None, gt=0)

    @field_validator("currency_from", "currency_to")
    @classmethod
    def validate_currency_code(cls, v: str) -> str:
        """Validate currency code format (ISO 4217)."""
        if not _CURRENCY_RE.match(v):
            raise ValueError("Currency code must be 3 uppercase letters (ISO 4217)")
        return v

    @field_serializer("total_overcharge", "total_undercharge")
    def serialize_totals(self, value: Decimal) -> Decimal:
        return quantize_money(value)

    @property
    def unmatched_items(self) -> int:
        return self.total_items - self.matched_items - self.mismatches

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json")


class ReportStatistics(BaseModel):
    """Headline figures derived from a comparison report.

    Attributes:
        matched_percentage: Share of MATCH lines, whole percent, 0 for an
            empty report
        overcharge_count: Lines classified OVERCHARGE
        undercharge_count: Lines classified UNDERCHARGE
        unmatched_count: Lines classified UNMATCHED
        net_difference: total_overcharge - total_undercharge
        top_overcharges: Up to five OVERCHARGE lines, largest difference first
    """

    matched_percentage: int = Field(default=0, ge=0, le=100)
    overcharge_count: int = Field(default=0, ge=0)
    undercharge_count: int = Field(default=0, ge=0)
    unmatched_count: int = Field(default=0, ge=0)
    net_difference: Decimal = Decimal("0")
    top_overcharges: List[ComparisonItem] = Field(default_factory=list)

    @field_serializer("net_difference")
    def serialize_net_difference(self, value: Decimal) -> Decimal:
        return quantize_money(value)

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json")


class ComparisonReport(BaseModel):
    """Everything produced by verifying one document."""

    summary: ComparisonSummary
    items: List[ComparisonItem] = Field(default_factory=list)
    match_results: List[MatchResult] = Field(default_factory=list)

    def statistics(self, top: int = TOP_OVERCHARGES_LIMIT) -> ReportStatistics:
        """Derive headline figures for the report view.

        The matched percentage uses ``summary.total_items`` and rounds half
        up to a whole percent. Top overcharges are ordered by absolute
        price difference, ties keeping report order.

        Args:
            top: Maximum number of overcharge lines to return

        Returns:
            ReportStatistics for this report
        """
        summary = self.summary
        if summary.total_items > 0:
            ratio = Decimal(summary.matched_items) / Decimal(summary.total_items) * 100
            matched_percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        else:
            matched_percentage = 0

        by_status: Dict[ComparisonStatus, List[ComparisonItem]] = {status: [] for status in ComparisonStatus}
        for item in self.items:
            by_status[item.status].append(item)

        overcharges = sorted(
            by_status[ComparisonStatus.OVERCHARGE],
            key=lambda item: abs(item.price_difference),
            reverse=True,
        )

        return ReportStatistics(
            matched_percentage=matched_percentage,
            overcharge_count=len(by_status[ComparisonStatus.OVERCHARGE]),
            undercharge_count=len(by_status[ComparisonStatus.UNDERCHARGE]),
            unmatched_count=len(by_status[ComparisonStatus.UNMATCHED]),
            net_difference=summary.total_overcharge - summary.total_undercharge,
            top_overcharges=overcharges[:top],
        )

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary for the CRUD layer."""
        return {
            "summary": self.summary.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "match_results": [result.to_dict() for result in self.match_results],
            "statistics": self.statistics().to_dict(),
        }
