"""Pydantic models for the line-item matching pipeline.

This module defines the value records exchanged between the matcher and
its callers: catalogue candidates, document line items, ranked
suggestions and per-item match results.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ConfidenceTier(str, Enum):
    """Discrete confidence bucket derived from a similarity score.

    Only EXACT and HIGH are safe for automatic acceptance. NONE never
    appears in returned suggestions.
    """
    EXACT = "EXACT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"


AUTO_MATCH_TIERS = frozenset({ConfidenceTier.EXACT, ConfidenceTier.HIGH})

MatchedOn = Literal["name", "code"]


def _coerce_id(v: Any) -> Any:
    """Accept UUIDs and integers as identifiers."""
    if v is None or isinstance(v, str):
        return v
    return str(v)


@dataclass(frozen=True)
class ScoreResult:
    """Similarity of one query/candidate pair.

    Attributes:
        value: Similarity in [0, 1]
        matched_on: Signal that produced the value ("name" or "code")
    """
    value: float
    matched_on: MatchedOn = "name"


class CatalogueCandidate(BaseModel):
    """A catalogue product considered as a possible match.

    The price is expressed in the catalogue currency, which is supplied by
    the caller rather than stored on the record.

    Attributes:
        id: Catalogue item identifier
        product_name: Display name of the product
        code: Optional SKU / product code
        price: Catalogue unit price (non-negative)
        unit: Optional unit of measure
        category: Optional category label
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "cat-001",
                "product_name": "Tomato 1kg",
                "code": "VEG-TOM-1",
                "price": "2.00",
                "unit": "kg",
                "category": "Vegetables",
            }
        },
    )

    id: str = Field(..., min_length=1)
    product_name: str = ""
    code: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="Catalogue unit price")
    unit: Optional[str] = None
    category: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)


class QueryItem(BaseModel):
    """A structured line item from a receipt or invoice.

    Attributes:
        row_index: Stable 1-based position in the source document
        product_name: Raw product text as printed on the document
        quantity: Purchased quantity (non-negative)
        unit_price: Price per unit in the document currency
        total_price: Line total; defaults to quantity * unit_price
        unit: Optional unit of measure
        code: Optional SKU printed on the line
        item_id: Persistence identifier, when the caller has one
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "row_index": 1,
                "product_name": "Tomaten 1kg",
                "quantity": "3",
                "unit_price": "2.10",
                "total_price": "6.30",
            }
        }
    )

    row_index: int = Field(..., ge=1)
    product_name: str = ""
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    unit_price: Decimal = Field(..., ge=0)
    total_price: Optional[Decimal] = None
    unit: Optional[str] = None
    code: Optional[str] = None
    item_id: Optional[str] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def coerce_item_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @model_validator(mode="after")
    def fill_total_price(self) -> "QueryItem":
        """Derive the line total when the document did not state one."""
        if self.total_price is None:
            self.total_price = self.quantity * self.unit_price
        return self

    @property
    def reference(self) -> str:
        """Identifier used on comparison items (item_id, else row index)."""
        return self.item_id if self.item_id is not None else str(self.row_index)

    @property
    def is_blank(self) -> bool:
        """True when the product name carries no text at all."""
        return not self.product_name or not self.product_name.strip()


class MatchSuggestion(BaseModel):
    """A ranked candidate for one query item.

    Attributes:
        candidate: The catalogue candidate
        score: Similarity in [0, 1]
        confidence: Tier derived from the score
        matched_on: Signal that drove the score ("name" or "code")
    """

    candidate: CatalogueCandidate
    score: float = Field(..., ge=0, le=1)
    confidence: ConfidenceTier
    matched_on: MatchedOn = "name"

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return {
            "candidate_id": self.candidate.id,
            "product_name": self.candidate.product_name,
            "score": round(self.score, 4),
            "confidence": self.confidence.value,
            "matched_on": self.matched_on,
        }


class MatchResult(BaseModel):
    """Result of matching one query item against a catalogue.

    Attributes:
        query_item: The line item that was matched
        suggestions: Top suggestions, best first (NONE tier excluded)
        best_match: First suggestion, if any cleared the lowest tier
        auto_matched: True when best_match is safe to accept unreviewed
        skipped: True when the item was excluded from matching
        skip_reason: Why the item was skipped
    """

    query_item: QueryItem
    suggestions: List[MatchSuggestion] = Field(default_factory=list)
    best_match: Optional[MatchSuggestion] = None
    auto_matched: bool = False
    skipped: bool = False
    skip_reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_auto_match_safety(self) -> "MatchResult":
        """Auto-matching requires an EXACT or HIGH best match."""
        if self.auto_matched:
            if self.best_match is None:
                raise ValueError("best_match is required when auto_matched is set")
            if self.best_match.confidence not in AUTO_MATCH_TIERS:
                raise ValueError(
                    f"auto_matched requires EXACT or HIGH confidence, "
                    f"got {self.best_match.confidence.value}"
                )
        if self.skipped and (self.suggestions or self.best_match or self.auto_matched):
            raise ValueError("skipped items cannot carry suggestions")
        return self

    @property
    def row_index(self) -> int:
        """Source row of the matched item."""
        return self.query_item.row_index

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary for the review UI."""
        return {
            "row_index": self.query_item.row_index,
            "product_name": self.query_item.product_name,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "best_match": self.best_match.to_dict() if self.best_match else None,
            "auto_matched": self.auto_matched,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
        }
