"""
Column Mapping Models
=====================

Records describing how spreadsheet columns feed line-item fields, the
rows produced by applying a mapping, and the validation report for a
mapped import.
"""

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ColumnMapping(BaseModel):
    """
    Source column name to field mapping.

    The record is closed: unknown keys are rejected so that a typo in a
    mapping fails loudly instead of silently dropping a column.

    Attributes:
        product_name: Column holding the product name (required)
        unit_price: Column holding the unit price (required)
        product_code: Column holding the SKU / product code
        unit: Column holding the unit of measure
        category: Column holding the category
        quantity: Column holding the purchased quantity
        total_price: Column holding the line total
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        json_schema_extra={
            "example": {
                "product_name": "Description",
                "unit_price": "Unit Price",
                "product_code": "SKU",
                "quantity": "Qty",
            }
        },
    )

    product_name: Annotated[
        str,
        Field(min_length=1, description="Column for product name"),
    ]
    unit_price: Annotated[
        str,
        Field(min_length=1, description="Column for unit price"),
    ]
    product_code: Annotated[
        str | None,
        Field(description="Column for SKU/product code"),
    ] = None
    unit: Annotated[
        str | None,
        Field(description="Column for unit of measure"),
    ] = None
    category: Annotated[
        str | None,
        Field(description="Column for category"),
    ] = None
    quantity: Annotated[
        str | None,
        Field(description="Column for quantity"),
    ] = None
    total_price: Annotated[
        str | None,
        Field(description="Column for line total"),
    ] = None

    @field_validator("product_code", "unit", "category", "quantity", "total_price", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Treat an empty column selection as "not mapped"."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class MappedRow(BaseModel):
    """
    One spreadsheet row after a column mapping was applied.

    Values are cleaned but not validated; ``unit_price`` is None when the
    cell could not be parsed. Use ``validate_mapped_data`` before import.
    """

    row_index: Annotated[int, Field(ge=1, description="1-based source row")]
    product_name: str = ""
    product_code: str | None = None
    unit_price: Decimal | None = None
    quantity: Decimal | None = None
    total_price: Decimal | None = None
    unit: str | None = None
    category: str | None = None
    detected_currency: str | None = None
    original_data: dict[str, Any] = Field(default_factory=dict)


class RowValidationIssue(BaseModel):
    """A single problem found while validating mapped rows."""

    row: int
    field: str
    value: str | None = None
    message: str


class MappingValidationResult(BaseModel):
    """
    Outcome of validating a mapped import.

    Attributes:
        is_valid: True when no issue of any kind was found
        errors: All issues, row issues first, then duplicate codes
        duplicate_codes: Product codes that occur on more than one row
        valid_row_count: Rows with a name and a non-negative price
        invalid_row_count: Rows missing a name or a usable price
    """

    is_valid: bool
    errors: list[RowValidationIssue] = Field(default_factory=list)
    duplicate_codes: list[str] = Field(default_factory=list)
    valid_row_count: Annotated[int, Field(ge=0)] = 0
    invalid_row_count: Annotated[int, Field(ge=0)] = 0

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json")
