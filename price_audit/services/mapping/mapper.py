"""Column mapping for spreadsheet imports.

Rows arrive from the extraction layer as ``{column name: cell value}``
dicts. A ColumnMapping picks which column feeds which field; the mapped
rows are validated and then converted into catalogue candidates or
document line items.
"""
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from price_audit.errors import ValidationError
from price_audit.models.column_mapping import (
    ColumnMapping,
    MappedRow,
    MappingValidationResult,
    RowValidationIssue,
)
from price_audit.models.matching import CatalogueCandidate, QueryItem
from price_audit.services.matching.normalizer import normalize_code
from price_audit.utils.price_parser import extract_price, parse_price

logger = structlog.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    """Trim a cell and collapse internal whitespace; non-text becomes ""."""
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return _WHITESPACE_RE.sub(" ", value.strip())


def _optional_text(row: Mapping[str, Any], column: Optional[str]) -> Optional[str]:
    if column is None:
        return None
    return clean_text(row.get(column)) or None


def _optional_number(row: Mapping[str, Any], column: Optional[str]) -> Optional[Decimal]:
    if column is None:
        return None
    return parse_price(row.get(column))


def apply_column_mapping(
    rows: Iterable[Mapping[str, Any]],
    mapping: ColumnMapping,
) -> List[MappedRow]:
    """Apply a column mapping to extracted rows.

    Args:
        rows: Extracted rows keyed by column name
        mapping: Which column feeds which field

    Returns:
        One MappedRow per input row with a 1-based ``row_index``
    """
    mapped: List[MappedRow] = []
    for index, row in enumerate(rows, start=1):
        price = extract_price(row.get(mapping.unit_price))
        code = normalize_code(row.get(mapping.product_code)) if mapping.product_code else ""

        mapped.append(
            MappedRow(
                row_index=index,
                product_name=clean_text(row.get(mapping.product_name)),
                product_code=code or None,
                unit_price=price.amount if price.was_parsed else None,
                quantity=_optional_number(row, mapping.quantity),
                total_price=_optional_number(row, mapping.total_price),
                unit=_optional_text(row, mapping.unit),
                category=_optional_text(row, mapping.category),
                detected_currency=price.currency_code,
                original_data=dict(row),
            )
        )

    logger.debug("column_mapping_applied", rows=len(mapped), mapping=mapping.model_dump(exclude_none=True))
    return mapped


def validate_mapped_data(rows: Iterable[MappedRow]) -> MappingValidationResult:
    """Validate mapped rows before import.

    A row is invalid when its product name is blank or its unit price is
    missing or negative. Product codes that appear on several rows are
    reported once per affected row.

    Args:
        rows: Rows produced by ``apply_column_mapping``

    Returns:
        MappingValidationResult; ``is_valid`` is True only without any issue
    """
    errors: List[RowValidationIssue] = []
    rows_by_code: Dict[str, List[int]] = {}
    valid_row_count = 0
    invalid_row_count = 0

    for row in rows:
        row_has_error = False

        if not row.product_name.strip():
            errors.append(
                RowValidationIssue(
                    row=row.row_index,
                    field="product_name",
                    value=row.product_name or None,
                    message="Product name is required",
                )
            )
            row_has_error = True

        if row.unit_price is None:
            errors.append(
                RowValidationIssue(
                    row=row.row_index,
                    field="unit_price",
                    value=None,
                    message="Price is required and must be a valid number",
                )
            )
            row_has_error = True
        elif row.unit_price < 0:
            errors.append(
                RowValidationIssue(
                    row=row.row_index,
                    field="unit_price",
                    value=str(row.unit_price),
                    message="Price cannot be negative",
                )
            )
            row_has_error = True

        if row.product_code:
            rows_by_code.setdefault(row.product_code, []).append(row.row_index)

        if row_has_error:
            invalid_row_count += 1
        else:
            valid_row_count += 1

    duplicate_codes: List[str] = []
    for code, row_numbers in rows_by_code.items():
        if len(row_numbers) < 2:
            continue
        duplicate_codes.append(code)
        listed = ", ".join(str(n) for n in row_numbers)
        for row_number in row_numbers:
            errors.append(
                RowValidationIssue(
                    row=row_number,
                    field="product_code",
                    value=code,
                    message=f"Duplicate product code found in rows: {listed}",
                )
            )

    result = MappingValidationResult(
        is_valid=not errors,
        errors=errors,
        duplicate_codes=duplicate_codes,
        valid_row_count=valid_row_count,
        invalid_row_count=invalid_row_count,
    )
    if not result.is_valid:
        logger.info(
            "mapped_data_invalid",
            error_count=len(errors),
            invalid_rows=invalid_row_count,
            duplicate_codes=len(duplicate_codes),
        )
    return result


def to_catalogue_candidates(
    rows: Iterable[MappedRow],
    id_prefix: str = "row",
) -> List[CatalogueCandidate]:
    """Convert mapped rows into catalogue candidates.

    Rows without a name or a non-negative price are skipped. Candidate ids
    are the product code when present, else ``{id_prefix}-{row_index}``.
    """
    candidates: List[CatalogueCandidate] = []
    for row in rows:
        if not row.product_name or row.unit_price is None or row.unit_price < 0:
            continue
        candidates.append(
            CatalogueCandidate(
                id=row.product_code or f"{id_prefix}-{row.row_index}",
                product_name=row.product_name,
                code=row.product_code,
                price=row.unit_price,
                unit=row.unit,
                category=row.category,
            )
        )
    return candidates


def to_query_items(rows: Iterable[MappedRow]) -> List[QueryItem]:
    """Convert mapped rows into document line items.

    Rows keep their ``row_index``. Blank names are kept so the matcher can
    report them as skipped.

    Raises:
        ValidationError: If a row has no usable unit price or quantity
    """
    items: List[QueryItem] = []
    for row in rows:
        if row.unit_price is None or row.unit_price < 0:
            raise ValidationError(
                f"Row {row.row_index} has no valid unit price",
                details={"row": row.row_index, "value": str(row.unit_price)},
            )
        quantity = row.quantity if row.quantity is not None else Decimal("1")
        if quantity < 0:
            raise ValidationError(
                f"Row {row.row_index} has a negative quantity",
                details={"row": row.row_index, "value": str(quantity)},
            )
        items.append(
            QueryItem(
                row_index=row.row_index,
                product_name=row.product_name,
                quantity=quantity,
                unit_price=row.unit_price,
                total_price=row.total_price,
                unit=row.unit,
                code=row.product_code,
            )
        )
    return items
