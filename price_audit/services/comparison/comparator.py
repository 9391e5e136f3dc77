"""Price comparison and report aggregation.

Once a document line is paired with a catalogue product, its unit price is
converted into the catalogue currency, compared against the catalogue
price and classified as MATCH, OVERCHARGE or UNDERCHARGE. Per-line results
are then aggregated into document totals.

All arithmetic is done in Decimal; floats (exchange rates, tolerances) are
converted through their string form. Rounding happens only when results
are serialized and when summary totals are produced.
"""
from decimal import Decimal
from typing import Iterable, Optional, Union

import structlog

from price_audit.config import ComparisonSettings, get_comparison_settings
from price_audit.errors import ValidationError
from price_audit.models.comparison import (
    ComparisonItem,
    ComparisonStatus,
    ComparisonSummary,
    MatchConfidence,
    PairingSource,
    PriceComparison,
)
from price_audit.models.matching import CatalogueCandidate, ConfidenceTier, QueryItem
from price_audit.utils.money import Number, quantize_money, to_decimal

logger = structlog.get_logger(__name__)

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _same_currency(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().upper() == (b or "").strip().upper()


def compare(
    query_price: Number,
    query_currency: Optional[str],
    candidate_price: Optional[Number],
    candidate_currency: Optional[str],
    exchange_rate: Number = 1.0,
    quantity: Number = 1,
    tolerance_percent: Number = 5.0,
) -> PriceComparison:
    """Compare a document unit price with a catalogue unit price.

    Args:
        query_price: Unit price on the document, in ``query_currency``
        query_currency: Document currency code
        candidate_price: Catalogue unit price, None when nothing is linked
        candidate_currency: Catalogue currency code
        exchange_rate: Units of catalogue currency per document currency
        quantity: Purchased quantity (carried for aggregation)
        tolerance_percent: Band, inclusive, within which prices MATCH

    Returns:
        PriceComparison. The exchange rate is reported only when the two
        currency codes differ.

    Raises:
        ValidationError: If exchange_rate is not positive or
            tolerance_percent is negative
    """
    price = to_decimal(query_price)
    qty = to_decimal(quantity)

    if candidate_price is None:
        return PriceComparison(
            query_price=price,
            quantity=qty,
            status=ComparisonStatus.UNMATCHED,
        )

    rate = to_decimal(exchange_rate)
    if rate <= 0:
        raise ValidationError(
            "Exchange rate must be positive",
            details={"exchange_rate": str(exchange_rate)},
        )
    tolerance = to_decimal(tolerance_percent)
    if tolerance < 0:
        raise ValidationError(
            "Tolerance must not be negative",
            details={"tolerance_percent": str(tolerance_percent)},
        )

    catalogue_price = to_decimal(candidate_price)
    converted = price * rate
    difference = converted - catalogue_price
    if catalogue_price > 0:
        percentage = difference / catalogue_price * _HUNDRED
    else:
        percentage = _ZERO

    if abs(percentage) <= tolerance:
        status = ComparisonStatus.MATCH
    elif difference > 0:
        status = ComparisonStatus.OVERCHARGE
    else:
        status = ComparisonStatus.UNDERCHARGE

    return PriceComparison(
        query_price=price,
        quantity=qty,
        query_price_converted=converted,
        candidate_price=catalogue_price,
        price_difference=difference,
        percentage_diff=percentage,
        exchange_rate=None if _same_currency(query_currency, candidate_currency) else float(rate),
        status=status,
    )


def summarize(
    items: Iterable[PriceComparison],
    currency_from: str,
    currency_to: str,
    exchange_rate: Optional[Number] = None,
) -> ComparisonSummary:
    """Aggregate per-line comparisons into document totals.

    MATCH lines count as matched, OVERCHARGE and UNDERCHARGE as mismatches.
    UNMATCHED lines only count towards ``total_items``. Overcharge and
    undercharge totals are ``|difference| * quantity`` summed per sign.

    Args:
        items: Per-line comparison results
        currency_from: Document currency
        currency_to: Catalogue currency
        exchange_rate: Rate used for the document

    Returns:
        ComparisonSummary with totals rounded to 2 places
    """
    total_items = 0
    matched_items = 0
    mismatches = 0
    total_overcharge = _ZERO
    total_undercharge = _ZERO

    for item in items:
        total_items += 1
        if item.status == ComparisonStatus.MATCH:
            matched_items += 1
        elif item.status in (ComparisonStatus.OVERCHARGE, ComparisonStatus.UNDERCHARGE):
            mismatches += 1
            line_difference = item.price_difference * item.quantity
            if line_difference > 0:
                total_overcharge += line_difference
            else:
                total_undercharge += -line_difference

    currency_from = currency_from.upper()
    currency_to = currency_to.upper()
    rate = None
    if exchange_rate is not None and currency_from != currency_to:
        rate = float(to_decimal(exchange_rate))

    summary = ComparisonSummary(
        total_items=total_items,
        matched_items=matched_items,
        mismatches=mismatches,
        total_overcharge=quantize_money(total_overcharge),
        total_undercharge=quantize_money(total_undercharge),
        currency_from=currency_from,
        currency_to=currency_to,
        exchange_rate=rate,
    )

    logger.info(
        "comparison_summarized",
        total_items=total_items,
        matched_items=matched_items,
        mismatches=mismatches,
        unmatched_items=summary.unmatched_items,
        total_overcharge=str(summary.total_overcharge),
        total_undercharge=str(summary.total_undercharge),
        currency_from=currency_from,
        currency_to=currency_to,
    )
    return summary


class PriceComparator:
    """Builds comparison items with tolerance bands per pairing source.

    Pairings from an explicit catalogue link (or a reviewer) are held to
    the tighter LINKED tolerance, pairings accepted from fuzzy matching to
    the SUGGESTED tolerance.

    Attributes:
        linked_tolerance_percent: Band for LINKED pairings
        suggested_tolerance_percent: Band for SUGGESTED pairings
    """

    def __init__(
        self,
        linked_tolerance_percent: Optional[float] = None,
        suggested_tolerance_percent: Optional[float] = None,
        settings: Optional[ComparisonSettings] = None,
    ):
        settings = settings or get_comparison_settings()
        self.linked_tolerance_percent = (
            linked_tolerance_percent
            if linked_tolerance_percent is not None
            else settings.linked_tolerance_percent
        )
        self.suggested_tolerance_percent = (
            suggested_tolerance_percent
            if suggested_tolerance_percent is not None
            else settings.suggested_tolerance_percent
        )
        self._log = logger.bind(comparator="PriceComparator")

    def tolerance_for(self, pairing_source: PairingSource) -> float:
        """Tolerance band (percent) applied to a pairing source."""
        if pairing_source == PairingSource.LINKED:
            return self.linked_tolerance_percent
        return self.suggested_tolerance_percent

    def compare_pair(
        self,
        query_item: QueryItem,
        candidate: Optional[CatalogueCandidate],
        query_currency: str,
        candidate_currency: str,
        exchange_rate: Number = 1.0,
        pairing_source: PairingSource = PairingSource.SUGGESTED,
        match_confidence: Optional[Union[MatchConfidence, ConfidenceTier]] = None,
    ) -> ComparisonItem:
        """Compare one document line with its paired catalogue product.

        Args:
            query_item: Document line
            candidate: Paired catalogue product, None when unpaired
            query_currency: Document currency
            candidate_currency: Catalogue currency
            exchange_rate: Units of catalogue currency per document currency
            pairing_source: How the pairing was established
            match_confidence: Confidence to record; LINKED pairings default
                to EXACT

        Returns:
            ComparisonItem for the report
        """
        if candidate is None:
            return ComparisonItem(
                query_item_id=query_item.reference,
                row_index=query_item.row_index,
                query_price=query_item.unit_price,
                quantity=query_item.quantity,
                status=ComparisonStatus.UNMATCHED,
                match_confidence=MatchConfidence.UNMATCHED,
            )

        fragment = compare(
            query_price=query_item.unit_price,
            query_currency=query_currency,
            candidate_price=candidate.price,
            candidate_currency=candidate_currency,
            exchange_rate=exchange_rate,
            quantity=query_item.quantity,
            tolerance_percent=self.tolerance_for(pairing_source),
        )

        item = ComparisonItem(
            **dict(fragment),
            query_item_id=query_item.reference,
            row_index=query_item.row_index,
            candidate_id=candidate.id,
            match_confidence=self._resolve_confidence(pairing_source, match_confidence),
            pairing_source=pairing_source,
        )

        if item.is_mismatch:
            self._log.debug(
                "price_mismatch_detected",
                row_index=query_item.row_index,
                candidate_id=candidate.id,
                status=item.status.value,
                percentage_diff=str(quantize_money(item.percentage_diff)),
                pairing_source=pairing_source.value,
            )
        return item

    @staticmethod
    def _resolve_confidence(
        pairing_source: PairingSource,
        match_confidence: Optional[Union[MatchConfidence, ConfidenceTier]],
    ) -> MatchConfidence:
        if match_confidence is None:
            if pairing_source == PairingSource.LINKED:
                return MatchConfidence.EXACT
            raise ValidationError("match_confidence is required for suggested pairings")
        if isinstance(match_confidence, ConfidenceTier):
            if match_confidence == ConfidenceTier.NONE:
                raise ValidationError("A paired item cannot have NONE confidence")
            return MatchConfidence(match_confidence.value)
        if match_confidence == MatchConfidence.UNMATCHED:
            raise ValidationError("A paired item cannot have UNMATCHED confidence")
        return match_confidence

    def summarize(
        self,
        items: Iterable[PriceComparison],
        currency_from: str,
        currency_to: str,
        exchange_rate: Optional[Number] = None,
    ) -> ComparisonSummary:
        """Aggregate items into document totals. See module ``summarize``."""
        return summarize(items, currency_from, currency_to, exchange_rate)
