"""Document verification pipeline.

Ties the engine together for one receipt or invoice:

    match (fuzzy) -> reviewer links override -> compare -> summarize

Reviewer links always win over fuzzy suggestions and are compared with
the LINKED tolerance. Fuzzy matches are used only when auto-matched and
are compared with the SUGGESTED tolerance. Everything else is reported as
UNMATCHED.
"""
import asyncio
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

import structlog

from price_audit.config import ComparisonSettings, get_comparison_settings
from price_audit.errors import ValidationError
from price_audit.models.comparison import ComparisonItem, ComparisonReport, PairingSource
from price_audit.models.matching import CatalogueCandidate, MatchResult, QueryItem
from price_audit.services.comparison.comparator import PriceComparator
from price_audit.services.currency.provider import CurrencyRateProvider
from price_audit.services.currency.rates import normalize_currency_code
from price_audit.services.matching.matcher import FuzzyMatcher, MatcherStrategy
from price_audit.utils.money import Number

logger = structlog.get_logger(__name__)


class DocumentVerifier:
    """Verifies document line items against a catalogue.

    Attributes:
        matcher: Strategy used for items without a reviewer link
        comparator: Builds comparison items and the summary
        rate_provider: Resolves exchange rates for ``verify``
    """

    def __init__(
        self,
        matcher: Optional[MatcherStrategy] = None,
        comparator: Optional[PriceComparator] = None,
        rate_provider: Optional[CurrencyRateProvider] = None,
        settings: Optional[ComparisonSettings] = None,
    ):
        self._settings = settings or get_comparison_settings()
        self.matcher = matcher or FuzzyMatcher()
        self.comparator = comparator or PriceComparator(settings=self._settings)
        self.rate_provider = rate_provider or CurrencyRateProvider()

    def build_report(
        self,
        query_items: Iterable[QueryItem],
        candidates: Sequence[CatalogueCandidate],
        document_currency: Optional[str] = None,
        catalogue_currency: Optional[str] = None,
        exchange_rate: Number = 1.0,
        links: Optional[Mapping[int, str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ComparisonReport:
        """Verify a document with an explicit exchange rate.

        Args:
            query_items: Document line items
            candidates: Catalogue products
            document_currency: Currency of the document (default from settings)
            catalogue_currency: Currency of the catalogue (default from settings)
            exchange_rate: Units of catalogue currency per document currency,
                ignored when both currencies are the same
            links: Reviewer-confirmed pairings, row_index -> candidate id
            cancel_event: Stops fuzzy matching of items not started yet;
                those items are reported as UNMATCHED

        Returns:
            ComparisonReport with one item per line, in input order

        Raises:
            ValidationError: If two items share a row_index or a link
                points at an unknown candidate
        """
        items = list(query_items)
        candidates = list(candidates)
        links = dict(links or {})
        doc_currency = normalize_currency_code(document_currency, self._settings.default_currency)
        cat_currency = normalize_currency_code(catalogue_currency, self._settings.default_currency)
        rate = 1.0 if doc_currency == cat_currency else exchange_rate

        # Match results and links are keyed by row_index
        seen_rows: Set[int] = set()
        duplicate_rows: List[int] = []
        for item in items:
            if item.row_index in seen_rows and item.row_index not in duplicate_rows:
                duplicate_rows.append(item.row_index)
            seen_rows.add(item.row_index)
        if duplicate_rows:
            raise ValidationError(
                "Query items must have unique row indices",
                details={"duplicate_rows": duplicate_rows},
            )

        by_id: Dict[str, CatalogueCandidate] = {c.id: c for c in candidates}
        unknown = {row: cid for row, cid in links.items() if cid not in by_id}
        if unknown:
            raise ValidationError(
                "Links reference unknown catalogue items",
                details={"links": {str(row): cid for row, cid in unknown.items()}},
            )

        log = logger.bind(
            document_currency=doc_currency,
            catalogue_currency=cat_currency,
            items=len(items),
            candidates=len(candidates),
        )

        to_match = [item for item in items if item.row_index not in links]
        match_results = self.matcher.find_matches_for_items(to_match, candidates, cancel_event)
        results_by_row: Dict[int, MatchResult] = {r.query_item.row_index: r for r in match_results}

        comparison_items: List[ComparisonItem] = []
        for item in items:
            linked_id = links.get(item.row_index)
            if linked_id is not None:
                comparison_items.append(
                    self.comparator.compare_pair(
                        item,
                        by_id[linked_id],
                        doc_currency,
                        cat_currency,
                        exchange_rate=rate,
                        pairing_source=PairingSource.LINKED,
                    )
                )
                continue

            result = results_by_row.get(item.row_index)
            if result is not None and result.auto_matched:
                best = result.best_match
                comparison_items.append(
                    self.comparator.compare_pair(
                        item,
                        best.candidate,
                        doc_currency,
                        cat_currency,
                        exchange_rate=rate,
                        pairing_source=PairingSource.SUGGESTED,
                        match_confidence=best.confidence,
                    )
                )
            else:
                comparison_items.append(
                    self.comparator.compare_pair(item, None, doc_currency, cat_currency)
                )

        summary = self.comparator.summarize(comparison_items, doc_currency, cat_currency, rate)
        log.info(
            "document_verified",
            linked=len(items) - len(to_match),
            auto_matched=sum(1 for r in match_results if r.auto_matched),
            matched_items=summary.matched_items,
            mismatches=summary.mismatches,
        )
        return ComparisonReport(summary=summary, items=comparison_items, match_results=match_results)

    async def verify(
        self,
        query_items: Iterable[QueryItem],
        candidates: Sequence[CatalogueCandidate],
        document_currency: Optional[str] = None,
        catalogue_currency: Optional[str] = None,
        links: Optional[Mapping[int, str]] = None,
    ) -> ComparisonReport:
        """Verify a document, resolving the exchange rate through the provider.

        Matching runs in a worker thread so the event loop stays free.
        """
        doc_currency = normalize_currency_code(document_currency, self._settings.default_currency)
        cat_currency = normalize_currency_code(catalogue_currency, self._settings.default_currency)
        rate = await self.rate_provider.get_exchange_rate(doc_currency, cat_currency)
        return await asyncio.to_thread(
            self.build_report,
            list(query_items),
            list(candidates),
            doc_currency,
            cat_currency,
            rate,
            links,
        )
