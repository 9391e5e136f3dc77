"""Tests for the DocumentVerifier pipeline (match, compare, summarize)."""
import threading
from decimal import Decimal

import pytest

from price_audit.errors import ValidationError
from price_audit.models import CatalogueCandidate, ComparisonStatus, MatchConfidence, PairingSource
from price_audit.services.currency import CurrencyRateProvider, RateCache
from price_audit.services.verification import DocumentVerifier


class TestBuildReport:
    """Tests for DocumentVerifier.build_report."""

    @pytest.fixture
    def verifier(self):
        return DocumentVerifier()

    def test_spelling_variant_at_tolerance_boundary(self, verifier, make_item) -> None:
        """Tomaten 2.10 EUR vs Tomato 2.00 EUR is exactly 5% and still a MATCH."""
        catalogue = [CatalogueCandidate(id="cat-1", product_name="Tomato 1kg", price=Decimal("2.00"))]

        report = verifier.build_report(
            [make_item("Tomaten 1kg", unit_price="2.10")],
            catalogue,
            document_currency="EUR",
            catalogue_currency="EUR",
            exchange_rate=1.0,
        )

        item = report.items[0]
        assert item.status == ComparisonStatus.MATCH
        assert item.percentage_diff == Decimal("5")
        assert item.to_dict()["percentage_diff"] == "5.00"
        assert item.pairing_source == PairingSource.SUGGESTED
        assert item.match_confidence == MatchConfidence.HIGH
        assert item.candidate_id == "cat-1"
        assert report.summary.matched_items == 1

    def test_mixed_document(self, verifier, make_item, catalogue) -> None:
        """Test statuses and totals for a document with every kind of line."""
        items = [
            make_item("Tomaten 1kg", unit_price="2.60", row_index=1, quantity=Decimal("2")),
            make_item("Coca-Cola 1.5L", unit_price="1.80", row_index=2),
            make_item("Dishwasher tabs", unit_price="9.99", row_index=3),
            make_item("", unit_price="0.50", row_index=4),
        ]

        report = verifier.build_report(items, catalogue, "EUR", "EUR")

        statuses = [i.status for i in report.items]
        assert statuses == [
            ComparisonStatus.OVERCHARGE,
            ComparisonStatus.MATCH,
            ComparisonStatus.UNMATCHED,
            ComparisonStatus.UNMATCHED,
        ]
        assert [i.row_index for i in report.items] == [1, 2, 3, 4]
        assert report.summary.total_items == 4
        assert report.summary.matched_items == 1
        assert report.summary.mismatches == 1
        assert report.summary.total_overcharge == Decimal("1.20")
        assert report.match_results[3].skipped is True

    def test_medium_match_left_unmatched(self, make_item, catalogue) -> None:
        """Suggestions below HIGH are not compared automatically."""
        verifier = DocumentVerifier()
        report = verifier.build_report([make_item("Olive", unit_price="6.90")], catalogue, "EUR", "EUR")

        result = report.match_results[0]
        assert result.auto_matched is False
        assert report.items[0].status == ComparisonStatus.UNMATCHED

    def test_links_override_fuzzy_matching(self, verifier, make_item, catalogue) -> None:
        """A reviewer link wins and uses the tighter LINKED tolerance."""
        items = [make_item("Tomaten 1kg", unit_price="2.10", row_index=1)]

        report = verifier.build_report(items, catalogue, "EUR", "EUR", links={1: "cat-1"})

        item = report.items[0]
        assert item.pairing_source == PairingSource.LINKED
        assert item.match_confidence == MatchConfidence.EXACT
        assert item.status == ComparisonStatus.OVERCHARGE
        assert report.match_results == []

    def test_link_to_unknown_candidate(self, verifier, make_item, catalogue) -> None:
        """Test that a link to an unknown candidate is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            verifier.build_report([make_item("x")], catalogue, "EUR", "EUR", links={1: "nope"})
        assert exc_info.value.details["links"] == {"1": "nope"}

    def test_duplicate_row_index_rejected(self, verifier, make_item, catalogue) -> None:
        """Test that items sharing a row index are rejected, not cross-matched."""
        items = [
            make_item("Tomato 1kg", unit_price="2.00", row_index=1),
            make_item("Whole Milk 1L", unit_price="1.10", row_index=1),
            make_item("Potato 2kg", unit_price="3.50", row_index=2),
        ]

        with pytest.raises(ValidationError) as exc_info:
            verifier.build_report(items, catalogue, "EUR", "EUR")
        assert exc_info.value.details["duplicate_rows"] == [1]

    def test_cross_currency_conversion(self, verifier, make_item, catalogue) -> None:
        """Test conversion across currencies."""
        report = verifier.build_report(
            [make_item("Whole Milk 1L", unit_price="1.20")],
            catalogue,
            document_currency="usd",
            catalogue_currency="EUR",
            exchange_rate=0.92,
        )

        item = report.items[0]
        assert item.query_price_converted == Decimal("1.104")
        assert item.exchange_rate == 0.92
        assert report.summary.currency_from == "USD"
        assert report.summary.exchange_rate == 0.92

    def test_rate_ignored_for_same_currency(self, verifier, make_item, catalogue) -> None:
        """Test that the rate is ignored for one currency."""
        report = verifier.build_report(
            [make_item("Whole Milk 1L", unit_price="1.10")], catalogue, "EUR", "EUR", exchange_rate=3.0
        )

        assert report.items[0].status == ComparisonStatus.MATCH
        assert report.summary.exchange_rate is None

    def test_cancelled_items_reported_unmatched(self, verifier, make_item, catalogue) -> None:
        """Test that cancelled items are reported UNMATCHED."""
        event = threading.Event()
        event.set()

        report = verifier.build_report(
            [make_item("Tomaten 1kg")], catalogue, "EUR", "EUR", cancel_event=event
        )

        assert report.items[0].status == ComparisonStatus.UNMATCHED
        assert report.match_results == []

    def test_report_to_dict(self, verifier, make_item, catalogue) -> None:
        """Test report to_dict conversion."""
        data = verifier.build_report([make_item("Tomaten 1kg", unit_price="2.10")], catalogue, "EUR", "EUR").to_dict()

        assert data["summary"]["matched_items"] == 1
        assert data["items"][0]["status"] == "MATCH"
        assert data["items"][0]["pairing_source"] == "suggested"
        assert data["match_results"][0]["best_match"]["candidate_id"] == "cat-1"


class TestVerify:
    """Tests for the async verify entry point."""

    @pytest.mark.asyncio
    async def test_uses_rate_provider(self, make_item, catalogue) -> None:
        """Test that verify resolves the rate through the provider."""
        provider = CurrencyRateProvider(cache=RateCache())
        verifier = DocumentVerifier(rate_provider=provider)

        report = await verifier.verify(
            [make_item("Whole Milk 1L", unit_price="1.20")],
            catalogue,
            document_currency="USD",
            catalogue_currency="EUR",
        )

        assert report.summary.exchange_rate == pytest.approx(0.92)
        assert report.items[0].status == ComparisonStatus.MATCH

    @pytest.mark.asyncio
    async def test_default_currency_from_settings(self, monkeypatch, make_item, catalogue) -> None:
        """Test the default currency from settings."""
        monkeypatch.setenv("COMPARE_DEFAULT_CURRENCY", "EUR")
        verifier = DocumentVerifier()

        report = await verifier.verify([make_item("Tomaten 1kg", unit_price="2.10")], catalogue)

        assert report.summary.currency_from == "EUR"
        assert report.summary.currency_to == "EUR"
        assert report.summary.exchange_rate is None

    @pytest.mark.asyncio
    async def test_links_passed_through(self, make_item, catalogue) -> None:
        """Test that links are passed through verify."""
        report = await DocumentVerifier().verify(
            [make_item("anything", unit_price="1.80")],
            catalogue,
            "EUR",
            "EUR",
            links={1: "cat-3"},
        )

        assert report.items[0].candidate_id == "cat-3"
        assert report.items[0].status == ComparisonStatus.MATCH
