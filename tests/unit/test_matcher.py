"""Unit tests for FuzzyMatcher and matching helpers.

Tests cover:
    - ConfidenceThresholds validation and tier mapping
    - FuzzyMatcher.find_matches ranking, tiers and auto-match safety
    - Empty candidate and blank query handling
    - Batch matching order under parallel scheduling and cancellation
    - search_items and the strategy factory
"""
import threading
from decimal import Decimal

import pytest

from price_audit.errors import ConfigurationError
from price_audit.models import CatalogueCandidate, ConfidenceTier, MatchResult
from price_audit.services.matching import (
    SKIP_EMPTY_NAME,
    CharacterOverlapBlocker,
    ConfidenceThresholds,
    FuzzyMatcher,
    create_matcher,
    find_matches,
    find_matches_for_items,
)


def _candidate(cid: str, name: str, price: str = "1.00", code=None) -> CatalogueCandidate:
    return CatalogueCandidate(id=cid, product_name=name, price=Decimal(price), code=code)


class TestConfidenceThresholds:
    """Tests for ConfidenceThresholds."""

    def test_defaults(self) -> None:
        """Test default thresholds."""
        thresholds = ConfidenceThresholds()
        assert (thresholds.exact, thresholds.high, thresholds.medium, thresholds.low) == (
            0.95,
            0.80,
            0.60,
            0.35,
        )

    @pytest.mark.parametrize(
        "score,tier",
        [
            (1.0, ConfidenceTier.EXACT),
            (0.95, ConfidenceTier.EXACT),
            (0.9499, ConfidenceTier.HIGH),
            (0.80, ConfidenceTier.HIGH),
            (0.60, ConfidenceTier.MEDIUM),
            (0.35, ConfidenceTier.LOW),
            (0.3499, ConfidenceTier.NONE),
            (0.0, ConfidenceTier.NONE),
        ],
    )
    def test_tier_boundaries_inclusive(self, score, tier) -> None:
        """A score equal to a threshold gets that tier."""
        assert ConfidenceThresholds().tier_for(score) == tier

    def test_not_descending_rejected(self) -> None:
        """Test that thresholds must be descending."""
        with pytest.raises(ConfigurationError):
            ConfidenceThresholds(exact=0.9, high=0.9, medium=0.6, low=0.3)

    def test_out_of_range_rejected(self) -> None:
        """Test that thresholds must lie in [0, 1]."""
        with pytest.raises(ConfigurationError):
            ConfidenceThresholds(exact=1.2)

    def test_from_settings(self, monkeypatch) -> None:
        """Thresholds follow MATCH_ environment variables."""
        from price_audit.config import get_matching_settings

        monkeypatch.setenv("MATCH_HIGH_THRESHOLD", "0.85")
        thresholds = ConfidenceThresholds.from_settings(get_matching_settings())
        assert thresholds.high == 0.85


class TestFindMatches:
    """Tests for FuzzyMatcher.find_matches."""

    @pytest.fixture
    def matcher(self):
        return FuzzyMatcher()

    def test_get_strategy_name(self, matcher) -> None:
        """Test the strategy name."""
        assert matcher.get_strategy_name() == "fuzzy_weighted"

    def test_spelling_variant_auto_matches(self, matcher, make_item, catalogue) -> None:
        """A German spelling of an English catalogue name is a HIGH match."""
        result = matcher.find_matches(make_item("Tomaten 1kg"), catalogue)

        assert result.best_match is not None
        assert result.best_match.candidate.id == "cat-1"
        assert result.best_match.confidence == ConfidenceTier.HIGH
        assert result.auto_matched is True

    def test_identical_name_is_exact(self, matcher, make_item, catalogue) -> None:
        """Test that an identical name is an EXACT match."""
        result = matcher.find_matches(make_item("whole milk 1l"), catalogue)

        assert result.best_match.candidate.id == "cat-4"
        assert result.best_match.confidence == ConfidenceTier.EXACT
        assert result.auto_matched is True

    def test_code_match_short_circuits(self, matcher, make_item, catalogue) -> None:
        """A matching product code wins even when the name is garbled."""
        result = matcher.find_matches(make_item("#@! illegible", code="drk-cok-15"), catalogue)

        assert result.best_match.candidate.id == "cat-3"
        assert result.best_match.score == 1.0
        assert result.best_match.matched_on == "code"
        assert result.best_match.confidence == ConfidenceTier.EXACT

    def test_suggestions_sorted_and_above_low(self, matcher, make_item, catalogue) -> None:
        """Test that suggestions are sorted and above the LOW threshold."""
        result = matcher.find_matches(make_item("Tomaten 1kg"), catalogue)

        scores = [s.score for s in result.suggestions]
        assert scores == sorted(scores, reverse=True)
        assert all(s.confidence != ConfidenceTier.NONE for s in result.suggestions)
        assert all(s.score >= matcher.thresholds.low for s in result.suggestions)
        assert result.best_match == result.suggestions[0]

    def test_suggestions_capped_at_max(self, make_item) -> None:
        """Test that suggestions are capped at max_suggestions."""
        candidates = [_candidate(f"c{i}", f"Tomato {i}kg") for i in range(10)]
        matcher = FuzzyMatcher(max_suggestions=3)

        result = matcher.find_matches(make_item("Tomato 1kg"), candidates)

        assert len(result.suggestions) == 3
        assert result.best_match.candidate.id == "c1"

    def test_tie_break_order(self, matcher, make_item) -> None:
        """Equal scores: shorter name, then name, then id."""
        candidates = [
            _candidate("b", "Milk"),
            _candidate("c", "Milk!"),
            _candidate("a", "Milk"),
            _candidate("d", "MILK"),
        ]

        result = matcher.find_matches(make_item("milk"), candidates)

        assert [s.candidate.id for s in result.suggestions] == ["d", "a", "b", "c"]

    def test_medium_best_match_is_not_auto_matched(self, make_item, catalogue) -> None:
        """Only EXACT and HIGH are accepted without review."""
        strict = ConfidenceThresholds(exact=0.99, high=0.95, medium=0.6, low=0.35)
        matcher = FuzzyMatcher(thresholds=strict)

        result = matcher.find_matches(make_item("Tomaten 1kg"), catalogue)

        assert result.best_match.confidence == ConfidenceTier.MEDIUM
        assert result.auto_matched is False

    def test_no_suggestion_above_low(self, matcher, make_item, catalogue) -> None:
        """Test a query with no suggestion above LOW."""
        result = matcher.find_matches(make_item("Dishwasher tabs"), catalogue)

        assert result.suggestions == []
        assert result.best_match is None
        assert result.auto_matched is False

    def test_empty_candidates(self, matcher, make_item) -> None:
        """No catalogue means an empty, valid result."""
        result = matcher.find_matches(make_item("Tomaten 1kg"), [])

        assert result.suggestions == []
        assert result.best_match is None
        assert result.auto_matched is False
        assert result.skipped is False

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_skipped(self, matcher, make_item, catalogue, name) -> None:
        """Test that blank names are skipped."""
        result = matcher.find_matches(make_item(name), catalogue)

        assert result.skipped is True
        assert result.skip_reason == SKIP_EMPTY_NAME
        assert result.suggestions == []
        assert result.auto_matched is False

    def test_auto_matched_invariant_holds(self, matcher, make_item, catalogue) -> None:
        """Test that auto matches are always EXACT or HIGH."""
        names = ["Tomaten 1kg", "Kartoffeln", "Cola", "Milch 1L", "Olivenöl 500ml", "xyz"]
        for i, name in enumerate(names, start=1):
            result = matcher.find_matches(make_item(name, row_index=i), catalogue)
            if result.auto_matched:
                assert result.best_match.confidence in (ConfidenceTier.EXACT, ConfidenceTier.HIGH)

    def test_result_to_dict(self, matcher, make_item, catalogue) -> None:
        """Test MatchResult to_dict conversion."""
        data = matcher.find_matches(make_item("Tomaten 1kg", row_index=7), catalogue).to_dict()

        assert data["row_index"] == 7
        assert data["best_match"]["candidate_id"] == "cat-1"
        assert data["best_match"]["confidence"] == "HIGH"
        assert data["auto_matched"] is True

    def test_long_product_name(self, matcher, make_item) -> None:
        """Test that free text longer than a typical field width still matches."""
        name = "Organic heirloom tomato mix, family pack " * 20
        candidates = [_candidate("long", name), _candidate("short", "Whole Milk 1L")]

        result = matcher.find_matches(make_item(name), candidates)

        assert len(name) > 500
        assert result.skipped is False
        assert result.best_match.candidate.id == "long"
        assert result.best_match.confidence == ConfidenceTier.EXACT


class TestBlocking:
    """Blocking prunes only zero-score candidates."""

    def test_blocker_drops_disjoint_candidates(self, make_item) -> None:
        """Test that candidates sharing no characters are dropped."""
        blocker = CharacterOverlapBlocker()
        candidates = [_candidate("1", "Tomato"), _candidate("2", "ЖЖЖ"), _candidate("3", "")]

        kept = blocker.filter(make_item("tomaten"), candidates)

        assert [c.id for c in kept] == ["1"]

    def test_blocker_keeps_code_matches(self, make_item) -> None:
        """Test that code matches survive blocking."""
        blocker = CharacterOverlapBlocker()
        candidates = [_candidate("1", "ЖЖЖ", code="X-1")]

        kept = blocker.filter(make_item("tomaten", code="x-1"), candidates)

        assert [c.id for c in kept] == ["1"]

    def test_blocking_does_not_change_ranking(self, make_item, catalogue) -> None:
        """Test that blocking leaves the ranking unchanged."""
        noise = [_candidate(f"n{i}", "ЖЖЖ ЩЩЩ") for i in range(5)]
        candidates = catalogue + noise
        plain = FuzzyMatcher()
        blocked = FuzzyMatcher(blocker=CharacterOverlapBlocker())

        for name in ["Tomaten 1kg", "Cola 1.5", "Olive oil", "zzz"]:
            item = make_item(name)
            expected = plain.find_matches(item, candidates)
            actual = blocked.find_matches(item, candidates)
            assert actual.suggestions == expected.suggestions
            assert actual.auto_matched == expected.auto_matched


class TestBatchMatching:
    """Tests for find_matches_for_items."""

    NAMES = ["Tomaten 1kg", "Kartoffeln 2kg", "Cola 1.5L", "Milch 1L", "", "Olivenöl"]

    @pytest.fixture
    def items(self, make_item):
        return [
            make_item(self.NAMES[i % len(self.NAMES)], row_index=i + 1)
            for i in range(120)
        ]

    def test_sequential_preserves_order(self, make_item, catalogue) -> None:
        """Test that sequential matching keeps input order."""
        items = [make_item(name, row_index=i) for i, name in enumerate(self.NAMES, start=1)]
        results = FuzzyMatcher(parallel_threshold=1000).find_matches_for_items(items, catalogue)

        assert [r.row_index for r in results] == list(range(1, len(items) + 1))

    def test_parallel_matches_sequential(self, items, catalogue) -> None:
        """Thread pool scheduling never reorders or changes results."""
        sequential = FuzzyMatcher(parallel_threshold=1000).find_matches_for_items(items, catalogue)
        parallel = FuzzyMatcher(parallel_threshold=10, max_workers=4).find_matches_for_items(
            items, catalogue
        )

        assert [r.row_index for r in parallel] == list(range(1, 121))
        assert parallel == sequential

    def test_empty_batch(self, catalogue) -> None:
        """Test matching an empty batch."""
        assert FuzzyMatcher().find_matches_for_items([], catalogue) == []

    def test_cancelled_before_start(self, items, catalogue) -> None:
        """Test a batch cancelled before it starts."""
        event = threading.Event()
        event.set()

        results = FuzzyMatcher(parallel_threshold=10, max_workers=4).find_matches_for_items(
            items, catalogue, cancel_event=event
        )

        assert results == []

    def test_cancel_mid_batch_sequential(self, items, catalogue) -> None:
        """Items after cancellation are dropped; completed ones are kept."""
        event = threading.Event()

        class StoppingMatcher(FuzzyMatcher):
            def find_matches(self, query_item, candidates) -> MatchResult:
                result = super().find_matches(query_item, candidates)
                if query_item.row_index == 3:
                    event.set()
                return result

        results = StoppingMatcher(parallel_threshold=1000).find_matches_for_items(
            items, catalogue, cancel_event=event
        )

        assert [r.row_index for r in results] == [1, 2, 3]

    def test_cancel_mid_batch_parallel(self, items, catalogue) -> None:
        """Partial results from the pool still come back in row order."""
        event = threading.Event()

        class StoppingMatcher(FuzzyMatcher):
            def find_matches(self, query_item, candidates) -> MatchResult:
                result = super().find_matches(query_item, candidates)
                if query_item.row_index == 5:
                    event.set()
                return result

        results = StoppingMatcher(parallel_threshold=10, max_workers=2).find_matches_for_items(
            items, catalogue, cancel_event=event
        )

        rows = [r.row_index for r in results]
        assert 5 in rows
        assert rows == sorted(rows)
        assert len(rows) < len(items)

    def test_module_level_helpers(self, make_item, catalogue) -> None:
        """Test the module-level matching helpers."""
        item = make_item("Tomaten 1kg")
        assert find_matches(item, catalogue).auto_matched is True
        assert len(find_matches_for_items([item, item], catalogue)) == 2


class TestSearchItems:
    """Tests for the reviewer search helper."""

    def test_blank_query_lists_first_candidates(self, catalogue) -> None:
        """Test that a blank query lists the first candidates."""
        results = FuzzyMatcher().search_items("  ", catalogue, limit=2)
        assert [c.id for c in results] == ["cat-1", "cat-2"]

    def test_query_ranks_candidates(self, catalogue) -> None:
        """Test that a query ranks candidates."""
        results = FuzzyMatcher().search_items("tomato", catalogue)
        assert results[0].id == "cat-1"

    def test_limit_respected(self) -> None:
        """Test that the result limit is respected."""
        candidates = [_candidate(f"c{i}", f"Tomato {i}") for i in range(30)]
        assert len(FuzzyMatcher().search_items("tomato", candidates, limit=20)) == 20

    def test_long_query(self, catalogue) -> None:
        """Test that a long pasted query is searched rather than rejected."""
        results = FuzzyMatcher().search_items("tomato " * 100, catalogue)
        assert isinstance(results, list)


class TestCreateMatcher:
    """Tests for create_matcher factory function."""

    def test_create_fuzzy_matcher(self) -> None:
        """Test creating the fuzzy matcher."""
        matcher = create_matcher("fuzzy", max_suggestions=2)
        assert isinstance(matcher, FuzzyMatcher)
        assert matcher.max_suggestions == 2

    def test_create_default_matcher(self) -> None:
        """Test the default strategy."""
        assert isinstance(create_matcher(), FuzzyMatcher)

    def test_create_unknown_strategy(self) -> None:
        """Test that an unknown strategy is rejected."""
        with pytest.raises(ValueError) as exc_info:
            create_matcher("unknown_strategy")
        assert "Unknown matching strategy" in str(exc_info.value)
