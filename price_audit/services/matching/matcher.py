"""Fuzzy matching of document line items against catalogue products.

This module ranks catalogue candidates for each query item, assigns
confidence tiers and decides which matches are safe to accept without
human review.

Key Components:
    - ConfidenceThresholds: Named tier boundaries (strictly descending)
    - MatcherStrategy: Abstract base class for matching algorithms
    - FuzzyMatcher: Default implementation built on SimilarityScorer
    - create_matcher: Strategy factory
"""
import os
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from price_audit.config import MatchingSettings, get_matching_settings
from price_audit.errors import ConfigurationError
from price_audit.models.matching import (
    AUTO_MATCH_TIERS,
    CatalogueCandidate,
    ConfidenceTier,
    MatchResult,
    MatchSuggestion,
    QueryItem,
)
from price_audit.services.matching.blocking import CandidateBlocker
from price_audit.services.matching.scorer import SimilarityScorer

logger = structlog.get_logger(__name__)

SKIP_EMPTY_NAME = "empty_product_name"


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Score boundaries of the confidence tiers.

    A score gets the highest tier whose threshold it reaches; below
    ``low`` it is NONE and the candidate is not suggested.

    Raises:
        ConfigurationError: If a threshold is outside [0, 1] or the
            thresholds are not strictly descending
    """
    exact: float = 0.95
    high: float = 0.80
    medium: float = 0.60
    low: float = 0.35

    def __post_init__(self) -> None:
        ordered = (self.exact, self.high, self.medium, self.low)
        if any(not 0.0 <= t <= 1.0 for t in ordered):
            raise ConfigurationError(
                "Confidence thresholds must be within [0, 1]",
                details=self.to_dict(),
            )
        if any(a <= b for a, b in zip(ordered, ordered[1:])):
            raise ConfigurationError(
                "Confidence thresholds must be strictly descending: exact > high > medium > low",
                details=self.to_dict(),
            )

    @classmethod
    def from_settings(cls, settings: MatchingSettings) -> "ConfidenceThresholds":
        return cls(
            exact=settings.exact_threshold,
            high=settings.high_threshold,
            medium=settings.medium_threshold,
            low=settings.low_threshold,
        )

    def tier_for(self, score: float) -> ConfidenceTier:
        """Map a similarity score to its confidence tier."""
        if score >= self.exact:
            return ConfidenceTier.EXACT
        if score >= self.high:
            return ConfidenceTier.HIGH
        if score >= self.medium:
            return ConfidenceTier.MEDIUM
        if score >= self.low:
            return ConfidenceTier.LOW
        return ConfidenceTier.NONE

    def to_dict(self) -> Dict[str, float]:
        return {"exact": self.exact, "high": self.high, "medium": self.medium, "low": self.low}


@dataclass
class BatchMatchingStats:
    """Counters collected while matching a batch of items."""
    items_total: int = 0
    items_processed: int = 0
    auto_matched: int = 0
    needs_review: int = 0
    unmatched: int = 0
    skipped: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0

    def record(self, result: MatchResult) -> None:
        self.items_processed += 1
        if result.skipped:
            self.skipped += 1
        elif result.auto_matched:
            self.auto_matched += 1
        elif result.best_match is not None:
            self.needs_review += 1
        else:
            self.unmatched += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "items_total": self.items_total,
            "items_processed": self.items_processed,
            "auto_matched": self.auto_matched,
            "needs_review": self.needs_review,
            "unmatched": self.unmatched,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
        }


def _ranking_key(suggestion: MatchSuggestion) -> Tuple[float, int, str, str]:
    """Sort key: score desc, then shorter name, then name, then id."""
    candidate = suggestion.candidate
    return (-suggestion.score, len(candidate.product_name), candidate.product_name, candidate.id)


class MatcherStrategy(ABC):
    """Abstract base class for line-item matching strategies.

    All implementations must honor the contract:
        - find_matches() returns suggestions sorted best first
        - Scores are normalized to the 0-1 range
        - An empty candidate list returns an empty, valid result
        - auto_matched is only set for EXACT or HIGH best matches
    """

    @abstractmethod
    def find_matches(
        self,
        query_item: QueryItem,
        candidates: Sequence[CatalogueCandidate],
    ) -> MatchResult:
        """Find matching catalogue products for one line item.

        Args:
            query_item: Line item to match
            candidates: Catalogue products to match against

        Returns:
            MatchResult with ranked suggestions
        """
        pass

    @abstractmethod
    def get_strategy_name(self) -> str:
        """Get the name of this matching strategy."""
        pass

    def find_matches_for_items(
        self,
        query_items: Iterable[QueryItem],
        candidates: Sequence[CatalogueCandidate],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[MatchResult]:
        """Match every item sequentially, in input order."""
        results: List[MatchResult] = []
        for item in query_items:
            if cancel_event is not None and cancel_event.is_set():
                break
            results.append(self.find_matches(item, candidates))
        return results


class FuzzyMatcher(MatcherStrategy):
    """Line-item matcher using the weighted RapidFuzz similarity scorer.

    Every candidate that survives blocking is scored, suggestions below
    the LOW threshold are discarded and the top ``max_suggestions`` are
    kept. Batches at or above ``parallel_threshold`` items are spread
    over a thread pool; results always come back in input order.

    Attributes:
        scorer: SimilarityScorer used for every pair
        thresholds: ConfidenceThresholds for tier assignment
        max_suggestions: Maximum suggestions kept per item
        blocker: Optional CandidateBlocker applied before scoring
    """

    def __init__(
        self,
        scorer: Optional[SimilarityScorer] = None,
        thresholds: Optional[ConfidenceThresholds] = None,
        max_suggestions: Optional[int] = None,
        blocker: Optional[CandidateBlocker] = None,
        max_workers: Optional[int] = None,
        parallel_threshold: Optional[int] = None,
        settings: Optional[MatchingSettings] = None,
    ):
        """Initialize the fuzzy matcher.

        Unset arguments are taken from ``settings`` (environment settings
        when omitted).

        Args:
            scorer: Pair scorer
            thresholds: Tier boundaries
            max_suggestions: Suggestions kept per item (K)
            blocker: Candidate pre-filter
            max_workers: Thread pool size for batches (None = CPU count)
            parallel_threshold: Minimum batch size for the thread pool

        Raises:
            ConfigurationError: If max_suggestions or max_workers is below 1
        """
        settings = settings or get_matching_settings()
        self.scorer = scorer or SimilarityScorer.from_settings(settings)
        self.thresholds = thresholds or ConfidenceThresholds.from_settings(settings)
        self.max_suggestions = max_suggestions if max_suggestions is not None else settings.max_suggestions
        self.blocker = blocker
        self._max_workers = max_workers if max_workers is not None else settings.max_workers
        self._parallel_threshold = (
            parallel_threshold if parallel_threshold is not None else settings.parallel_threshold
        )

        if self.max_suggestions < 1:
            raise ConfigurationError("max_suggestions must be at least 1")
        if self._max_workers is not None and self._max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")

        self._log = logger.bind(matcher="FuzzyMatcher")

    def get_strategy_name(self) -> str:
        """Get the name of this matching strategy."""
        return "fuzzy_weighted"

    @property
    def worker_count(self) -> int:
        return self._max_workers or os.cpu_count() or 1

    def find_matches(
        self,
        query_item: QueryItem,
        candidates: Sequence[CatalogueCandidate],
    ) -> MatchResult:
        """Rank catalogue candidates for one line item.

        Args:
            query_item: Line item to match
            candidates: Catalogue products to match against

        Returns:
            MatchResult with at most ``max_suggestions`` suggestions (NONE
            tier excluded). Items with a blank product name are returned
            as skipped.
        """
        if query_item.is_blank:
            self._log.debug(
                "match_skipped",
                row_index=query_item.row_index,
                reason=SKIP_EMPTY_NAME,
            )
            return MatchResult(query_item=query_item, skipped=True, skip_reason=SKIP_EMPTY_NAME)

        if not candidates:
            self._log.debug(
                "no_candidates_to_match",
                row_index=query_item.row_index,
                product_name=query_item.product_name,
            )
            return MatchResult(query_item=query_item)

        pool: Sequence[CatalogueCandidate] = candidates
        # A zero LOW threshold would make zero-score candidates suggestible
        if self.blocker is not None and self.thresholds.low > 0:
            pool = self.blocker.filter(query_item, candidates)

        suggestions = self._rank(query_item, pool)
        best_match = suggestions[0] if suggestions else None
        auto_matched = best_match is not None and best_match.confidence in AUTO_MATCH_TIERS

        self._log.debug(
            "match_completed",
            row_index=query_item.row_index,
            product_name=query_item.product_name,
            best_score=round(best_match.score, 4) if best_match else None,
            confidence=best_match.confidence.value if best_match else None,
            auto_matched=auto_matched,
            suggestions_count=len(suggestions),
        )

        return MatchResult(
            query_item=query_item,
            suggestions=suggestions,
            best_match=best_match,
            auto_matched=auto_matched,
        )

    def _rank(
        self,
        query_item: QueryItem,
        candidates: Sequence[CatalogueCandidate],
        limit: Optional[int] = None,
    ) -> List[MatchSuggestion]:
        suggestions: List[MatchSuggestion] = []
        for candidate in candidates:
            result = self.scorer.score(
                query_item.product_name,
                candidate.product_name,
                query_item.code,
                candidate.code,
            )
            tier = self.thresholds.tier_for(result.value)
            if tier == ConfidenceTier.NONE:
                continue
            suggestions.append(
                MatchSuggestion(
                    candidate=candidate,
                    score=result.value,
                    confidence=tier,
                    matched_on=result.matched_on,
                )
            )

        suggestions.sort(key=_ranking_key)
        return suggestions[: limit or self.max_suggestions]

    def find_matches_for_items(
        self,
        query_items: Iterable[QueryItem],
        candidates: Sequence[CatalogueCandidate],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[MatchResult]:
        """Match a batch of line items against the same catalogue.

        Small batches run sequentially. Larger ones fan out over a thread
        pool bounded by ``max_workers``. Setting ``cancel_event`` stops
        items that have not started yet; completed results are still
        returned, in input order.

        Args:
            query_items: Line items to match
            candidates: Catalogue products shared by every item
            cancel_event: Optional cancellation signal

        Returns:
            One MatchResult per processed item, in input order
        """
        items = list(query_items)
        candidates = list(candidates)
        stats = BatchMatchingStats(items_total=len(items))
        started = time.perf_counter()

        workers = min(self.worker_count, len(items)) if items else 1
        if len(items) < self._parallel_threshold or workers <= 1:
            results = super().find_matches_for_items(items, candidates, cancel_event)
        else:
            results = self._match_parallel(items, candidates, workers, cancel_event)

        for result in results:
            stats.record(result)
        stats.cancelled = len(results) < len(items)
        stats.duration_seconds = time.perf_counter() - started

        if stats.cancelled:
            self._log.warning("batch_matching_cancelled", **stats.to_dict())
        else:
            self._log.info("batch_matching_completed", workers=workers, **stats.to_dict())
        return results

    def _match_parallel(
        self,
        items: List[QueryItem],
        candidates: List[CatalogueCandidate],
        workers: int,
        cancel_event: Optional[threading.Event],
    ) -> List[MatchResult]:
        def run(item: QueryItem) -> Optional[MatchResult]:
            if cancel_event is not None and cancel_event.is_set():
                return None
            return self.find_matches(item, candidates)

        completed: Dict[int, MatchResult] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="matcher") as executor:
            futures = {executor.submit(run, item): index for index, item in enumerate(items)}
            for future in as_completed(futures):
                result = future.result()
                if result is not None:
                    completed[futures[future]] = result

        return [completed[index] for index in sorted(completed)]

    def search_items(
        self,
        query: Optional[str],
        candidates: Sequence[CatalogueCandidate],
        limit: int = 20,
    ) -> List[CatalogueCandidate]:
        """Manual catalogue search for reviewers.

        A blank query lists the first ``limit`` candidates in catalogue
        order. Otherwise candidates are ranked like ``find_matches`` (NONE
        tier excluded) and capped at ``limit``.

        Args:
            query: Free search text typed by a reviewer
            candidates: Catalogue products to search
            limit: Maximum number of results

        Returns:
            Matching candidates, best first
        """
        if limit < 1:
            return []
        query_item = QueryItem(row_index=1, product_name=query or "", unit_price=0)
        if query_item.is_blank:
            return list(candidates[:limit])
        return [s.candidate for s in self._rank(query_item, candidates, limit=limit)]


def create_matcher(strategy: str = "fuzzy", **kwargs) -> MatcherStrategy:
    """Factory function to create a matcher strategy.

    Args:
        strategy: Strategy name ("fuzzy" for now)
        **kwargs: Additional arguments passed to the matcher

    Returns:
        MatcherStrategy instance

    Raises:
        ValueError: If unknown strategy name
    """
    strategies = {
        "fuzzy": FuzzyMatcher,
    }

    if strategy not in strategies:
        raise ValueError(f"Unknown matching strategy: {strategy}. Available: {list(strategies.keys())}")

    return strategies[strategy](**kwargs)


def find_matches(
    query_item: QueryItem,
    candidates: Sequence[CatalogueCandidate],
) -> MatchResult:
    """Match one item with a matcher built from environment settings."""
    return FuzzyMatcher().find_matches(query_item, candidates)


def find_matches_for_items(
    query_items: Iterable[QueryItem],
    candidates: Sequence[CatalogueCandidate],
    cancel_event: Optional[threading.Event] = None,
) -> List[MatchResult]:
    """Match a batch with a matcher built from environment settings."""
    return FuzzyMatcher().find_matches_for_items(query_items, candidates, cancel_event)
