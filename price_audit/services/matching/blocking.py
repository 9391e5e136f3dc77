"""Candidate pre-filtering (blocking) for large catalogues.

A blocker narrows the candidate list before every pair is scored. The
shipped blocker only drops candidates whose score is provably zero, so
applying it never changes which suggestions are returned or their order.
"""
from typing import List, Protocol, Sequence, runtime_checkable

import structlog

from price_audit.models.matching import CatalogueCandidate, QueryItem
from price_audit.services.matching.normalizer import normalize_code
from price_audit.services.matching.scorer import comparison_key

logger = structlog.get_logger(__name__)


@runtime_checkable
class CandidateBlocker(Protocol):
    """Protocol for candidate pre-filters used by the matcher."""

    def filter(
        self,
        query_item: QueryItem,
        candidates: Sequence[CatalogueCandidate],
    ) -> List[CatalogueCandidate]:
        """Return the candidates worth scoring, in their original order."""
        ...


class CharacterOverlapBlocker:
    """Drop candidates that share no character with the query.

    With no common character both the edit-distance and the token signal
    are exactly 0. Candidates whose product code equals the query code are
    always kept because they score 1.0 regardless of the name.
    """

    def __init__(self):
        self._log = logger.bind(blocker="CharacterOverlapBlocker")

    def filter(
        self,
        query_item: QueryItem,
        candidates: Sequence[CatalogueCandidate],
    ) -> List[CatalogueCandidate]:
        """Filter candidates for one query item.

        Args:
            query_item: Line item being matched
            candidates: Full candidate list

        Returns:
            Candidates that can score above zero, original order kept
        """
        query_chars = frozenset(comparison_key(query_item.product_name))
        query_code = normalize_code(query_item.code)

        kept: List[CatalogueCandidate] = []
        for candidate in candidates:
            if query_code and query_code == normalize_code(candidate.code):
                kept.append(candidate)
            elif not query_chars.isdisjoint(comparison_key(candidate.product_name)):
                kept.append(candidate)

        self._log.debug(
            "candidates_blocked",
            row_index=query_item.row_index,
            total_candidates=len(candidates),
            kept_candidates=len(kept),
        )
        return kept
