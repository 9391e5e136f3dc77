"""Similarity scoring between a query line item and a catalogue product.

Two RapidFuzz signals are blended:

    - character signal: normalized Levenshtein similarity, robust to typos
      and inflections ("tomaten" vs "tomato")
    - token signal: token_set_ratio, order-insensitive and tolerant to
      extra or abbreviated words ("cola coca 1.5l" vs "coca-cola")

An exact product code match short-circuits both.
"""
from functools import lru_cache
from typing import Optional

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from price_audit.config import MatchingSettings, get_matching_settings
from price_audit.errors import ConfigurationError
from price_audit.models.matching import ScoreResult
from price_audit.services.matching.normalizer import fold_diacritics, normalize, normalize_code


@lru_cache(maxsize=8192)
def comparison_key(text: Optional[str]) -> str:
    """Normalized, diacritic-folded form of a product name."""
    return fold_diacritics(normalize(text))


class SimilarityScorer:
    """Weighted blend of character and token similarity.

    Attributes:
        character_weight: Edit-distance weight for short names
        token_weight: Token-overlap weight for short names
        multi_token_character_weight: Edit-distance weight when both names
            have two or more tokens
        multi_token_token_weight: Token-overlap weight when both names
            have two or more tokens
    """

    def __init__(
        self,
        character_weight: float = 0.5,
        token_weight: float = 0.5,
        multi_token_character_weight: float = 0.4,
        multi_token_token_weight: float = 0.6,
    ):
        """Initialize the scorer.

        Raises:
            ConfigurationError: If a weight is negative or a weight pair
                sums to zero
        """
        weights = {
            "character_weight": character_weight,
            "token_weight": token_weight,
            "multi_token_character_weight": multi_token_character_weight,
            "multi_token_token_weight": multi_token_token_weight,
        }
        negative = {k: v for k, v in weights.items() if v < 0}
        if negative:
            raise ConfigurationError("Scorer weights must be non-negative", details=negative)
        if character_weight + token_weight <= 0:
            raise ConfigurationError("character_weight + token_weight must be positive")
        if multi_token_character_weight + multi_token_token_weight <= 0:
            raise ConfigurationError(
                "multi_token_character_weight + multi_token_token_weight must be positive"
            )

        self.character_weight = character_weight
        self.token_weight = token_weight
        self.multi_token_character_weight = multi_token_character_weight
        self.multi_token_token_weight = multi_token_token_weight

    @classmethod
    def from_settings(cls, settings: Optional[MatchingSettings] = None) -> "SimilarityScorer":
        """Build a scorer from matching settings (defaults when omitted)."""
        settings = settings or get_matching_settings()
        return cls(
            character_weight=settings.character_weight,
            token_weight=settings.token_weight,
            multi_token_character_weight=settings.multi_token_character_weight,
            multi_token_token_weight=settings.multi_token_token_weight,
        )

    def score(
        self,
        query: Optional[str],
        candidate: Optional[str],
        query_sku: Optional[str] = None,
        candidate_sku: Optional[str] = None,
    ) -> ScoreResult:
        """Score how well a candidate name matches a query name.

        Args:
            query: Product text from the document
            candidate: Catalogue product name
            query_sku: Optional code printed on the document line
            candidate_sku: Optional catalogue product code

        Returns:
            ScoreResult with a value in [0, 1]. ``matched_on`` is "code" only
            when both codes are present and equal after normalization.
        """
        query_code = normalize_code(query_sku)
        if query_code and query_code == normalize_code(candidate_sku):
            return ScoreResult(value=1.0, matched_on="code")

        a = comparison_key(query)
        b = comparison_key(candidate)
        if not a or not b:
            return ScoreResult(value=0.0, matched_on="name")

        character = Levenshtein.normalized_similarity(a, b)
        token = fuzz.token_set_ratio(a, b) / 100.0

        if " " in a and " " in b:
            char_w = self.multi_token_character_weight
            token_w = self.multi_token_token_weight
        else:
            char_w = self.character_weight
            token_w = self.token_weight

        value = (char_w * character + token_w * token) / (char_w + token_w)
        return ScoreResult(value=min(1.0, max(0.0, value)), matched_on="name")


@lru_cache
def get_default_scorer() -> SimilarityScorer:
    """Get the cached scorer built from environment settings."""
    return SimilarityScorer.from_settings()


def score(
    query: Optional[str],
    candidate: Optional[str],
    query_sku: Optional[str] = None,
    candidate_sku: Optional[str] = None,
) -> ScoreResult:
    """Score a pair with the default scorer. See ``SimilarityScorer.score``."""
    return get_default_scorer().score(query, candidate, query_sku, candidate_sku)
