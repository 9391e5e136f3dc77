"""Line-item matching: normalization, scoring, blocking and ranking."""
from price_audit.services.matching.blocking import CandidateBlocker, CharacterOverlapBlocker
from price_audit.services.matching.matcher import (
    SKIP_EMPTY_NAME,
    BatchMatchingStats,
    ConfidenceThresholds,
    FuzzyMatcher,
    MatcherStrategy,
    create_matcher,
    find_matches,
    find_matches_for_items,
)
from price_audit.services.matching.normalizer import (
    fold_diacritics,
    normalize,
    normalize_code,
    tokenize,
)
from price_audit.services.matching.scorer import SimilarityScorer, score

__all__ = [
    "SKIP_EMPTY_NAME",
    "BatchMatchingStats",
    "CandidateBlocker",
    "CharacterOverlapBlocker",
    "ConfidenceThresholds",
    "FuzzyMatcher",
    "MatcherStrategy",
    "SimilarityScorer",
    "create_matcher",
    "find_matches",
    "find_matches_for_items",
    "fold_diacritics",
    "normalize",
    "normalize_code",
    "score",
    "tokenize",
]
