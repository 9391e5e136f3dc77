"""Text normalization for product names and codes.

Receipt lines arrive with inconsistent casing, stray punctuation from OCR
and compatibility characters (full-width digits, ligatures). Everything
fed to the scorer passes through ``normalize`` first so that the same
product text always produces the same comparison key.
"""
import re
import unicodedata
from typing import Any, List

_WHITESPACE_RE = re.compile(r"\s+")

# Token-edge characters that survive stripping
_KEPT_EDGE_CHARS = frozenset("%")


def _is_edge_noise(char: str) -> bool:
    return char not in _KEPT_EDGE_CHARS and unicodedata.category(char).startswith("P")


def _strip_token(token: str) -> str:
    start, end = 0, len(token)
    while start < end and _is_edge_noise(token[start]):
        start += 1
    while end > start and _is_edge_noise(token[end - 1]):
        end -= 1
    return token[start:end]


def normalize(raw: Any) -> str:
    """Normalize free product text into a canonical comparison key.

    Steps, in order: NFKC, case folding, whitespace collapsing and removal
    of punctuation at token edges. Internal punctuation ("coca-cola",
    "1.5l") and diacritics are kept. The function is total and idempotent:
    ``normalize(normalize(x)) == normalize(x)``.

    Args:
        raw: Text to normalize; None and non-str values are accepted

    Returns:
        Normalized text, empty string for missing input

    Examples:
        >>> normalize("  TOMATEN  (1kg), ")
        'tomaten 1kg'
        >>> normalize("Coca-Cola 1.5L")
        'coca-cola 1.5l'
    """
    if raw is None:
        return ""
    text = raw if isinstance(raw, str) else str(raw)

    # casefold can produce sequences that NFKC recomposes, so normalize twice
    text = unicodedata.normalize("NFKC", text)
    text = unicodedata.normalize("NFKC", text.casefold())

    tokens = (_strip_token(token) for token in _WHITESPACE_RE.split(text))
    return " ".join(token for token in tokens if token)


def normalize_code(code: Any) -> str:
    """Normalize a product code / SKU.

    Trims, uppercases and removes all whitespace. Missing codes become an
    empty string, which never matches another code.
    """
    if code is None:
        return ""
    text = code if isinstance(code, str) else str(code)
    return _WHITESPACE_RE.sub("", text).upper()


def fold_diacritics(text: str) -> str:
    """Remove combining marks ("café" -> "cafe")."""
    decomposed = unicodedata.normalize("NFD", text)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", folded)


def tokenize(text: Any) -> List[str]:
    """Split normalized text into tokens."""
    normalized = normalize(text)
    return normalized.split(" ") if normalized else []
