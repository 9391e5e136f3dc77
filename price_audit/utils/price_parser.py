"""
Price and Currency Parser
=========================

Extracts amounts and currency codes from spreadsheet price cells.

Example inputs:
- "£10.00" → amount=10.00, currency_code="GBP"
- "1.234,56 €" → amount=1234.56, currency_code="EUR"
- "HK$ 99" → amount=99, currency_code="HKD"
- "25 руб" → amount=25, currency_code="RUB"
- "1,234" → amount=1234, currency_code=None
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Annotated, Final

from pydantic import Field
from pydantic.dataclasses import dataclass


# =============================================================================
# Currency Indicators
# =============================================================================

# Checked longest first so that "HK$" wins over "$"
CURRENCY_SYMBOLS: Final[dict[str, str]] = {
    "HK$": "HKD",
    "NZ$": "NZD",
    "MX$": "MXN",
    "C$": "CAD",
    "A$": "AUD",
    "S$": "SGD",
    "R$": "BRL",
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₩": "KRW",
    "₽": "RUB",
    "₺": "TRY",
    "฿": "THB",
    "zł": "PLN",
    "元": "CNY",
}

# Whole-word indicators, matched case-insensitively
CURRENCY_WORDS: Final[dict[str, str]] = {
    "usd": "USD",
    "dollar": "USD",
    "dollars": "USD",
    "eur": "EUR",
    "euro": "EUR",
    "euros": "EUR",
    "gbp": "GBP",
    "pound": "GBP",
    "pounds": "GBP",
    "jpy": "JPY",
    "yen": "JPY",
    "chf": "CHF",
    "cad": "CAD",
    "aud": "AUD",
    "cny": "CNY",
    "yuan": "CNY",
    "inr": "INR",
    "rupee": "INR",
    "rupees": "INR",
    "sek": "SEK",
    "nok": "NOK",
    "dkk": "DKK",
    "pln": "PLN",
    "rub": "RUB",
    "руб": "RUB",
    "рубль": "RUB",
    "рублей": "RUB",
    "рубля": "RUB",
}

_SYMBOLS_LONGEST_FIRST: Final[tuple[str, ...]] = tuple(
    sorted(CURRENCY_SYMBOLS, key=len, reverse=True)
)
_WORD_RE: Final[re.Pattern[str]] = re.compile(
    r"(?i)(?<!\w)(" + "|".join(sorted(CURRENCY_WORDS, key=len, reverse=True)) + r")\.?(?!\w)"
)
_NON_NUMERIC_RE: Final[re.Pattern[str]] = re.compile(r"[^\d.,\-]")


# =============================================================================
# Price Result Dataclass
# =============================================================================


@dataclass(frozen=True)
class PriceResult:
    """
    Result of price extraction from a cell value.

    Attributes:
        amount: Numeric price value as Decimal
        currency_code: ISO 4217 currency code detected in the cell
        raw_value: Original input before parsing
        was_parsed: Whether an amount was extracted
    """

    amount: Annotated[
        Decimal | None,
        Field(description="Numeric price value"),
    ] = None
    currency_code: Annotated[
        str | None,
        Field(min_length=3, max_length=3, description="ISO 4217 currency code"),
    ] = None
    raw_value: Annotated[
        str | None,
        Field(description="Original input string"),
    ] = None
    was_parsed: Annotated[
        bool,
        Field(description="Whether parsing was successful"),
    ] = False


# =============================================================================
# Currency Detection
# =============================================================================


def detect_currency(value: str | None) -> str | None:
    """
    Detect a currency from a price string.

    Symbols are checked first, then whole-word indicators.

    Examples:
        >>> detect_currency("£10.00")
        'GBP'
        >>> detect_currency("99.99 usd")
        'USD'
        >>> detect_currency("1234.56")
    """
    if not value:
        return None

    for symbol in _SYMBOLS_LONGEST_FIRST:
        if symbol in value:
            return CURRENCY_SYMBOLS[symbol]

    match = _WORD_RE.search(value)
    if match:
        return CURRENCY_WORDS[match.group(1).lower()]
    return None


# =============================================================================
# Price Extraction
# =============================================================================


def extract_price(value: str | int | float | Decimal | None) -> PriceResult:
    """
    Extract price amount and currency from a cell value.

    Handles:
    - "1 500.00" → 1500.00
    - "1,500.00" → 1500.00
    - "1.234,56" → 1234.56 (European format)
    - "10,50" → 10.50
    - 1500 → 1500 (numeric passthrough)

    Args:
        value: Cell value (string, number, or None)

    Returns:
        PriceResult with amount and currency_code; ``was_parsed`` is False
        when no finite amount could be extracted
    """
    if value is None or isinstance(value, bool):
        return PriceResult(raw_value=None if value is None else str(value))

    if isinstance(value, (int, float, Decimal)):
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value))
        except InvalidOperation:
            return PriceResult(raw_value=str(value))
        if not amount.is_finite():
            return PriceResult(raw_value=str(value))
        return PriceResult(amount=amount, raw_value=str(value), was_parsed=True)

    raw_value = str(value).strip()
    if not raw_value:
        return PriceResult(raw_value=raw_value)

    currency_code = detect_currency(raw_value)
    cleaned = _clean_price_string(raw_value)
    if not cleaned:
        return PriceResult(currency_code=currency_code, raw_value=raw_value)

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return PriceResult(currency_code=currency_code, raw_value=raw_value)

    return PriceResult(
        amount=amount,
        currency_code=currency_code,
        raw_value=raw_value,
        was_parsed=True,
    )


def parse_price(value: str | int | float | Decimal | None) -> Decimal | None:
    """Parse a price cell into a Decimal, None when unparseable."""
    result = extract_price(value)
    return result.amount if result.was_parsed else None


def _clean_price_string(value: str) -> str:
    """
    Reduce a price string to digits, separators and sign.

    Args:
        value: Raw price string

    Returns:
        Numeric string with "." as decimal separator, empty if no digits
    """
    for symbol in _SYMBOLS_LONGEST_FIRST:
        value = value.replace(symbol, "")
    value = _WORD_RE.sub("", value)
    cleaned = _NON_NUMERIC_RE.sub("", value)

    if not any(ch.isdigit() for ch in cleaned):
        return ""
    return _normalize_separators(cleaned)


def _normalize_separators(value: str) -> str:
    """
    Normalize decimal and thousands separators.

    - "1,234.56" → "1234.56" (US format)
    - "1.234,56" → "1234.56" (European format)
    - "1234,56" → "1234.56"
    - "1,234,567" → "1234567"
    - "1.234.567" → "1234567"
    """
    has_comma = "," in value
    has_dot = "." in value

    if has_comma and has_dot:
        # The last separator is the decimal one
        if value.rfind(",") > value.rfind("."):
            return value.replace(".", "").replace(",", ".")
        return value.replace(",", "")

    if has_comma:
        parts = value.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            return value.replace(",", ".")
        return value.replace(",", "")

    if has_dot:
        parts = value.split(".")
        if len(parts) > 2:
            if len(parts[-1]) <= 2:
                return "".join(parts[:-1]) + "." + parts[-1]
            return "".join(parts)

    return value
