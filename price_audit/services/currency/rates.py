"""
Static Currency Data
====================

Supported currencies, their display metadata and the static fallback
exchange-rate table used when no live or cached rate is available.

Example:
    >>> fallback_rate("USD", "EUR")
    0.92
    >>> format_price(1320, "KRW")
    '₩1,320'
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Final, Mapping, Optional, Union

from pydantic.dataclasses import dataclass

# Units of each currency per 1 USD (approximate, January 2026)
FALLBACK_RATES_FROM_USD: Final[dict[str, float]] = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "JPY": 148.5,
    "CHF": 0.88,
    "CAD": 1.36,
    "AUD": 1.54,
    "CNY": 7.25,
    "INR": 83.5,
    "MXN": 17.2,
    "BRL": 4.95,
    "KRW": 1320.0,
    "SGD": 1.34,
    "HKD": 7.82,
    "NOK": 10.5,
    "SEK": 10.3,
    "DKK": 6.85,
    "NZD": 1.62,
    "ZAR": 18.7,
    "RUB": 92.5,
    "TRY": 32.5,
    "PLN": 4.02,
    "THB": 35.2,
    "AED": 3.67,
    "SAR": 3.75,
}

# Currencies displayed without minor units
ZERO_DECIMAL_CURRENCIES: Final[frozenset[str]] = frozenset({"JPY", "KRW"})


@dataclass(frozen=True)
class CurrencyInfo:
    """Display metadata for a supported currency."""

    code: str
    symbol: str
    name: str


SUPPORTED_CURRENCIES: Final[tuple[CurrencyInfo, ...]] = (
    CurrencyInfo("USD", "$", "US Dollar"),
    CurrencyInfo("EUR", "€", "Euro"),
    CurrencyInfo("GBP", "£", "British Pound"),
    CurrencyInfo("JPY", "¥", "Japanese Yen"),
    CurrencyInfo("CHF", "CHF", "Swiss Franc"),
    CurrencyInfo("CAD", "C$", "Canadian Dollar"),
    CurrencyInfo("AUD", "A$", "Australian Dollar"),
    CurrencyInfo("CNY", "¥", "Chinese Yuan"),
    CurrencyInfo("INR", "₹", "Indian Rupee"),
    CurrencyInfo("MXN", "MX$", "Mexican Peso"),
    CurrencyInfo("BRL", "R$", "Brazilian Real"),
    CurrencyInfo("KRW", "₩", "South Korean Won"),
    CurrencyInfo("SGD", "S$", "Singapore Dollar"),
    CurrencyInfo("HKD", "HK$", "Hong Kong Dollar"),
    CurrencyInfo("NOK", "kr", "Norwegian Krone"),
    CurrencyInfo("SEK", "kr", "Swedish Krona"),
    CurrencyInfo("DKK", "kr", "Danish Krone"),
    CurrencyInfo("NZD", "NZ$", "New Zealand Dollar"),
    CurrencyInfo("ZAR", "R", "South African Rand"),
    CurrencyInfo("RUB", "₽", "Russian Ruble"),
    CurrencyInfo("TRY", "₺", "Turkish Lira"),
    CurrencyInfo("PLN", "zł", "Polish Zloty"),
    CurrencyInfo("THB", "฿", "Thai Baht"),
    CurrencyInfo("AED", "د.إ", "UAE Dirham"),
    CurrencyInfo("SAR", "﷼", "Saudi Riyal"),
)

_CURRENCIES_BY_CODE: Final[dict[str, CurrencyInfo]] = {c.code: c for c in SUPPORTED_CURRENCIES}


def normalize_currency_code(code: Optional[str], default: str = "USD") -> str:
    """Uppercase and trim a currency code, substituting ``default`` when blank."""
    if not code or not code.strip():
        return default
    return code.strip().upper()


def get_currency_info(code: Optional[str]) -> Optional[CurrencyInfo]:
    """Look up metadata for a currency code (case-insensitive)."""
    if not code:
        return None
    return _CURRENCIES_BY_CODE.get(code.strip().upper())


def get_currency_symbol(code: Optional[str]) -> str:
    """
    Display symbol for a currency.

    Unknown codes are returned as-is; a missing code falls back to "$".
    """
    info = get_currency_info(code)
    if info is not None:
        return info.symbol
    return code or "$"


def fallback_rate(
    from_currency: str,
    to_currency: str,
    table: Optional[Mapping[str, float]] = None,
) -> float:
    """
    Cross rate from the static table, computed through USD.

    ``rate = to_per_usd / from_per_usd``. Codes missing from the table
    count as 1.0, so an unknown pair degrades to parity instead of failing.

    Args:
        from_currency: Source currency code
        to_currency: Target currency code
        table: Units per USD (defaults to FALLBACK_RATES_FROM_USD)

    Returns:
        Units of ``to_currency`` per one unit of ``from_currency``
    """
    table = FALLBACK_RATES_FROM_USD if table is None else table
    source = normalize_currency_code(from_currency)
    target = normalize_currency_code(to_currency)
    if source == target:
        return 1.0
    from_per_usd = table.get(source) or 1.0
    to_per_usd = table.get(target) or 1.0
    return to_per_usd / from_per_usd


def format_price(price: Union[Decimal, float, int, str, None], currency_code: str = "USD") -> str:
    """
    Format a price with its currency symbol.

    JPY and KRW are shown as grouped whole numbers, everything else with
    two decimals. Unparseable prices render as zero.

    Examples:
        >>> format_price("12.5", "EUR")
        '€12.50'
        >>> format_price(148.6, "JPY")
        '¥149'
    """
    symbol = get_currency_symbol(currency_code)
    try:
        amount = price if isinstance(price, Decimal) else Decimal(str(price))
    except InvalidOperation:
        return f"{symbol}0.00"
    if not amount.is_finite():
        return f"{symbol}0.00"

    if normalize_currency_code(currency_code) in ZERO_DECIMAL_CURRENCIES:
        whole = amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"{symbol}{whole:,}"
    return f"{symbol}{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"
