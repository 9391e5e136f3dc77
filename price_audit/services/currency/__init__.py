"""Exchange rates: cache, provider, static fallback data and HTTP fetcher."""
from price_audit.services.currency.cache import CachedRates, RateCache
from price_audit.services.currency.http_fetcher import ExchangeRateApiFetcher
from price_audit.services.currency.provider import CurrencyRateProvider, RateFetcher
from price_audit.services.currency.rates import (
    FALLBACK_RATES_FROM_USD,
    SUPPORTED_CURRENCIES,
    CurrencyInfo,
    fallback_rate,
    format_price,
    get_currency_info,
    get_currency_symbol,
    normalize_currency_code,
)

__all__ = [
    "FALLBACK_RATES_FROM_USD",
    "SUPPORTED_CURRENCIES",
    "CachedRates",
    "CurrencyInfo",
    "CurrencyRateProvider",
    "ExchangeRateApiFetcher",
    "RateCache",
    "RateFetcher",
    "fallback_rate",
    "format_price",
    "get_currency_info",
    "get_currency_symbol",
    "normalize_currency_code",
]
