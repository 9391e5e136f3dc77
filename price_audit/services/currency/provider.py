"""
Currency Rate Provider
======================

Resolves exchange rates for the comparator. Lookup order:

1. Fresh cache entry for the source currency
2. Live fetch through a RateFetcher, retried with tenacity; concurrent
   callers for the same base currency share one in-flight fetch
3. Stale cache entry (any age)
4. Static fallback table, cross rate through USD

Steps 3 and 4 log an ``exchange_rate_fallback`` warning. The provider
never raises for a missing rate.
"""

import asyncio
from decimal import Decimal
from typing import Dict, Mapping, Optional, Protocol, runtime_checkable

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from price_audit.config import CurrencySettings, get_currency_settings
from price_audit.errors import RateFetchError
from price_audit.services.currency.cache import RateCache
from price_audit.services.currency.rates import (
    FALLBACK_RATES_FROM_USD,
    fallback_rate,
    normalize_currency_code,
)
from price_audit.utils.money import Number, to_decimal

logger = structlog.get_logger(__name__)


@runtime_checkable
class RateFetcher(Protocol):
    """Source of live exchange rates.

    Implementations return units of each currency per one unit of
    ``base`` and raise RateFetchError when rates are unavailable.
    """

    async def fetch_rates(self, base: str) -> Dict[str, float]:
        ...


class CurrencyRateProvider:
    """
    Exchange rate lookup with caching, single-flight fetching and fallback.

    Usage:
        async with ExchangeRateApiFetcher() as fetcher:
            provider = CurrencyRateProvider(fetcher=fetcher)
            rate = await provider.get_exchange_rate("EUR", "USD")

    Without a fetcher the provider works offline from the cache and the
    static table.
    """

    def __init__(
        self,
        fetcher: Optional[RateFetcher] = None,
        cache: Optional[RateCache] = None,
        fallback_rates: Optional[Mapping[str, float]] = None,
        max_attempts: Optional[int] = None,
        retry_wait_seconds: float = 0.5,
        settings: Optional[CurrencySettings] = None,
    ):
        """
        Initialize the provider.

        Args:
            fetcher: Live rate source (None = offline)
            cache: Rate cache (defaults to one using the configured TTL)
            fallback_rates: Units per USD table (defaults to FALLBACK_RATES_FROM_USD)
            max_attempts: Fetch attempts per refresh (defaults to settings)
            retry_wait_seconds: Base of the exponential backoff between attempts
        """
        settings = settings or get_currency_settings()
        self.fetcher = fetcher
        # RateCache defines __len__, so an empty injected cache is falsy
        self.cache = cache if cache is not None else RateCache(ttl_seconds=settings.cache_ttl_seconds)
        self.fallback_rates = dict(fallback_rates or FALLBACK_RATES_FROM_USD)
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._retry_wait_seconds = retry_wait_seconds
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self._log = logger.bind(provider="CurrencyRateProvider")

    async def get_exchange_rate(self, from_currency: Optional[str], to_currency: Optional[str]) -> float:
        """
        Units of ``to_currency`` per one unit of ``from_currency``.

        Args:
            from_currency: Source currency (blank = USD)
            to_currency: Target currency (blank = USD)

        Returns:
            Positive exchange rate, 1.0 for identical codes
        """
        source = normalize_currency_code(from_currency)
        target = normalize_currency_code(to_currency)
        if source == target:
            return 1.0

        if self.fetcher is not None:
            rates = await self._get_live_rates(source)
            rate = _positive(rates.get(target)) if rates else None
            if rate is not None:
                return rate
            reason = "rate_missing" if rates else "fetch_failed"
        else:
            reason = "no_fetcher"

        return self._fallback(source, target, reason)

    def get_exchange_rate_sync(self, from_currency: Optional[str], to_currency: Optional[str]) -> float:
        """
        Exchange rate from cached or static data only, without I/O.

        Any cached entry for the source currency is used regardless of age.
        """
        source = normalize_currency_code(from_currency)
        target = normalize_currency_code(to_currency)
        if source == target:
            return 1.0
        cached = self.cache.get_stale(source)
        rate = _positive(cached.get(target)) if cached else None
        if rate is not None:
            return rate
        return fallback_rate(source, target, self.fallback_rates)

    async def convert(self, amount: Number, from_currency: Optional[str], to_currency: Optional[str]) -> Decimal:
        """Convert an amount between currencies using ``get_exchange_rate``."""
        rate = await self.get_exchange_rate(from_currency, to_currency)
        return to_decimal(amount) * to_decimal(rate)

    async def _get_live_rates(self, base: str) -> Optional[Dict[str, float]]:
        fresh = self.cache.get(base)
        if fresh is not None:
            return fresh

        async with self._lock:
            # Another caller may have refreshed while we waited
            fresh = self.cache.get(base)
            if fresh is not None:
                return fresh
            task = self._in_flight.get(base)
            if task is None:
                task = asyncio.create_task(self._refresh(base))
                self._in_flight[base] = task
                task.add_done_callback(lambda t, key=base: self._forget(key, t))

        return await asyncio.shield(task)

    def _forget(self, base: str, task: asyncio.Task) -> None:
        if self._in_flight.get(base) is task:
            del self._in_flight[base]

    async def _refresh(self, base: str) -> Optional[Dict[str, float]]:
        try:
            rates = await self._fetch_with_retries(base)
        except RateFetchError as e:
            self._log.warning(
                "exchange_rate_fetch_failed",
                base=base,
                error=e.message,
                attempts=self.max_attempts,
            )
            return None

        entry = self.cache.set(base, rates)
        self._log.info("exchange_rates_fetched", base=base, count=len(entry.rates))
        return entry.rates

    async def _fetch_with_retries(self, base: str) -> Dict[str, float]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self._retry_wait_seconds, max=10),
            retry=retry_if_exception_type(RateFetchError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._fetch_once(base)
        raise RateFetchError("Exchange rate fetch did not run", details={"base": base})

    async def _fetch_once(self, base: str) -> Dict[str, float]:
        try:
            rates = await self.fetcher.fetch_rates(base)
        except RateFetchError:
            raise
        except Exception as e:
            raise RateFetchError(
                f"Rate fetcher failed: {e}",
                details={"base": base, "error_type": type(e).__name__},
            ) from e
        if not rates:
            raise RateFetchError("Rate fetcher returned no rates", details={"base": base})
        try:
            return {code.upper(): float(value) for code, value in rates.items()}
        except (AttributeError, TypeError, ValueError) as e:
            raise RateFetchError(
                "Rate fetcher returned malformed rates",
                details={"base": base, "error": str(e)},
            ) from e

    def _fallback(self, source: str, target: str, reason: str) -> float:
        stale = self.cache.get_stale(source)
        rate = _positive(stale.get(target)) if stale else None
        if rate is not None:
            self._log.warning(
                "exchange_rate_fallback",
                from_currency=source,
                to_currency=target,
                rate=rate,
                source="stale_cache",
                reason=reason,
            )
            return rate

        rate = fallback_rate(source, target, self.fallback_rates)
        log_method = self._log.debug if reason == "no_fetcher" else self._log.warning
        log_method(
            "exchange_rate_fallback",
            from_currency=source,
            to_currency=target,
            rate=rate,
            source="static_table",
            reason=reason,
        )
        return rate


def _positive(value: Optional[float]) -> Optional[float]:
    if value is None or value <= 0:
        return None
    return float(value)
