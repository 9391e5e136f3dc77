"""In-memory exchange rate cache with a fixed time-to-live."""
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CachedRates:
    """Rates for one base currency and when they were fetched.

    Attributes:
        base: Base currency code
        rates: Units of each currency per one unit of ``base``
        fetched_at: Clock reading at fetch time
    """
    base: str
    rates: Dict[str, float]
    fetched_at: float


class RateCache:
    """Exchange rates keyed by base currency.

    Entries are fresh for ``ttl_seconds`` after they were stored. Expired
    entries are kept so the provider can serve them when a refresh fails.

    Args:
        ttl_seconds: Freshness window (default one hour)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedRates] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, base: str) -> bool:
        return base.upper() in self._entries

    def is_fresh(self, entry: CachedRates) -> bool:
        return self._clock() - entry.fetched_at < self.ttl_seconds

    def get(self, base: str) -> Optional[Dict[str, float]]:
        """Rates for ``base`` if stored within the TTL, else None."""
        entry = self._entries.get(base.upper())
        if entry is None or not self.is_fresh(entry):
            return None
        return entry.rates

    def get_stale(self, base: str) -> Optional[Dict[str, float]]:
        """Rates for ``base`` regardless of age, else None."""
        entry = self._entries.get(base.upper())
        return entry.rates if entry is not None else None

    def get_entry(self, base: str) -> Optional[CachedRates]:
        return self._entries.get(base.upper())

    def set(self, base: str, rates: Dict[str, float]) -> CachedRates:
        """Store rates for ``base`` stamped with the current clock reading."""
        entry = CachedRates(base=base.upper(), rates=dict(rates), fetched_at=self._clock())
        self._entries[entry.base] = entry
        logger.debug("exchange_rates_cached", base=entry.base, count=len(entry.rates))
        return entry

    def clear(self) -> None:
        self._entries.clear()
