"""Unit tests for RateCache."""
import pytest

from price_audit.services.currency import RateCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateCache:
    """Tests for RateCache TTL handling."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return RateCache(ttl_seconds=60, clock=clock)

    def test_fresh_within_ttl(self, cache, clock) -> None:
        """Test that entries are fresh within the TTL."""
        cache.set("eur", {"usd": 1.1})
        clock.advance(59.9)

        assert cache.get("EUR") == {"usd": 1.1}
        assert "eur" in cache

    def test_expires_at_ttl(self, cache, clock) -> None:
        """An entry exactly ttl seconds old is no longer fresh."""
        cache.set("EUR", {"USD": 1.1})
        clock.advance(60)

        assert cache.get("EUR") is None
        assert cache.get_stale("EUR") == {"USD": 1.1}

    def test_missing_base(self, cache) -> None:
        """Test lookup of an uncached base currency."""
        assert cache.get("GBP") is None
        assert cache.get_stale("GBP") is None
        assert cache.get_entry("GBP") is None

    def test_set_replaces_and_restamps(self, cache, clock) -> None:
        """Test that set replaces the entry and its timestamp."""
        cache.set("EUR", {"USD": 1.1})
        clock.advance(120)
        entry = cache.set("EUR", {"USD": 1.2})

        assert entry.fetched_at == clock.now
        assert cache.get("EUR") == {"USD": 1.2}
        assert len(cache) == 1

    def test_stored_rates_are_copied(self, cache) -> None:
        """Test that stored rates are copied."""
        rates = {"USD": 1.1}
        cache.set("EUR", rates)
        rates["USD"] = 99.0

        assert cache.get("EUR") == {"USD": 1.1}

    def test_clear(self, cache) -> None:
        """Test clearing the cache."""
        cache.set("EUR", {"USD": 1.1})
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_invalid_ttl(self, ttl) -> None:
        """Test that a non-positive TTL is rejected."""
        with pytest.raises(ValueError):
            RateCache(ttl_seconds=ttl)
