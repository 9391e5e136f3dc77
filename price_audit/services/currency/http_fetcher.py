"""
Live Exchange Rate Fetcher

HTTP adapter for the exchangerate-api.com ``/latest/{base}`` endpoint.
Implements the RateFetcher protocol used by CurrencyRateProvider.
"""

from typing import Dict, Optional

import httpx
import structlog

from price_audit.config import CurrencySettings, get_currency_settings
from price_audit.errors import RateFetchError

logger = structlog.get_logger(__name__)


class ExchangeRateApiFetcher:
    """
    Async HTTP client for live exchange rates.

    Usage:
        async with ExchangeRateApiFetcher() as fetcher:
            rates = await fetcher.fetch_rates("EUR")

    Outside a context manager each call opens a short-lived client.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[CurrencySettings] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            base_url: API base URL (defaults to config)
            timeout: Request timeout in seconds (defaults to config)
            transport: Custom httpx transport, e.g. httpx.MockTransport in tests
        """
        settings = settings or get_currency_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout if timeout is not None else settings.timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._log = logger.bind(service="exchange-rate-api", base_url=self.base_url)

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json", "User-Agent": "price-audit/1.0"},
        )

    async def __aenter__(self) -> "ExchangeRateApiFetcher":
        """Context manager entry - create async client."""
        self._client = self._build_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close async client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_rates(self, base: str) -> Dict[str, float]:
        """
        Fetch current rates for a base currency.

        Args:
            base: ISO 4217 base currency code

        Returns:
            Units of each currency per one unit of ``base``

        Raises:
            RateFetchError: On transport errors, non-2xx responses or an
                unexpected payload
        """
        base = base.upper()
        if self._client is not None:
            return await self._fetch(self._client, base)
        async with self._build_client() as client:
            return await self._fetch(client, base)

    async def _fetch(self, client: httpx.AsyncClient, base: str) -> Dict[str, float]:
        try:
            response = await client.get(f"/latest/{base}")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            self._log.warning(
                "exchange_rate_request_failed",
                base=base,
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise RateFetchError(
                f"Exchange rate API responded with {e.response.status_code}",
                details={"base": base, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            self._log.warning("exchange_rate_request_error", base=base, error=str(e))
            raise RateFetchError(
                f"Exchange rate API request failed: {e}",
                details={"base": base},
            ) from e
        except ValueError as e:
            raise RateFetchError(
                "Exchange rate API returned invalid JSON",
                details={"base": base},
            ) from e

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or not rates:
            raise RateFetchError(
                "Exchange rate API response has no rates",
                details={"base": base},
            )

        parsed = {
            str(code).upper(): float(value)
            for code, value in rates.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
        }
        self._log.info("exchange_rate_request_completed", base=base, count=len(parsed))
        return parsed
