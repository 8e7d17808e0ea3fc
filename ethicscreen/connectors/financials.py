"""Yahoo Finance fallback for missing financial data."""

import logging
from typing import Optional

import httpx

from ethicscreen.config import settings
from ethicscreen.models import Financials, ScreeningConfig, DEFAULT_CONFIG
from .base import FinancialDataConnector

logger = logging.getLogger(__name__)


class YahooFinanceConnector(FinancialDataConnector):
    """Estimate balance-sheet figures from the public chart endpoint.

    The endpoint only exposes a price, so market cap is inferred from a
    share-count bucket and the ratios are filled with conservative values.
    Every result is flagged as estimated.
    """

    name = "yahoo"

    def __init__(
        self,
        base_url: Optional[str] = None,
        config: Optional[ScreeningConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.financial_api_url).rstrip("/")
        self.config = config or DEFAULT_CONFIG
        self._client = client

    async def fetch(self, symbol: str) -> Financials:
        """Fetch a price and derive estimates; fall back to defaults on any failure."""
        try:
            if self._client is not None:
                price = await self._fetch_price(self._client, symbol)
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(
                        connect=settings.connect_timeout,
                        read=settings.read_timeout,
                        write=settings.read_timeout,
                        pool=settings.connect_timeout,
                    ),
                ) as client:
                    price = await self._fetch_price(client, symbol)

        except httpx.TimeoutException:
            logger.warning(f"Financial data request timed out for {symbol}")
            return self.conservative_estimates()

        except httpx.RequestError as e:
            logger.warning(f"Financial data request failed for {symbol}: {e}")
            return self.conservative_estimates()

        if price is None:
            return self.conservative_estimates()

        return self.estimate_from_price(price)

    async def _fetch_price(self, client: httpx.AsyncClient, symbol: str) -> Optional[float]:
        """Return the latest price, or None when the response has none."""
        response = await client.get(
            f"{self.base_url}/{symbol}",
            params={"interval": "1d", "range": "1d"},
            headers={"User-Agent": settings.user_agent},
        )

        if response.status_code != 200:
            logger.warning(f"Financial data API returned {response.status_code} for {symbol}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Financial data API returned invalid JSON for {symbol}")
            return None

        chart = data.get("chart") if isinstance(data, dict) else None
        results = chart.get("result") if isinstance(chart, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            logger.warning(f"Financial data API returned no chart for {symbol}")
            return None

        meta = results[0].get("meta")
        if not isinstance(meta, dict):
            return None

        price = meta.get("regularMarketPrice") or meta.get("previousClose")
        try:
            price = float(price)
        except (TypeError, ValueError):
            logger.warning(f"Financial data API returned an unusable price for {symbol}: {price!r}")
            return None

        # Zero, negative and NaN prices carry no market cap information
        return price if price > 0 else None

    def estimate_from_price(self, price: float) -> Financials:
        """Infer market cap from price using typical share counts."""
        if price > 1000:
            shares = 100_000_000
        elif price > 100:
            shares = 500_000_000
        else:
            shares = 1_000_000_000
        return self._with_ratios(price * shares)

    def conservative_estimates(self) -> Financials:
        """Defaults used when no market data is available at all."""
        return self._with_ratios(self.config.estimates.market_cap)

    def _with_ratios(self, market_cap: float) -> Financials:
        estimates = self.config.estimates
        return Financials(
            market_cap=market_cap,
            debt=market_cap * estimates.debt_ratio,
            cash_securities=market_cap * estimates.cash_ratio,
            receivables=market_cap * estimates.receivables_ratio,
            is_estimated=True,
        )
