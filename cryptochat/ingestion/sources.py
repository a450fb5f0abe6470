from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlsplit

import httpx

from cryptochat.models import FetchResult

logger = logging.getLogger(__name__)

COINGECKO_API = "https://api.coingecko.com/api/v3"


class MarketDataSource(Protocol):
    key: str
    url: str

    @property
    def hostname(self) -> str: ...

    async def fetch(self, client: httpx.AsyncClient) -> FetchResult: ...


class JsonEndpointSource:
    """GET one public JSON endpoint (no API key) and keep the payload untouched."""

    def __init__(self, key: str, url: str, params: Optional[Dict[str, Any]] = None) -> None:
        self.key = key
        self.url = url
        self.params = dict(params or {})

    def __repr__(self) -> str:
        return f"JsonEndpointSource(key={self.key!r}, url={self.url!r})"

    @property
    def hostname(self) -> str:
        return urlsplit(self.url).hostname or ""

    async def fetch(self, client: httpx.AsyncClient) -> FetchResult:
        try:
            resp = await client.get(self.url, params=self.params, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", self.key, exc)
            return FetchResult(key=self.key, status=0, is_ok=False, error=str(exc) or type(exc).__name__)

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not resp.is_success:
            error = f"HTTP {resp.status_code}: {resp.reason_phrase or 'Request failed'}"
            logger.warning("Source %s returned %s", self.key, error)
            return FetchResult(key=self.key, status=resp.status_code, is_ok=False, error=error)
        if payload is None:
            logger.warning("Source %s returned a body that is not JSON", self.key)
            return FetchResult(key=self.key, status=resp.status_code, is_ok=False, error="Invalid JSON body")

        logger.info("Fetched %s (HTTP %s)", self.key, resp.status_code)
        return FetchResult(key=self.key, status=resp.status_code, is_ok=True, data=payload)


def default_sources() -> List[MarketDataSource]:
    """Factory for the default source list, in fetch order."""
    return [
        JsonEndpointSource("global", f"{COINGECKO_API}/global"),
        JsonEndpointSource(
            "topCoins",
            f"{COINGECKO_API}/coins/markets",
            {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": 200,
                "page": 1,
                "sparkline": "false",
                "price_change_percentage": "24h,7d,30d",
            },
        ),
        JsonEndpointSource(
            "bitcoinChart",
            f"{COINGECKO_API}/coins/bitcoin/market_chart",
            {"vs_currency": "usd", "days": 200},
        ),
        JsonEndpointSource("trending", f"{COINGECKO_API}/search/trending"),
        JsonEndpointSource("categories", f"{COINGECKO_API}/coins/categories"),
        JsonEndpointSource("coinbaseSpot", "https://api.coinbase.com/v2/prices/BTC-USD/spot"),
        JsonEndpointSource("krakenTicker", "https://api.kraken.com/0/public/Ticker", {"pair": "XBTUSD"}),
        JsonEndpointSource("binancePrice", "https://api.binance.com/api/v3/ticker/price", {"symbol": "BTCUSDT"}),
    ]
