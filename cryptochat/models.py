from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Trend = Literal["golden_cross", "death_cross", "neutral"]


class _Derived(BaseModel):
    """Immutable, camelCase-on-the-wire base for derived records."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class GlobalMetrics(_Derived):
    volume_ratio: Optional[float] = Field(
        None, alias="volumeRatio", description="24h volume divided by total market cap."
    )
    btc_dominance_percent: Optional[float] = Field(None, alias="btcDominancePercent")
    eth_dominance_percent: Optional[float] = Field(None, alias="ethDominancePercent")
    market_momentum_24h_percent: Optional[float] = Field(
        None, alias="marketMomentum24hPercent", description="24h total market cap change in percent."
    )
    updated_at: Optional[int] = Field(None, alias="updatedAt", description="Provider timestamp (Unix seconds).")


class BitcoinChartMetrics(_Derived):
    ma50: Optional[float] = Field(None, description="Mean of the trailing 50 price samples.")
    ma200: Optional[float] = Field(None, description="Mean of the trailing 200 price samples.")
    current_price: Optional[float] = Field(None, alias="currentPrice")
    trend: Optional[Trend] = None


class TopCoinsMetrics(_Derived):
    market_breadth_above_50_percent: Optional[float] = Field(
        None,
        alias="marketBreadthAbove50Percent",
        description="Percentage of coins with 24h data whose 24h change is strictly positive.",
    )
    avg_price_change_24h_top10: Optional[float] = Field(None, alias="avgPriceChange24hTop10")
    avg_price_change_24h_next90: Optional[float] = Field(None, alias="avgPriceChange24hNext90")


class SectorPerformance(_Derived):
    name: str
    change_24h: float = Field(..., alias="change24h")


class DiscoveryMetrics(_Derived):
    top_trending_coins: List[str] = Field(default_factory=list, alias="topTrendingCoins")
    top_performing_sectors: List[SectorPerformance] = Field(default_factory=list, alias="topPerformingSectors")
    hype_vs_market_cap_divergence: bool = Field(False, alias="hypeVsMarketCapDivergence")
    retail_moonshot_presence: bool = Field(False, alias="retailMoonshotPresence")


class ExchangePulse(_Derived):
    coinbase_price: float = Field(..., alias="coinbasePrice")
    kraken_price: float = Field(..., alias="krakenPrice")
    binance_price: Optional[float] = Field(None, alias="binancePrice")
    price_disparity: float = Field(..., alias="priceDisparity")
    us_exchange_premium: float = Field(..., alias="usExchangePremium")
    is_volatile: bool = Field(..., alias="isVolatile")


class DerivedMetrics(_Derived):
    """Single derived snapshot, persisted verbatim and read back by the chat route."""

    from_global: GlobalMetrics = Field(default_factory=GlobalMetrics, alias="fromGlobal")
    from_bitcoin_chart: BitcoinChartMetrics = Field(default_factory=BitcoinChartMetrics, alias="fromBitcoinChart")
    from_top_coins: TopCoinsMetrics = Field(default_factory=TopCoinsMetrics, alias="fromTopCoins")
    from_discovery: DiscoveryMetrics = Field(default_factory=DiscoveryMetrics, alias="fromDiscovery")
    from_exchange_pulse: Optional[ExchangePulse] = Field(None, alias="fromExchangePulse")
    computed_at: int = Field(0, alias="computedAt", description="Wall-clock derivation time (Unix seconds).")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class FetchResult(BaseModel):
    """Outcome of a single source request."""

    key: str
    status: int = 0
    is_ok: bool = Field(False, alias="isOk")
    error: Optional[str] = None
    data: Any = Field(None, exclude=True)

    model_config = ConfigDict(populate_by_name=True)


class FetchSummary(BaseModel):
    """Outcome of a fetch cycle."""

    ok: bool
    persist_enabled: bool = Field(..., alias="persistEnabled")
    derived_written: bool = Field(False, alias="derivedWritten")
    results: List[FetchResult] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(populate_by_name=True)
