"""Calculation layer: pure functions from raw provider payloads to ``DerivedMetrics``.

Nothing in here performs I/O. Each ``derive_*`` function owns one sub-record
and tolerates ``None`` or malformed input for its source, so a bad payload
only blanks the fields that depend on it.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import pandas as pd

from cryptochat.derivation.accessors import as_list, dig, resolve_global, to_float, to_int
from cryptochat.models import (
    BitcoinChartMetrics,
    DerivedMetrics,
    DiscoveryMetrics,
    ExchangePulse,
    GlobalMetrics,
    SectorPerformance,
    TopCoinsMetrics,
)

logger = logging.getLogger(__name__)

SHORT_WINDOW = 50
LONG_WINDOW = 200
TOP_SEGMENT_END = 10
NEXT_SEGMENT_END = 100
MAX_TRENDING_LABELS = 5
MAX_SECTORS = 3


@dataclass(frozen=True)
class DerivationPolicy:
    """Threshold constants applied by the derivation functions."""

    volatility_threshold_usd: float = 50.0
    hype_rank_threshold: int = 100
    moonshot_rank_threshold: int = 500


DEFAULT_POLICY = DerivationPolicy()


def derive_global(raw: Any) -> GlobalMetrics:
    root = resolve_global(raw)
    cap = to_float(dig(root, "total_market_cap", "usd"))
    volume = to_float(dig(root, "total_volume", "usd"))
    volume_ratio = volume / cap if cap is not None and volume is not None and cap > 0 else None
    return GlobalMetrics(
        volume_ratio=volume_ratio,
        btc_dominance_percent=to_float(dig(root, "market_cap_percentage", "btc")),
        eth_dominance_percent=to_float(dig(root, "market_cap_percentage", "eth")),
        market_momentum_24h_percent=to_float(dig(root, "market_cap_change_percentage_24h_usd")),
        updated_at=to_int(dig(root, "updated_at")),
    )


def _price_series(raw: Any) -> pd.Series:
    samples = as_list(dig(raw, "prices"))
    values = [to_float(dig(sample, 1)) for sample in samples]
    return pd.Series(values, dtype="float64")


def _anchored_mean(values: pd.Series, anchor: float) -> float:
    # Exact summation of offsets from a shared anchor: a flat window averages to the anchor itself.
    return anchor + math.fsum(values - anchor) / len(values)


def derive_bitcoin_chart(raw: Any) -> BitcoinChartMetrics:
    prices = _price_series(raw)
    if len(prices) < LONG_WINDOW:
        return BitcoinChartMetrics()

    window = prices.tail(LONG_WINDOW)
    if window.isna().any():
        # A gap inside the long window makes both averages untrustworthy.
        logger.warning("Bitcoin price series has non-numeric samples in the trailing %s", LONG_WINDOW)
        return BitcoinChartMetrics()

    current_price = float(window.iloc[-1])
    try:
        ma50 = _anchored_mean(window.tail(SHORT_WINDOW), current_price)
        ma200 = _anchored_mean(window, current_price)
    except (OverflowError, ValueError):
        ma50 = ma200 = math.nan
    if not (math.isfinite(ma50) and math.isfinite(ma200)):
        logger.warning("Bitcoin price series overflows when averaged")
        return BitcoinChartMetrics()

    if ma50 > ma200:
        trend = "golden_cross"
    elif ma50 < ma200:
        trend = "death_cross"
    else:
        trend = "neutral"
    return BitcoinChartMetrics(ma50=ma50, ma200=ma200, current_price=current_price, trend=trend)


def _mean_change(coins: List[Any]) -> Optional[float]:
    values = [v for v in (to_float(dig(c, "price_change_percentage_24h")) for c in coins) if v is not None]
    return sum(values) / len(values) if values else None


def derive_top_coins(raw: Any) -> TopCoinsMetrics:
    coins = as_list(raw)
    changes = [v for v in (to_float(dig(c, "price_change_percentage_24h")) for c in coins) if v is not None]
    breadth = sum(1 for v in changes if v > 0) / len(changes) * 100 if changes else None
    return TopCoinsMetrics(
        market_breadth_above_50_percent=breadth,
        avg_price_change_24h_top10=_mean_change(coins[:TOP_SEGMENT_END]),
        avg_price_change_24h_next90=_mean_change(coins[TOP_SEGMENT_END:NEXT_SEGMENT_END]),
    )


def derive_discovery(
    trending_raw: Any,
    categories_raw: Any,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> DiscoveryMetrics:
    """Reduce trending and category payloads to the attention signals the model needs."""
    trending = as_list(dig(trending_raw, "coins"))
    ranks = [to_int(dig(entry, "item", "market_cap_rank")) or 0 for entry in trending]
    top_rank = ranks[0] if ranks else 0

    labels = [
        f"{dig(entry, 'item', 'name', default='Unknown')} ({dig(entry, 'item', 'symbol', default='?')})"
        for entry in trending[:MAX_TRENDING_LABELS]
    ]

    scored = []
    for category in as_list(categories_raw):
        change = to_float(dig(category, "market_cap_change_24h"))
        if change is not None:
            scored.append(SectorPerformance(name=str(dig(category, "name", default="Unknown")), change_24h=change))
    scored.sort(key=lambda sector: sector.change_24h, reverse=True)

    return DiscoveryMetrics(
        top_trending_coins=labels,
        top_performing_sectors=scored[:MAX_SECTORS],
        hype_vs_market_cap_divergence=top_rank > policy.hype_rank_threshold,
        retail_moonshot_presence=any(rank > policy.moonshot_rank_threshold for rank in ranks),
    )


def derive_exchange_pulse(
    coinbase_raw: Any,
    kraken_raw: Any,
    binance_raw: Any,
    reference_price: float = 0.0,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> Optional[ExchangePulse]:
    """Compare the Coinbase and Kraken BTC quotes; ``None`` unless both are usable.

    Zero is treated as "unset" after coercion. The Binance quote is carried
    along for context only and does not feed the disparity math.
    """
    coinbase = to_float(dig(coinbase_raw, "data", "amount")) or 0.0
    kraken = to_float(dig(kraken_raw, "result", "XXBTZUSD", "c", 0)) or 0.0
    if coinbase == 0 or kraken == 0:
        return None

    disparity = abs(coinbase - kraken)
    return ExchangePulse(
        coinbase_price=coinbase,
        kraken_price=kraken,
        binance_price=to_float(dig(binance_raw, "price")),
        price_disparity=disparity,
        us_exchange_premium=coinbase - reference_price,
        is_volatile=disparity > policy.volatility_threshold_usd,
    )


def compute_derived(
    global_raw: Any = None,
    top_coins_raw: Any = None,
    bitcoin_chart_raw: Any = None,
    trending_raw: Any = None,
    categories_raw: Any = None,
    coinbase_spot_raw: Any = None,
    kraken_ticker_raw: Any = None,
    binance_price_raw: Any = None,
    *,
    clock: Callable[[], float] = time.time,
    policy: DerivationPolicy = DEFAULT_POLICY,
) -> DerivedMetrics:
    """Compute every derived sub-record from whichever raw payloads are present."""
    from_chart = derive_bitcoin_chart(bitcoin_chart_raw)
    reference_price = from_chart.current_price if from_chart.current_price is not None else 0.0
    return DerivedMetrics(
        from_global=derive_global(global_raw),
        from_bitcoin_chart=from_chart,
        from_top_coins=derive_top_coins(top_coins_raw),
        from_discovery=derive_discovery(trending_raw, categories_raw, policy),
        from_exchange_pulse=derive_exchange_pulse(
            coinbase_spot_raw, kraken_ticker_raw, binance_price_raw, reference_price, policy
        ),
        computed_at=int(clock()),
    )
