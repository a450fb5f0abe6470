"""Render a persisted ``DerivedMetrics`` snapshot into a compact prompt context block."""

from __future__ import annotations

import copy
import logging
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from cryptochat.derivation.accessors import as_list, dig, resolve_global, to_float
from cryptochat.models import DerivedMetrics

logger = logging.getLogger(__name__)

HEADER = "Derived metrics (from latest fetch):"
FALLBACK = "No structured data available."

SYSTEM_PROMPT_TEMPLATE = (
    "You are a crypto market analyst. Use ONLY the following persisted data to answer. "
    "Do not use live data or external knowledge beyond this snapshot. "
    "If the data does not contain what the user asks for, say so briefly.\n\n{context}"
)

DerivedInput = Union[DerivedMetrics, Mapping[str, Any], None]


def _prune(blob: Any, loc: Tuple[Any, ...]) -> bool:
    """Remove the value at ``loc`` from nested dicts/lists; False when nothing was there."""
    parent = blob
    for step in loc[:-1]:
        try:
            parent = parent[step]
        except (KeyError, IndexError, TypeError):
            return False
    key = loc[-1]
    if isinstance(parent, dict) and key in parent:
        del parent[key]
        return True
    if isinstance(parent, list) and isinstance(key, int) and -len(parent) <= key < len(parent):
        del parent[key]
        return True
    return False


def coerce_derived(derived: DerivedInput) -> Optional[DerivedMetrics]:
    """Accept a model or its stored JSON form.

    Invalid fields in a stored blob are dropped one by one so that the
    remaining fields still validate; unreadable blobs become ``None``.
    """
    if derived is None or isinstance(derived, DerivedMetrics):
        return derived
    if not isinstance(derived, Mapping):
        logger.warning("Ignoring derived snapshot of unexpected type %s", type(derived).__name__)
        return None

    blob = copy.deepcopy(dict(derived))
    dropped: List[str] = []
    while True:
        try:
            model = DerivedMetrics.model_validate(blob)
        except ValidationError as exc:
            # One location per pass; list indices shift once an element is removed.
            error = exc.errors(include_url=False)[0]
            loc = tuple(error["loc"])
            # A missing required key invalidates the record that should have held it.
            if error["type"] == "missing":
                loc = loc[:-1]
            while loc and not _prune(blob, loc):
                loc = loc[:-1]
            if not loc:
                logger.warning("Ignoring unreadable derived snapshot: %s", exc.errors(include_url=False))
                return None
            dropped.append(".".join(str(step) for step in loc))
            continue
        if dropped:
            logger.warning("Dropped invalid fields from derived snapshot: %s", ", ".join(dropped))
        return model


def _derived_lines(derived: DerivedMetrics) -> List[str]:
    lines: List[str] = []

    g = derived.from_global
    if g.volume_ratio is not None:
        lines.append(f"- Volume ratio (24h vol / market cap): {g.volume_ratio:.6f}")
    if g.btc_dominance_percent is not None:
        lines.append(f"- BTC dominance: {g.btc_dominance_percent:.2f}%")
    if g.eth_dominance_percent is not None:
        lines.append(f"- ETH dominance: {g.eth_dominance_percent:.2f}%")
    if g.market_momentum_24h_percent is not None:
        lines.append(f"- Market momentum (24h cap change): {g.market_momentum_24h_percent:.2f}%")

    chart = derived.from_bitcoin_chart
    if chart.current_price is not None:
        lines.append(f"- BTC price: {chart.current_price:.2f}")
    if chart.ma50 is not None:
        lines.append(f"- BTC 50-day MA: {chart.ma50:.2f}")
    if chart.ma200 is not None:
        lines.append(f"- BTC 200-day MA: {chart.ma200:.2f}")
    if chart.trend is not None:
        lines.append(f"- BTC trend: {chart.trend}")

    top = derived.from_top_coins
    if top.market_breadth_above_50_percent is not None:
        lines.append(f"- Market breadth (% coins with positive 24h): {top.market_breadth_above_50_percent:.2f}%")
    if top.avg_price_change_24h_top10 is not None:
        lines.append(f"- Avg 24h change, top 10 coins: {top.avg_price_change_24h_top10:.2f}%")
    if top.avg_price_change_24h_next90 is not None:
        lines.append(f"- Avg 24h change, coins 11-100: {top.avg_price_change_24h_next90:.2f}%")

    discovery = derived.from_discovery
    if discovery.top_trending_coins:
        lines.append(f"- Trending coins: {', '.join(discovery.top_trending_coins)}")
    if discovery.top_performing_sectors:
        sectors = ", ".join(f"{s.name} ({s.change_24h:+.2f}%)" for s in discovery.top_performing_sectors)
        lines.append(f"- Top sectors (24h market cap change): {sectors}")
    if discovery.hype_vs_market_cap_divergence:
        lines.append("- Hype divergence: the most-discussed coin sits outside the large caps by market cap rank")
    if discovery.retail_moonshot_presence:
        lines.append("- Retail moonshots: low-cap coins are trending")

    pulse = derived.from_exchange_pulse
    if pulse is not None:
        lines.append(f"- Coinbase BTC: {pulse.coinbase_price:.2f}, Kraken BTC: {pulse.kraken_price:.2f}")
        if pulse.binance_price is not None:
            lines.append(f"- Binance BTC/USDT: {pulse.binance_price:.2f}")
        lines.append(f"- Exchange price disparity: {pulse.price_disparity:.2f}")
        lines.append(f"- US exchange premium vs reference: {pulse.us_exchange_premium:.2f}")
        if pulse.is_volatile:
            lines.append("- Exchange stress: disparity above volatility threshold")
    return lines


def build_context(derived: DerivedInput, global_raw: Any = None, top_coins_raw: Any = None) -> str:
    """Join every available metric into one newline-separated block.

    Null fields are left out entirely. When nothing at all is available the
    result is the single fallback line, never an empty string.
    """
    parts: List[str] = []

    model = coerce_derived(derived)
    if model is not None:
        lines = _derived_lines(model)
        if lines:
            parts.append(HEADER)
            parts.extend(lines)

    root = resolve_global(global_raw)
    cap = to_float(dig(root, "total_market_cap", "usd"))
    volume = to_float(dig(root, "total_volume", "usd"))
    if cap is not None:
        parts.append(f"Total market cap (USD): {cap:.2f}")
    if volume is not None:
        parts.append(f"Total 24h volume (USD): {volume:.2f}")

    coins = as_list(top_coins_raw)
    if coins:
        parts.append(
            f"Top coins: {len(coins)} coins (e.g. by market cap). Each has id, symbol, current_price, "
            "market_cap, total_volume, price_change_percentage_24h, etc."
        )

    return "\n".join(parts) if parts else FALLBACK


def build_system_prompt(context: str) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(context=context)
