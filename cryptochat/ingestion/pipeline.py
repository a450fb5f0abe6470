from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from cryptochat.config import settings
from cryptochat.derivation.engine import DEFAULT_POLICY, DerivationPolicy, compute_derived
from cryptochat.ingestion.sources import MarketDataSource, default_sources
from cryptochat.models import FetchResult, FetchSummary
from cryptochat.storage import DERIVED_KEY, JsonFileSnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)

PRIMARY_KEYS = ("global", "topCoins", "bitcoinChart")


def snapshot_is_consistent(payloads: Dict[str, object]) -> bool:
    """Derivation only runs when every primary source arrived in the same cycle."""
    return all(payloads.get(key) is not None for key in PRIMARY_KEYS)


class FetchPipeline:
    """Fetches every source, persists raw payloads, then derives and persists metrics."""

    def __init__(
        self,
        store: SnapshotStore,
        sources: Iterable[MarketDataSource],
        request_timeout_seconds: float,
        pause_seconds: float = 0.0,
        persist: bool = True,
        include_data: bool = True,
        policy: DerivationPolicy = DEFAULT_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.store = store
        self.sources = list(sources)
        self.request_timeout_seconds = request_timeout_seconds
        self.pause_seconds = pause_seconds
        self.persist = persist
        self.include_data = include_data
        self.policy = policy
        self._sleep = sleep
        self._transport = transport

    def _vendor_groups(self) -> List[List[MarketDataSource]]:
        groups: Dict[str, List[MarketDataSource]] = {}
        for source in self.sources:
            groups.setdefault(source.hostname, []).append(source)
        return list(groups.values())

    async def _fetch_vendor(self, client: httpx.AsyncClient, group: List[MarketDataSource]) -> List[FetchResult]:
        results: List[FetchResult] = []
        for index, source in enumerate(group):
            if index > 0 and self.pause_seconds > 0:
                logger.debug("Pausing %.1fs before next %s request", self.pause_seconds, source.hostname)
                await self._sleep(self.pause_seconds)
            results.append(await source.fetch(client))
        return results

    async def run_once(self) -> FetchSummary:
        """Fetch from all sources, persist, derive, and return a summary."""
        timeout = httpx.Timeout(self.request_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=self._transport) as client:
            grouped = await asyncio.gather(*(self._fetch_vendor(client, group) for group in self._vendor_groups()))

        by_key = {result.key: result for results in grouped for result in results}
        results = [by_key[source.key] for source in self.sources]
        payloads = {r.key: r.data for r in results if r.is_ok and r.data is not None}

        if self.persist:
            for key, payload in payloads.items():
                self.store.write(key, payload)

        derived_written = False
        if self.persist and snapshot_is_consistent(payloads):
            derived = compute_derived(
                payloads.get("global"),
                payloads.get("topCoins"),
                payloads.get("bitcoinChart"),
                payloads.get("trending"),
                payloads.get("categories"),
                payloads.get("coinbaseSpot"),
                payloads.get("krakenTicker"),
                payloads.get("binancePrice"),
                policy=self.policy,
            )
            self.store.write(DERIVED_KEY, derived.to_json_dict())
            derived_written = True
        elif self.persist:
            missing = [key for key in PRIMARY_KEYS if key not in payloads]
            logger.warning("Skipping derivation, primary sources missing: %s", ", ".join(missing))

        failed = [r for r in results if not r.is_ok]
        for result in failed:
            logger.error("Source %s failed: %s", result.key, result.error)

        return FetchSummary(
            ok=not failed,
            persist_enabled=self.persist,
            derived_written=derived_written,
            results=results,
            data=payloads if self.include_data and payloads else None,
        )


def build_pipeline(store: Optional[SnapshotStore] = None) -> FetchPipeline:
    """Create a pipeline with default settings and store."""
    return FetchPipeline(
        store=store or JsonFileSnapshotStore(settings.snapshot_dir),
        sources=default_sources(),
        request_timeout_seconds=settings.request_timeout_seconds,
        pause_seconds=settings.pause_seconds_between_same_vendor,
        persist=settings.persist_fetched_data,
        include_data=settings.include_data_in_response,
        policy=settings.derivation_policy(),
    )
