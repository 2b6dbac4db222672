"""Fan-out, merge, score and rank the multi-source token feed."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

import aiohttp

from .config import DEFAULT_PAGE_LIMIT, FeedQuery, FeedSettings, SortKey
from .http import close_session
from .lru import ResponseCache
from .merge import merge_snapshots
from .models import FeedResult, ScoredSnapshot, SourceHealth, TokenSnapshot
from .providers import ADAPTER_CLASSES, SourceAdapter
from .ratelimit import RateLimiter
from .scoring import score_snapshot

logger = logging.getLogger(__name__)

FEED_NAMESPACE = "feed"


def _now_ms() -> int:
    return int(time.time() * 1000)


# (key, descending) per sort order; sorts are stable so ties keep merge order.
_SORTS: Dict[SortKey, Tuple[Callable[[ScoredSnapshot], float], bool]] = {
    SortKey.TRENDING: (lambda item: item.trending_score, True),
    SortKey.NEW: (lambda item: item.snapshot.pair_created_at or 0, True),
    SortKey.VOLUME: (lambda item: item.snapshot.volume_24h, True),
    SortKey.GAINERS: (lambda item: item.snapshot.price_change_24h, True),
    SortKey.LOSERS: (lambda item: item.snapshot.price_change_24h, False),
    SortKey.BUY_SIGNAL: (lambda item: item.buy_signal, True),
    SortKey.RISK: (lambda item: item.risk_score, False),
}


def sort_scored(items: Iterable[ScoredSnapshot], sort: SortKey | str) -> List[ScoredSnapshot]:
    key, descending = _SORTS[SortKey(sort)]
    return sorted(items, key=key, reverse=descending)


@dataclass(frozen=True, slots=True)
class _FeedCycle:
    """Full ranked list produced by one fetch cycle, as stored in the cache."""

    tokens: Tuple[ScoredSnapshot, ...]
    sources: Tuple[str, ...]
    fetch_time_ms: int


def default_adapters(
    settings: FeedSettings,
    *,
    cache: ResponseCache,
    limiter: RateLimiter,
    session: aiohttp.ClientSession | None = None,
    now_ms: Callable[[], int] = _now_ms,
) -> List[SourceAdapter]:
    """Instantiate every known adapter in merge priority order."""

    adapters: List[SourceAdapter] = []
    for name in settings.source_order():
        cls = ADAPTER_CLASSES.get(name)
        if cls is None:
            logger.warning("Unknown source %s in configuration; ignoring", name)
            continue
        adapters.append(
            cls(limiter=limiter, cache=cache, settings=settings, session=session, now_ms=now_ms)
        )
    return adapters


class FeedAggregator:
    """Entry point serving pages of the aggregated, scored token feed.

    Each instance owns its cache and rate limiter, so independent aggregators
    never observe each other's state.  ``adapters`` is taken to be in merge
    priority order; by default every provider is created in the configured
    order.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter] | None = None,
        *,
        settings: FeedSettings | None = None,
        cache: ResponseCache | None = None,
        limiter: RateLimiter | None = None,
        session: aiohttp.ClientSession | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.settings = settings if settings is not None else FeedSettings()
        self.cache = cache if cache is not None else ResponseCache(
            self.settings.cache_ttls(),
            default_ttl=self.settings.feed_cache_ttl,
            maxsize=self.settings.cache_maxsize,
        )
        self.limiter = limiter if limiter is not None else RateLimiter(
            self.settings.min_intervals_ms(),
            backoff_step_ms=self.settings.backoff_step_ms,
            decay_step_ms=self.settings.backoff_decay_ms,
            max_backoff_ms=self.settings.max_backoff_ms,
        )
        self._session = session
        self._now_ms = now_ms
        if adapters is None:
            adapters = default_adapters(
                self.settings,
                cache=self.cache,
                limiter=self.limiter,
                session=session,
                now_ms=now_ms,
            )
        self.adapters: List[SourceAdapter] = list(adapters)

    async def __aenter__(self) -> "FeedAggregator":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # public API ------------------------------------------------------------
    async def fetch_feed(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        sort: SortKey | str = SortKey.TRENDING,
        timeout: float | None = None,
    ) -> FeedResult:
        """Return one page of the feed.

        Invalid arguments raise :class:`pydantic.ValidationError`; upstream
        failures never escape and only show up as a shorter ``sources`` list.
        ``timeout`` bounds the whole fan-out in seconds.
        """

        query = FeedQuery(page=page, limit=limit, sort=sort, timeout=timeout)
        key = (query.page, query.sort.value)
        cycle: _FeedCycle = await self.cache.get_or_set_async(
            FEED_NAMESPACE, key, lambda: self._run_cycle(query.sort, query.timeout)
        )
        return self._page(cycle, query)

    async def fetch_trending(self, limit: int = 300) -> FeedResult:
        return await self.fetch_feed(page=1, limit=limit, sort=SortKey.TRENDING)

    async def fetch_new(self, limit: int = DEFAULT_PAGE_LIMIT) -> FeedResult:
        return await self.fetch_feed(page=1, limit=limit, sort=SortKey.NEW)

    def source_health(self) -> Dict[str, SourceHealth]:
        return {adapter.name: self.limiter.health(adapter.name) for adapter in self.adapters}

    def clear_cache(self) -> None:
        self.cache.clear()

    async def close(self) -> None:
        # an injected session belongs to the caller
        if self._session is None:
            await close_session()

    # internals -------------------------------------------------------------
    @staticmethod
    def _page(cycle: _FeedCycle, query: FeedQuery) -> FeedResult:
        start = (query.page - 1) * query.limit
        end = query.page * query.limit
        total = len(cycle.tokens)
        return FeedResult(
            tokens=list(cycle.tokens[start:end]),
            total=total,
            has_more=total > end,
            sources=list(cycle.sources),
            fetch_time_ms=cycle.fetch_time_ms,
        )

    async def _collect(self, timeout: float | None) -> List[Tuple[str, List[TokenSnapshot]]]:
        if not self.adapters:
            return []
        tasks = [
            asyncio.create_task(adapter.fetch(), name=f"solfeed-{adapter.name}")
            for adapter in self.adapters
        ]
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Feed deadline of %.1fs hit; no data from %s",
                timeout,
                ", ".join(a.name for a, t in zip(self.adapters, tasks) if t in pending),
            )

        results: List[Tuple[str, List[TokenSnapshot]]] = []
        for adapter, task in zip(self.adapters, tasks):
            snapshots: List[TokenSnapshot] = []
            if not task.cancelled():
                error = task.exception()
                if error is not None:
                    logger.error("Adapter %s raised unexpectedly: %r", adapter.name, error)
                else:
                    snapshots = list(task.result() or [])
            results.append((adapter.name, snapshots))
        return results

    def _passes_filters(self, item: ScoredSnapshot) -> bool:
        min_liquidity = self.settings.min_liquidity
        min_volume = self.settings.min_volume
        if min_liquidity > 0 and item.snapshot.liquidity < min_liquidity:
            return False
        if min_volume > 0 and item.snapshot.volume_24h < min_volume:
            return False
        return True

    async def _run_cycle(self, sort: SortKey, timeout: float | None) -> _FeedCycle:
        started = time.monotonic()
        results = await self._collect(timeout)
        sources = [name for name, snapshots in results if snapshots]
        merged = merge_snapshots(results)

        now_ms = self._now_ms()
        scored = [score_snapshot(snapshot, now_ms) for snapshot in merged]
        kept = [item for item in scored if self._passes_filters(item)]
        ranked = sort_scored(kept, sort)

        fetch_time_ms = int((time.monotonic() - started) * 1000)
        if sources:
            logger.info(
                "Fetched %d tokens from %s in %dms",
                len(ranked),
                ", ".join(sources),
                fetch_time_ms,
            )
        else:
            logger.warning("No source returned data this cycle (%dms)", fetch_time_ms)
        return _FeedCycle(tokens=tuple(ranked), sources=tuple(sources), fetch_time_ms=fetch_time_ms)


__all__ = ["FeedAggregator", "default_adapters", "sort_scored"]
