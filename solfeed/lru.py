"""Namespaced TTL response cache usable from sync and async code."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Mapping, Tuple

from cachetools import TTLCache

# Seconds.  ``feed`` and ``source`` hold whole fetch cycles and go stale
# quickly, ``price`` tracks live quotes, ``meta`` covers slow-moving facts.
DEFAULT_TTLS: Dict[str, float] = {
    "feed": 8.0,
    "source": 8.0,
    "price": 10.0,
    "meta": 60.0,
}
DEFAULT_TTL = 8.0
DEFAULT_MAXSIZE = 1024
# TTLCache drops an entry when its age reaches the TTL; ours stay valid
# until the age exceeds it.
_TTL_SLACK = 1e-6


class ResponseCache:
    """Key/value store with a separate TTL per namespace.

    Each namespace is backed by its own :class:`cachetools.TTLCache`, so an
    entry older than its namespace TTL is never returned.  All access goes
    through one re-entrant lock; the cache can be shared by concurrent
    ``fetch_feed`` calls and by worker threads alike.
    """

    def __init__(
        self,
        ttls: Mapping[str, float] | None = None,
        *,
        default_ttl: float = DEFAULT_TTL,
        maxsize: int = DEFAULT_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = float(default_ttl)
        self.maxsize = max(1, int(maxsize))
        self._ttls: Dict[str, float] = dict(DEFAULT_TTLS)
        if ttls:
            self._ttls.update({str(k): float(v) for k, v in ttls.items()})
        self._timer = timer
        self._caches: Dict[str, TTLCache] = {}
        self._lock = threading.RLock()
        # in-flight computations per (namespace, key, loop)
        self._pending: Dict[Tuple[str, Hashable, asyncio.AbstractEventLoop], asyncio.Task] = {}

    # internal helpers -----------------------------------------------------
    def ttl_for(self, namespace: str) -> float:
        return self._ttls.get(namespace, self.default_ttl)

    def _cache_for(self, namespace: str) -> TTLCache:
        cache = self._caches.get(namespace)
        if cache is None:
            cache = TTLCache(
                maxsize=self.maxsize,
                ttl=self.ttl_for(namespace) + _TTL_SLACK,
                timer=self._timer,
            )
            self._caches[namespace] = cache
        return cache

    # basic API ------------------------------------------------------------
    def get(self, namespace: str, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._cache_for(namespace).get(key, default)

    def set(self, namespace: str, key: Hashable, value: Any) -> None:
        with self._lock:
            cache = self._cache_for(namespace)
            # drop first so the entry is re-stamped with a fresh expiry
            cache.pop(key, None)
            cache[key] = value

    def pop(self, namespace: str, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._cache_for(namespace).pop(key, default)

    def clear(self, namespace: str | None = None) -> None:
        with self._lock:
            if namespace is None:
                self._caches.clear()
            else:
                self._caches.pop(namespace, None)

    def __len__(self) -> int:
        with self._lock:
            total = 0
            for cache in self._caches.values():
                cache.expire()
                total += len(cache)
            return total

    # async helpers -------------------------------------------------------
    async def get_or_set_async(
        self,
        namespace: str,
        key: Hashable,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value or the result of awaiting ``factory()``.

        Only a single task runs ``factory`` for a missing key; concurrent
        callers on the same event loop await that task instead of starting
        their own computation.  A failed computation is not cached.
        """

        value = self.get(namespace, key)
        if value is not None:
            return value

        loop = asyncio.get_running_loop()
        pend_key = (namespace, key, loop)
        with self._lock:
            value = self._cache_for(namespace).get(key)
            if value is not None:
                return value
            task = self._pending.get(pend_key)
            if task is None:
                task = loop.create_task(self._fill(namespace, key, factory, pend_key))
                self._pending[pend_key] = task
        return await asyncio.shield(task)

    async def _fill(
        self,
        namespace: str,
        key: Hashable,
        factory: Callable[[], Awaitable[Any]],
        pend_key: Tuple[str, Hashable, asyncio.AbstractEventLoop],
    ) -> Any:
        try:
            value = await factory()
            if value is not None:
                self.set(namespace, key, value)
            return value
        finally:
            with self._lock:
                self._pending.pop(pend_key, None)


__all__ = ["DEFAULT_TTLS", "ResponseCache"]
