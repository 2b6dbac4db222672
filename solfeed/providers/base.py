"""Common behaviour for the upstream provider adapters."""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from typing import Any, Callable, Iterable, List

import aiohttp

from ..config import FeedSettings
from ..http import MalformedResponseError, fetch_json, get_session
from ..logging_utils import warn_once_per
from ..lru import ResponseCache
from ..models import TokenSnapshot, TxnCounts
from ..ratelimit import RateLimiter
from ..util import coerce_float, coerce_int, normalize_address

logger = logging.getLogger(__name__)

# An adapter may chain two rounds of requests (listing, then batched
# details), so its overall budget is a multiple of the per-request timeout.
FETCH_BUDGET_FACTOR = 2.0

SOURCE_NAMESPACE = "source"


def _now_ms() -> int:
    return int(time.time() * 1000)


def txn_counts(raw: Any) -> TxnCounts:
    if not isinstance(raw, dict):
        return TxnCounts()
    return TxnCounts(
        buys=max(0, coerce_int(raw.get("buys"))),
        sells=max(0, coerce_int(raw.get("sells"))),
    )


class SourceAdapter(abc.ABC):
    """Fetch one provider's listing and normalise it into snapshots.

    Subclasses implement :meth:`_fetch_raw` (network I/O), :meth:`_records`
    (locate the record list in the payload) and :meth:`_parse_record`.
    :meth:`fetch` wraps them with the source cache, the rate limiter and a
    timeout, and never raises.
    """

    name: str = ""
    requires_api_key: bool = False

    def __init__(
        self,
        *,
        limiter: RateLimiter,
        cache: ResponseCache,
        settings: FeedSettings | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.limiter = limiter
        self.cache = cache
        self.settings = settings if settings is not None else FeedSettings()
        self._session = session
        self.timeout = float(timeout) if timeout is not None else self.settings.source_timeout(self.name)
        self._now_ms = now_ms

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<{type(self).__name__} name={self.name!r} enabled={self.enabled}>"

    # configuration -------------------------------------------------------
    @property
    def api_key(self) -> str:
        return ""

    @property
    def enabled(self) -> bool:
        if not self.settings.source_enabled(self.name):
            return False
        if self.requires_api_key and not self.api_key:
            return False
        return True

    async def session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_session()

    async def get_json(self, url: str, method: str = "GET", **kwargs: Any) -> Any:
        return await fetch_json(
            url,
            method,
            session=await self.session(),
            timeout=self.timeout,
            **kwargs,
        )

    # template ------------------------------------------------------------
    async def fetch(self) -> List[TokenSnapshot]:
        if not self.enabled:
            warn_once_per(
                30,
                f"solfeed-disabled-{self.name}",
                "Source %s disabled (missing API key or switched off)",
                self.name,
                logger=logger,
                level=logging.INFO,
            )
            return []

        # concurrent cycles share one in-flight request per source
        snapshots = await self.cache.get_or_set_async(SOURCE_NAMESPACE, self.name, self._fetch_fresh)
        return list(snapshots) if snapshots is not None else []

    async def _fetch_fresh(self) -> List[TokenSnapshot] | None:
        """Call the provider once; ``None`` means nothing to cache."""

        if not self.limiter.allowed(self.name):
            logger.debug(
                "Source %s throttled for another %.0fms; skipping this cycle",
                self.name,
                self.limiter.remaining_ms(self.name),
            )
            return None

        started = time.monotonic()
        try:
            payload = await asyncio.wait_for(
                self._fetch_raw(), timeout=self.timeout * FETCH_BUDGET_FACTOR
            )
            snapshots = self._normalise(payload)
        except asyncio.TimeoutError as exc:
            self.limiter.record(self.name, False, "timeout")
            logger.warning("Source %s timed out after %.1fs", self.name, time.monotonic() - started)
            logger.debug("Source %s timeout detail: %r", self.name, exc)
            return None
        except Exception as exc:
            self.limiter.record(self.name, False, exc)
            logger.warning("Source %s failed: %s", self.name, exc)
            return None

        self.limiter.record(self.name, True)
        logger.debug(
            "Source %s returned %d tokens in %.0fms",
            self.name,
            len(snapshots),
            (time.monotonic() - started) * 1000.0,
        )
        return list(snapshots)

    def _normalise(self, payload: Any) -> List[TokenSnapshot]:
        fetched_at = self._now_ms()
        snapshots: List[TokenSnapshot] = []
        seen: set[str] = set()
        dropped = 0
        for record in self._records(payload):
            try:
                snapshot = self._parse_record(record)
            except (MalformedResponseError, AttributeError, KeyError, TypeError, ValueError) as exc:
                dropped += 1
                logger.debug("Dropping malformed %s record: %s", self.name, exc)
                continue
            if snapshot is None:
                continue
            snapshot.address = normalize_address(snapshot.address)
            if not snapshot.address or snapshot.address in seen:
                continue
            seen.add(snapshot.address)
            snapshot.source_id = self.name
            snapshot.fetched_at = fetched_at
            snapshots.append(snapshot)
        if dropped:
            logger.info("Dropped %d malformed records from %s", dropped, self.name)
        return snapshots

    @abc.abstractmethod
    async def _fetch_raw(self) -> Any:
        """Perform the network requests and return the raw payload."""

    @abc.abstractmethod
    def _records(self, payload: Any) -> Iterable[Any]:
        """Return the per-token records inside ``payload``.

        Raise :class:`MalformedResponseError` when the payload as a whole is
        unusable.
        """

    @abc.abstractmethod
    def _parse_record(self, record: Any) -> TokenSnapshot | None:
        """Translate one provider record, or return ``None`` to skip it."""


def require_list(value: Any, source: str, what: str) -> list:
    if not isinstance(value, list):
        raise MalformedResponseError(f"{source}: expected a list of {what}, got {type(value).__name__}")
    return value


def price_from(value: Any) -> float:
    return max(0.0, coerce_float(value))


__all__ = ["SourceAdapter", "price_from", "require_list", "txn_counts"]
