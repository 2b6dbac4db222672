from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

import pytest

from solfeed.config import FeedSettings
from solfeed.logging_utils import reset_warn_once_cache
from solfeed.lru import ResponseCache
from solfeed.models import TokenSnapshot, TxnCounts
from solfeed.ratelimit import RateLimiter

NOW_MS = 1_700_000_000_000
HOUR_MS = 3_600_000

_ENV_VARS = (
    "FEED_SOURCES_CONFIG",
    "FEED_CACHE_TTL",
    "FEED_SOURCE_CACHE_TTL",
    "FEED_PRICE_CACHE_TTL",
    "FEED_META_CACHE_TTL",
    "FEED_CACHE_MAXSIZE",
    "FEED_HTTP_TIMEOUT",
    "FEED_BACKOFF_STEP_MS",
    "FEED_BACKOFF_DECAY_MS",
    "FEED_MAX_BACKOFF_MS",
    "FEED_MIN_LIQUIDITY_USD",
    "FEED_MIN_VOLUME_USD",
    "FEED_SOL_PRICE_USD",
    "HELIUS_API_KEY",
    "BIRDEYE_API_KEY",
    "DEXSCREENER_BASE_URL",
    "BIRDEYE_BASE_URL",
    "PUMPFUN_BASE_URL",
    "JUPITER_BASE_URL",
    "JUPITER_PRICE_BASE_URL",
    "HELIUS_BASE_URL",
    "FEED_DISABLE_DEXSCREENER",
    "FEED_DISABLE_BIRDEYE",
    "FEED_DISABLE_PUMPFUN",
    "FEED_DISABLE_JUPITER",
    "FEED_DISABLE_HELIUS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_warn_once_cache()
    yield
    reset_warn_once_cache()


class FakeClock:
    """Manually advanced clock usable as a limiter (ms) or cache (s) timer."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, amount: float) -> None:
        self.now += amount


class FakeResponse:
    def __init__(self, payload: Any = None, *, status: int = 200, raw: bytes | None = None) -> None:
        self.status = status
        self._raw = raw if raw is not None else json.dumps(payload).encode("utf-8")

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def read(self) -> bytes:
        return self._raw

    async def text(self) -> str:
        return self._raw.decode("utf-8", "replace")


class FakeSession:
    """Route requests by URL substring; the first matching route wins.

    A route target may be a payload (served with status 200), a
    :class:`FakeResponse` or an exception instance which is raised.
    """

    def __init__(self, routes: List[Tuple[str, Any]] | None = None) -> None:
        self.routes: List[Tuple[str, Any]] = list(routes or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        for fragment, target in self.routes:
            if fragment in url:
                if isinstance(target, BaseException):
                    raise target
                if isinstance(target, FakeResponse):
                    return target
                return FakeResponse(target)
        return FakeResponse({"error": "not found"}, status=404)

    def urls(self) -> List[str]:
        return [call["url"] for call in self.calls]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock_ms():
    return FakeClock(10_000.0)


@pytest.fixture
def clock_s():
    return FakeClock(100.0)


@pytest.fixture
def limiter(clock_ms):
    return RateLimiter(clock=clock_ms)


@pytest.fixture
def cache(clock_s):
    return ResponseCache(timer=clock_s)


@pytest.fixture
def settings():
    return FeedSettings(overrides={})


@pytest.fixture
def fake_session():
    return FakeSession


def snapshot(address: str, source_id: str = "test", **fields: Any) -> TokenSnapshot:
    for window in ("txns_5m", "txns_1h", "txns_6h", "txns_24h"):
        value = fields.get(window)
        if isinstance(value, tuple):
            fields[window] = TxnCounts(*value)
    fields.setdefault("fetched_at", NOW_MS)
    return TokenSnapshot(address=address, source_id=source_id, **fields)


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def make_snapshot():
    return snapshot
