"""Runtime configuration for the token feed.

Settings are read from the environment on every access so tests and
long-running services pick up changes without re-importing.  Per-source
overrides (priority, minimum call interval, timeout, enabled flag) can be
supplied through a YAML file named by ``FEED_SOURCES_CONFIG``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Merge priority, most complete provider first.
DEFAULT_SOURCE_ORDER: Tuple[str, ...] = ("dexscreener", "birdeye", "pumpfun", "jupiter", "helius")

MAX_PAGE_LIMIT = 500
DEFAULT_PAGE_LIMIT = 200


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        raw = default
    try:
        return float(raw)
    except Exception:
        return float(default)


def _env_int(
    name: str,
    default: str,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        raw = default
    try:
        value = int(raw)
    except Exception:
        value = int(default)
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        raw = default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _env_str(name: str, default: str = "", *, strip: bool = True) -> str:
    raw = os.getenv(name)
    if raw is None or raw == "":
        raw = default
    if strip:
        return str(raw).strip()
    return str(raw)


class SortKey(str, Enum):
    TRENDING = "trending"
    NEW = "new"
    VOLUME = "volume"
    GAINERS = "gainers"
    LOSERS = "losers"
    BUY_SIGNAL = "buy_signal"
    RISK = "risk"


class FeedQuery(BaseModel):
    """Validated arguments of :meth:`FeedAggregator.fetch_feed`."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_LIMIT, gt=0, le=MAX_PAGE_LIMIT)
    sort: SortKey = SortKey.TRENDING
    timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("sort", mode="before")
    @classmethod
    def _normalise_sort(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


@dataclass(frozen=True, slots=True)
class SourceOverride:
    priority: int | None = None
    min_interval_ms: float | None = None
    timeout: float | None = None
    enabled: bool = True


class SourcesFileModel(BaseModel):
    """Schema of the optional YAML sources file."""

    model_config = ConfigDict(extra="ignore")

    sources: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @field_validator("sources")
    @classmethod
    def _names_non_empty(cls, value: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        if not all(isinstance(name, str) and name.strip() for name in value):
            raise ValueError("source names must be non-empty strings")
        return value


def load_source_overrides(path: str | Path | None = None) -> Dict[str, SourceOverride]:
    """Return per-source overrides from the YAML sources file.

    A missing or invalid file yields no overrides; problems are logged.
    """

    if path is None:
        configured = _env_str("FEED_SOURCES_CONFIG")
        if not configured:
            return {}
        path = configured
    candidate = Path(path).expanduser()
    if not candidate.exists():
        logger.warning("Sources config %s not found; using defaults", candidate)
        return {}
    try:
        with candidate.open("r", encoding="utf-8") as fh:
            payload = yaml.safe_load(fh) or {}
        model = SourcesFileModel.model_validate(payload)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        logger.warning("Ignoring invalid sources config %s: %s", candidate, exc)
        return {}

    overrides: Dict[str, SourceOverride] = {}
    for name, raw in model.sources.items():
        raw = raw or {}
        try:
            overrides[name.strip().lower()] = SourceOverride(
                priority=int(raw["priority"]) if raw.get("priority") is not None else None,
                min_interval_ms=(
                    float(raw["min_interval_ms"]) if raw.get("min_interval_ms") is not None else None
                ),
                timeout=float(raw["timeout"]) if raw.get("timeout") is not None else None,
                enabled=bool(raw.get("enabled", True)),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring override for source %s: %s", name, exc)
    return overrides


class FeedSettings:
    __slots__ = ("_overrides",)

    def __init__(self, overrides: Mapping[str, SourceOverride] | None = None) -> None:
        self._overrides: Dict[str, SourceOverride] = (
            dict(overrides) if overrides is not None else load_source_overrides()
        )

    # cache ---------------------------------------------------------------
    @property
    def feed_cache_ttl(self) -> float:
        return _env_float("FEED_CACHE_TTL", "8")

    @property
    def source_cache_ttl(self) -> float:
        return _env_float("FEED_SOURCE_CACHE_TTL", "8")

    @property
    def price_cache_ttl(self) -> float:
        return _env_float("FEED_PRICE_CACHE_TTL", "10")

    @property
    def meta_cache_ttl(self) -> float:
        return _env_float("FEED_META_CACHE_TTL", "60")

    @property
    def cache_maxsize(self) -> int:
        return _env_int("FEED_CACHE_MAXSIZE", "1024", minimum=1)

    def cache_ttls(self) -> Dict[str, float]:
        return {
            "feed": self.feed_cache_ttl,
            "source": self.source_cache_ttl,
            "price": self.price_cache_ttl,
            "meta": self.meta_cache_ttl,
        }

    # rate limiting ---------------------------------------------------------
    @property
    def backoff_step_ms(self) -> float:
        return _env_float("FEED_BACKOFF_STEP_MS", "500")

    @property
    def backoff_decay_ms(self) -> float:
        return _env_float("FEED_BACKOFF_DECAY_MS", "100")

    @property
    def max_backoff_ms(self) -> float:
        return _env_float("FEED_MAX_BACKOFF_MS", "5000")

    def min_intervals_ms(self) -> Dict[str, float]:
        return {
            name: override.min_interval_ms
            for name, override in self._overrides.items()
            if override.min_interval_ms is not None
        }

    # http ----------------------------------------------------------------
    @property
    def http_timeout(self) -> float:
        return _env_float("FEED_HTTP_TIMEOUT", "10")

    def source_timeout(self, source: str) -> float:
        override = self._overrides.get(source)
        if override is not None and override.timeout is not None:
            return override.timeout
        return self.http_timeout

    def base_url(self, source: str, default: str) -> str:
        return (_env_str(f"{source.upper()}_BASE_URL") or default).rstrip("/")

    # provider credentials --------------------------------------------------
    @property
    def helius_api_key(self) -> str:
        return _env_str("HELIUS_API_KEY")

    @property
    def birdeye_api_key(self) -> str:
        return _env_str("BIRDEYE_API_KEY")

    @property
    def sol_price_usd(self) -> float:
        return _env_float("FEED_SOL_PRICE_USD", "150")

    # filtering -------------------------------------------------------------
    @property
    def min_liquidity(self) -> float:
        return _env_float("FEED_MIN_LIQUIDITY_USD", "0")

    @property
    def min_volume(self) -> float:
        return _env_float("FEED_MIN_VOLUME_USD", "0")

    # sources ---------------------------------------------------------------
    def source_enabled(self, source: str) -> bool:
        override = self._overrides.get(source)
        if override is not None and not override.enabled:
            return False
        return not _env_bool(f"FEED_DISABLE_{source.upper()}")

    def source_order(self) -> List[str]:
        """Merge priority order, honouring ``priority`` overrides."""

        ranked = []
        for index, name in enumerate(DEFAULT_SOURCE_ORDER):
            override = self._overrides.get(name)
            priority = override.priority if override and override.priority is not None else index + 1
            ranked.append((priority, index, name))
        ranked.sort()
        return [name for _, _, name in ranked]


__all__ = [
    "DEFAULT_SOURCE_ORDER",
    "FeedQuery",
    "FeedSettings",
    "SortKey",
    "SourceOverride",
    "load_source_overrides",
]
