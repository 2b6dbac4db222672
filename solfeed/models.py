"""Data model shared by the adapters, merger, scorer and aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


@dataclass(frozen=True, slots=True)
class TxnCounts:
    """Buy/sell transaction counts for one time window."""

    buys: int = 0
    sells: int = 0

    @property
    def total(self) -> int:
        return self.buys + self.sells

    def is_empty(self) -> bool:
        return self.total <= 0

    def buy_ratio(self, default: float = 0.5) -> float:
        total = self.total
        return self.buys / total if total > 0 else default

    def sell_ratio(self, default: float = 0.5) -> float:
        total = self.total
        return self.sells / total if total > 0 else default

    def to_dict(self) -> Dict[str, int]:
        return {"buys": self.buys, "sells": self.sells}


@dataclass(slots=True)
class TokenSnapshot:
    """One provider's view of one token at fetch time.

    ``address`` is the merge key.  Numeric fields default to ``0`` which the
    merger treats as "not supplied"; ``pair_created_at`` is ``None`` when the
    provider does not know when the pair was created.
    """

    address: str
    source_id: str
    symbol: str = ""
    name: str = ""
    price: float = 0.0
    price_change_5m: float = 0.0
    price_change_1h: float = 0.0
    price_change_24h: float = 0.0
    volume_5m: float = 0.0
    volume_1h: float = 0.0
    volume_6h: float = 0.0
    volume_24h: float = 0.0
    liquidity: float = 0.0
    market_cap: float = 0.0
    fdv: float = 0.0
    pair_created_at: Optional[int] = None
    pair_address: str = ""
    dex_id: str = ""
    logo_uri: str = ""
    txns_5m: TxnCounts = field(default_factory=TxnCounts)
    txns_1h: TxnCounts = field(default_factory=TxnCounts)
    txns_6h: TxnCounts = field(default_factory=TxnCounts)
    txns_24h: TxnCounts = field(default_factory=TxnCounts)
    holder_count: Optional[int] = None
    fetched_at: int = 0

    # provider specific flags
    is_pump_fun: bool = False
    is_migrated: bool = False
    bonding_curve_progress: Optional[float] = None
    has_profile: bool = False
    has_boost: bool = False
    boost_amount: int = 0
    has_enhanced_profile: bool = False
    profile_updated_at: Optional[int] = None

    # every provider that contributed to a merged record
    sources: List[str] = field(default_factory=list)

    def copy(self) -> "TokenSnapshot":
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["sources"] = list(self.sources)
        return TokenSnapshot(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "priceChange5m": self.price_change_5m,
            "priceChange1h": self.price_change_1h,
            "priceChange24h": self.price_change_24h,
            "volume5m": self.volume_5m,
            "volume1h": self.volume_1h,
            "volume6h": self.volume_6h,
            "volume24h": self.volume_24h,
            "liquidity": self.liquidity,
            "marketCap": self.market_cap,
            "fdv": self.fdv,
            "pairCreatedAt": self.pair_created_at,
            "pairAddress": self.pair_address,
            "dexId": self.dex_id,
            "logoUri": self.logo_uri,
            "txns5m": self.txns_5m.to_dict(),
            "txns1h": self.txns_1h.to_dict(),
            "txns6h": self.txns_6h.to_dict(),
            "txns24h": self.txns_24h.to_dict(),
            "holders": self.holder_count,
            "source": self.source_id,
            "sources": list(self.sources),
            "fetchedAt": self.fetched_at,
            "isPumpFun": self.is_pump_fun,
            "isMigrated": self.is_migrated,
            "bondingCurveProgress": self.bonding_curve_progress,
            "hasDexScreenerProfile": self.has_profile,
            "hasDexScreenerBoost": self.has_boost,
            "boostAmount": self.boost_amount,
            "hasEnhancedProfile": self.has_enhanced_profile,
            "profileUpdatedAt": self.profile_updated_at,
        }


@dataclass(slots=True)
class ScoredSnapshot:
    """A merged snapshot together with its heuristic scores."""

    snapshot: TokenSnapshot
    buy_signal: int
    sell_signal: int
    risk_score: int
    momentum_score: int
    trending_score: int
    volume_to_mcap_ratio: float = 0.0
    buy_pressure: float = 50.0
    liquidity_score: int = 50
    volatility_24h: float = 0.0

    @property
    def address(self) -> str:
        return self.snapshot.address

    def to_dict(self) -> Dict[str, Any]:
        payload = self.snapshot.to_dict()
        payload.update(
            {
                "trendingScore": self.trending_score,
                "buySignal": self.buy_signal,
                "sellSignal": self.sell_signal,
                "riskScore": self.risk_score,
                "momentumScore": self.momentum_score,
                "volumeToMcapRatio": self.volume_to_mcap_ratio,
                "buyPressure": self.buy_pressure,
                "liquidityScore": self.liquidity_score,
                "volatility24h": self.volatility_24h,
            }
        )
        return payload


@dataclass(slots=True)
class SourceHealth:
    """Rolling health record for one upstream provider."""

    source_name: str
    last_success_at: Optional[float] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    current_backoff_ms: float = 0.0
    last_call_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceName": self.source_name,
            "lastSuccessAt": self.last_success_at,
            "lastError": self.last_error,
            "consecutiveFailures": self.consecutive_failures,
            "currentBackoffMs": self.current_backoff_ms,
            "lastCallAt": self.last_call_at,
        }


@dataclass(slots=True)
class FeedResult:
    """One page of the aggregated feed."""

    tokens: List[ScoredSnapshot]
    total: int
    has_more: bool
    sources: List[str]
    fetch_time_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokens": [token.to_dict() for token in self.tokens],
            "total": self.total,
            "hasMore": self.has_more,
            "sources": list(self.sources),
            "fetchTimeMs": self.fetch_time_ms,
        }


__all__ = [
    "FeedResult",
    "ScoredSnapshot",
    "SourceHealth",
    "TokenSnapshot",
    "TxnCounts",
]
