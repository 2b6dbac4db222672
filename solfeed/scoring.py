"""Heuristic scoring of merged token snapshots.

Every function here is pure: the result depends only on the snapshot and the
reference time ``now_ms`` shared by the whole fetch cycle.  The four signal
scores are integers clamped to ``[0, 100]``; the trending score is unbounded
and only used for ranking.
"""

from __future__ import annotations

import math

from .models import ScoredSnapshot, TokenSnapshot

MS_PER_HOUR = 3_600_000.0


def clamp(value: float, minimum: float, maximum: float) -> float:
    """Return ``value`` bounded by ``minimum`` and ``maximum``."""

    return max(minimum, min(maximum, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _bounded(value: float) -> int:
    return int(clamp(round_half_up(value), 0, 100))


def _num(value: float) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0.0
    return numeric if math.isfinite(numeric) else 0.0


def age_hours(snapshot: TokenSnapshot, now_ms: int) -> float:
    """Hours since the pair was created, falling back to ``fetched_at``."""

    created = snapshot.pair_created_at
    if created is None:
        created = snapshot.fetched_at
    return (_num(now_ms) - _num(created)) / MS_PER_HOUR


def _hourly_average(snapshot: TokenSnapshot) -> float:
    return _num(snapshot.volume_24h) / 24.0


def _pre_migration_pump(snapshot: TokenSnapshot) -> bool:
    return snapshot.is_pump_fun and not snapshot.is_migrated


def buy_signal(snapshot: TokenSnapshot, now_ms: int) -> int:
    score = 50.0
    market_cap = _num(snapshot.market_cap)
    volume_5m = _num(snapshot.volume_5m)
    volume_1h = _num(snapshot.volume_1h)
    change_5m = _num(snapshot.price_change_5m)
    change_1h = _num(snapshot.price_change_1h)
    change_24h = _num(snapshot.price_change_24h)
    liquidity = _num(snapshot.liquidity)

    volume_to_mcap = volume_1h / market_cap if market_cap > 0 else 0.0
    if volume_to_mcap > 0.1:
        score += 15
    elif volume_to_mcap > 0.05:
        score += 10
    elif volume_to_mcap > 0.02:
        score += 5

    # 5m volume against the 5m share of the 24h hourly average
    hourly = _hourly_average(snapshot)
    if volume_5m > hourly * 5 / 60:
        score += 20
    elif volume_5m > hourly * 3 / 60:
        score += 10

    ratio_5m = snapshot.txns_5m.buy_ratio()
    if ratio_5m > 0.7:
        score += 15
    elif ratio_5m > 0.6:
        score += 8
    elif ratio_5m < 0.3:
        score -= 15

    if snapshot.txns_1h.buy_ratio() > 0.65:
        score += 10

    if 5 < change_5m < 50:
        score += 10
    if 10 < change_1h < 100:
        score += 8
    if change_1h > 0 and change_24h < -20:
        score += 12

    if 10_000 <= liquidity <= 200_000:
        score += 10
    elif 5_000 <= liquidity <= 500_000:
        score += 5
    elif liquidity < 2_000:
        score -= 15

    age = age_hours(snapshot, now_ms)
    if age < 1 and snapshot.txns_5m.total > 10:
        score += 15
    elif age < 6 and snapshot.txns_1h.total > 50:
        score += 10
    elif age < 24 and volume_1h > 5_000:
        score += 5

    if _pre_migration_pump(snapshot):
        progress = _num(snapshot.bonding_curve_progress or 0)
        if progress > 80:
            score += 20
        elif progress > 60:
            score += 10

    return _bounded(score)


def sell_signal(snapshot: TokenSnapshot, now_ms: int) -> int:
    score = 20.0
    change_5m = _num(snapshot.price_change_5m)
    change_1h = _num(snapshot.price_change_1h)
    change_24h = _num(snapshot.price_change_24h)
    liquidity = _num(snapshot.liquidity)

    if change_5m < -20:
        score += 30
    elif change_5m < -10:
        score += 15
    elif change_1h < -30:
        score += 25
    elif change_1h < -15:
        score += 12

    ratio_5m = snapshot.txns_5m.sell_ratio()
    if ratio_5m > 0.75:
        score += 25
    elif ratio_5m > 0.65:
        score += 15
    elif ratio_5m > 0.55:
        score += 8

    if snapshot.txns_1h.sell_ratio() > 0.7:
        score += 15

    if liquidity < 1_000:
        score += 20
    elif liquidity < 3_000:
        score += 10

    if change_1h > 200:
        score += 20
    elif change_1h > 100:
        score += 10
    if change_24h > 500:
        score += 15

    hourly = _hourly_average(snapshot)
    volume_1h = _num(snapshot.volume_1h)
    if volume_1h < hourly * 0.2:
        score += 15
    elif volume_1h < hourly * 0.5:
        score += 8

    return _bounded(score)


def risk_score(snapshot: TokenSnapshot, now_ms: int) -> int:
    risk = 20.0
    liquidity = _num(snapshot.liquidity)
    market_cap = _num(snapshot.market_cap)

    if liquidity < 1_000:
        risk += 35
    elif liquidity < 5_000:
        risk += 25
    elif liquidity < 10_000:
        risk += 15

    age = age_hours(snapshot, now_ms)
    if age < 0.5:
        risk += 25
    elif age < 2:
        risk += 18
    elif age < 6:
        risk += 10
    elif age < 24:
        risk += 5

    sell_ratio = snapshot.txns_24h.sell_ratio()
    if sell_ratio > 0.65:
        risk += 15
    elif sell_ratio > 0.55:
        risk += 8

    if market_cap > 0 and liquidity > 0:
        mcap_to_liquidity = market_cap / liquidity
        if mcap_to_liquidity > 50:
            risk += 20
        elif mcap_to_liquidity > 20:
            risk += 10

    if _pre_migration_pump(snapshot):
        risk += 10

    return _bounded(risk)


def momentum_score(snapshot: TokenSnapshot, now_ms: int) -> int:
    score = 50.0
    change_5m = _num(snapshot.price_change_5m)
    change_1h = _num(snapshot.price_change_1h)

    if change_5m > 15:
        score += 20
    elif change_5m > 5:
        score += 12
    elif change_5m > 2:
        score += 6
    elif change_5m < -10:
        score -= 15
    elif change_5m < -5:
        score -= 8

    if change_1h > 30:
        score += 15
    elif change_1h > 10:
        score += 8
    elif change_1h < -20:
        score -= 12

    hourly = _hourly_average(snapshot)
    volume_1h = _num(snapshot.volume_1h)
    if volume_1h > hourly * 3:
        score += 20
    elif volume_1h > hourly * 2:
        score += 12
    elif volume_1h > hourly * 1.5:
        score += 6
    elif volume_1h < hourly * 0.3:
        score -= 15

    txns_5m = snapshot.txns_5m.total
    if txns_5m > 50:
        score += 15
    elif txns_5m > 20:
        score += 10
    elif txns_5m > 10:
        score += 5

    ratio_5m = snapshot.txns_5m.buy_ratio()
    if ratio_5m > 0.7:
        score += 10
    elif ratio_5m < 0.3:
        score -= 10

    return _bounded(score)


def trending_score(snapshot: TokenSnapshot, now_ms: int) -> int:
    score = 0.0
    score += min(_num(snapshot.volume_5m) / 500, 50) * 3
    score += min(_num(snapshot.volume_1h) / 5_000, 50) * 2
    score += min(_num(snapshot.volume_24h) / 50_000, 50)

    txns_5m = snapshot.txns_5m.total
    score += min(txns_5m * 3, 60)
    score += min(snapshot.txns_1h.total / 2, 30)

    score += min(abs(_num(snapshot.price_change_5m)) * 2, 40)
    score += min(abs(_num(snapshot.price_change_1h)), 30)

    age = age_hours(snapshot, now_ms)
    if age < 0.5:
        score += 60
    elif age < 1:
        score += 40
    elif age < 3:
        score += 25
    elif age < 12:
        score += 10

    if snapshot.txns_5m.buy_ratio() > 0.65:
        score += 20

    return round_half_up(score)


def liquidity_score(snapshot: TokenSnapshot) -> int:
    market_cap = _num(snapshot.market_cap)
    if market_cap <= 0:
        return 50
    ratio = _num(snapshot.liquidity) / market_cap
    if ratio > 0.3:
        return 90
    if ratio > 0.15:
        return 75
    if ratio > 0.05:
        return 60
    if ratio > 0.02:
        return 40
    return 20


def score_snapshot(snapshot: TokenSnapshot, now_ms: int) -> ScoredSnapshot:
    """Attach every score and derived metric to a merged snapshot."""

    market_cap = _num(snapshot.market_cap) or _num(snapshot.fdv)
    volume_24h = _num(snapshot.volume_24h)
    return ScoredSnapshot(
        snapshot=snapshot,
        buy_signal=buy_signal(snapshot, now_ms),
        sell_signal=sell_signal(snapshot, now_ms),
        risk_score=risk_score(snapshot, now_ms),
        momentum_score=momentum_score(snapshot, now_ms),
        trending_score=trending_score(snapshot, now_ms),
        volume_to_mcap_ratio=volume_24h / market_cap * 100 if market_cap > 0 else 0.0,
        buy_pressure=snapshot.txns_24h.buy_ratio() * 100,
        liquidity_score=liquidity_score(snapshot),
        volatility_24h=abs(_num(snapshot.price_change_24h)) + abs(_num(snapshot.price_change_1h)),
    )


__all__ = [
    "age_hours",
    "buy_signal",
    "clamp",
    "liquidity_score",
    "momentum_score",
    "risk_score",
    "round_half_up",
    "score_snapshot",
    "sell_signal",
    "trending_score",
]
