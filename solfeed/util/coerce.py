"""Defensive parsing of loosely typed provider payload values."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Return ``value`` as a finite float or ``default``.

    Numeric strings are accepted and mappings are probed for the usual
    ``price``/``value``/``usd``/``amount`` keys providers nest numbers under.
    ``NaN`` and infinities collapse to ``default``.
    """

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            numeric = float(text)
        except (TypeError, ValueError):
            return default
    elif isinstance(value, Mapping):
        for key in ("price", "value", "usd", "amount"):
            if key in value:
                return coerce_float(value.get(key), default)
        return default
    else:
        return default
    if not math.isfinite(numeric):
        return default
    return numeric


def coerce_int(value: Any, default: int = 0) -> int:
    numeric = coerce_float(value, float(default))
    try:
        return int(numeric)
    except (OverflowError, ValueError):
        return default


def parse_timestamp_ms(value: Any) -> int | None:
    """Return an epoch timestamp in milliseconds.

    Values below ``1e12`` are taken to be seconds.  Anything unparsable or
    non-positive yields ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        ts = float(value)
        if not math.isfinite(ts) or ts <= 0:
            return None
        if ts < 1e12:
            ts *= 1000.0
        return int(ts)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            numeric = float(raw)
        except (TypeError, ValueError):
            return None
        return parse_timestamp_ms(numeric)
    return None


def first_present(entry: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in entry:
            value = entry[key]
            if value is not None:
                return value
    return None
