"""Helpers for normalising token addresses used as merge keys."""

from __future__ import annotations

from typing import Any


def normalize_address(value: Any) -> str:
    """Return ``value`` with surrounding whitespace removed.

    Solana addresses are base58 and therefore case-sensitive, so the case is
    left untouched.  Non-string values normalise to ``""``.
    """

    if not isinstance(value, str):
        return ""
    return value.strip()
