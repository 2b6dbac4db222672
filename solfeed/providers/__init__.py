"""Upstream provider adapters."""

from __future__ import annotations

from typing import Dict, Type

from .base import SourceAdapter
from .birdeye import BirdeyeAdapter
from .dexscreener import DexScreenerAdapter
from .helius import HeliusAdapter
from .jupiter import JupiterAdapter
from .pumpfun import PumpFunAdapter

ADAPTER_CLASSES: Dict[str, Type[SourceAdapter]] = {
    cls.name: cls
    for cls in (DexScreenerAdapter, BirdeyeAdapter, PumpFunAdapter, JupiterAdapter, HeliusAdapter)
}


__all__ = [
    "ADAPTER_CLASSES",
    "BirdeyeAdapter",
    "DexScreenerAdapter",
    "HeliusAdapter",
    "JupiterAdapter",
    "PumpFunAdapter",
    "SourceAdapter",
]
