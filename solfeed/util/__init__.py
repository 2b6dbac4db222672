# Utility helpers shared by the provider adapters.

from .coerce import coerce_float, coerce_int, first_present, parse_timestamp_ms
from .mints import normalize_address

__all__ = [
    "coerce_float",
    "coerce_int",
    "first_present",
    "normalize_address",
    "parse_timestamp_ms",
]
