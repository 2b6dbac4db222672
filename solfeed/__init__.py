"""Real-time Solana token feed aggregated from several market data providers."""

from .aggregator import FeedAggregator
from .config import FeedQuery, FeedSettings, SortKey
from .http import MalformedResponseError, TransientUpstreamError, UpstreamError
from .models import FeedResult, ScoredSnapshot, SourceHealth, TokenSnapshot, TxnCounts

__version__ = "0.1.0"

__all__ = [
    "FeedAggregator",
    "FeedQuery",
    "FeedResult",
    "FeedSettings",
    "MalformedResponseError",
    "ScoredSnapshot",
    "SortKey",
    "SourceHealth",
    "TokenSnapshot",
    "TransientUpstreamError",
    "TxnCounts",
    "UpstreamError",
]
