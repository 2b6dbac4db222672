"""Per-source adaptive throttle with health tracking.

The limiter never queues or sleeps: ``allowed`` answers whether a source may
be called right now and ``record`` feeds the outcome back.  Failures add a
fixed step of backoff on top of the source's minimum call interval (capped),
successes decay it again by a smaller step.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Mapping

from .models import SourceHealth

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_MS: Dict[str, float] = {
    "dexscreener": 200.0,
    "jupiter": 300.0,
    "helius": 100.0,
    "birdeye": 500.0,
    "pumpfun": 300.0,
}
FALLBACK_MIN_INTERVAL_MS = 200.0
BACKOFF_STEP_MS = 500.0
DECAY_STEP_MS = 100.0
MAX_BACKOFF_MS = 5000.0


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RateLimiter:
    """Allow/deny throttle keyed by source name."""

    def __init__(
        self,
        min_intervals_ms: Mapping[str, float] | None = None,
        *,
        backoff_step_ms: float = BACKOFF_STEP_MS,
        decay_step_ms: float = DECAY_STEP_MS,
        max_backoff_ms: float = MAX_BACKOFF_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self._min_intervals: Dict[str, float] = dict(DEFAULT_MIN_INTERVAL_MS)
        if min_intervals_ms:
            self._min_intervals.update({str(k): float(v) for k, v in min_intervals_ms.items()})
        self.backoff_step_ms = max(0.0, float(backoff_step_ms))
        self.decay_step_ms = max(0.0, float(decay_step_ms))
        self.max_backoff_ms = max(0.0, float(max_backoff_ms))
        self._clock = clock
        self._health: Dict[str, SourceHealth] = {}
        self._lock = threading.Lock()

    def min_interval_ms(self, source: str) -> float:
        return self._min_intervals.get(source, FALLBACK_MIN_INTERVAL_MS)

    def backoff_for(self, failures: int) -> float:
        """Backoff in milliseconds after ``failures`` consecutive failures
        starting from a clean state."""

        return min(max(0, int(failures)) * self.backoff_step_ms, self.max_backoff_ms)

    def allowed(self, source: str) -> bool:
        with self._lock:
            state = self._health.get(source)
            if state is None or state.last_call_at is None:
                return True
            wait = self.min_interval_ms(source) + state.current_backoff_ms
            return self._clock() - state.last_call_at >= wait

    def remaining_ms(self, source: str) -> float:
        """Milliseconds until ``source`` may be called again (0 when allowed)."""

        with self._lock:
            state = self._health.get(source)
            if state is None or state.last_call_at is None:
                return 0.0
            wait = self.min_interval_ms(source) + state.current_backoff_ms
            return max(0.0, wait - (self._clock() - state.last_call_at))

    def record(self, source: str, success: bool, error: str | BaseException | None = None) -> SourceHealth:
        now = self._clock()
        with self._lock:
            state = self._health.get(source)
            if state is None:
                state = SourceHealth(source_name=source)
                self._health[source] = state
            state.last_call_at = now
            if success:
                state.current_backoff_ms = max(0.0, state.current_backoff_ms - self.decay_step_ms)
                state.consecutive_failures = 0
                state.last_success_at = now
                state.last_error = None
            else:
                state.current_backoff_ms = min(
                    state.current_backoff_ms + self.backoff_step_ms, self.max_backoff_ms
                )
                state.consecutive_failures += 1
                state.last_error = str(error) if error is not None else "unknown error"
            snapshot = replace(state)
        if not success:
            logger.debug(
                "Source %s failure #%d, backoff now %.0fms",
                source,
                snapshot.consecutive_failures,
                snapshot.current_backoff_ms,
            )
        return snapshot

    def health(self, source: str) -> SourceHealth:
        with self._lock:
            state = self._health.get(source)
            return replace(state) if state is not None else SourceHealth(source_name=source)

    def snapshot(self) -> Dict[str, SourceHealth]:
        with self._lock:
            return {name: replace(state) for name, state in self._health.items()}

    def reset(self, source: str | None = None) -> None:
        with self._lock:
            if source is None:
                self._health.clear()
            else:
                self._health.pop(source, None)


__all__ = ["DEFAULT_MIN_INTERVAL_MS", "RateLimiter"]
