# FILE: app/ratelimit/bucket.py
"""
Token bucket used as the burst layer of the keyed limiter.

The bucket holds at most `capacity` tokens and gains `refill_rate` tokens
per second. Refill is lazy: it happens on every inspection, computed from
the time elapsed since the previous one.

Not thread-safe on its own; KeyedLimiter serializes access per key.
"""
from __future__ import annotations

import time
from typing import Callable


class TokenBucket:
    """Lazy-refill token bucket."""

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if refill_rate < 0:
            raise ValueError(f"refill_rate must be >= 0, got {refill_rate}")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        # clock going backwards never adds tokens
        self._last_refill = max(self._last_refill, now)

    def can_take(self, n: float = 1.0) -> bool:
        self._refill()
        return self._tokens >= n

    def take(self, n: float = 1.0) -> bool:
        """Consume n tokens if available."""
        self._refill()
        if self._tokens < n:
            return False
        self._tokens = max(0.0, self._tokens - n)
        return True

    def available(self) -> float:
        """Current token count, in [0, capacity]."""
        self._refill()
        return self._tokens

    def is_full(self) -> bool:
        return self.available() >= self.capacity


__all__ = ["TokenBucket"]
