# FILE: app/ratelimit/keyed.py
"""
Keyed Rate Limiter

Maps an opaque key (a LINE chat id) to a token bucket plus an optional
daily counter. Two independent instances run in the bot: one for webhook
admission, one for LLM admission.

Allow(key) is two-phase under the entry lock:
  1. check  - daily counter has room AND bucket holds >= 1 token
  2. commit - consume one from each
so a request rejected by one layer never burns quota in the other.

Memory bounds:
- Entries are created lazily on first allow().
- A background task (start()/stop()) evicts entries idle longer than
  idle_ttl whose bucket has refilled and whose daily counter is unused.
- At most max_keys entries are resident; the least recently used entry is
  evicted when a new key would exceed the bound.

Inspection (get_usage_stats / get_available / get_daily_remaining) never
creates entries: an unknown key reports the full quota.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from app.metrics.tracker import BotMetrics
from app.ratelimit.bucket import TokenBucket
from app.ratelimit.daily import DailyCounter, TAIPEI

logger = logging.getLogger(__name__)

# Sentinel reported for daily fields when the daily layer is disabled
DAILY_DISABLED = -1

DEFAULT_IDLE_TTL = 3600.0
DEFAULT_MAX_KEYS = 10_000
DEFAULT_CLEANUP_PERIOD = 300.0


# =============================================================================
# CONFIG / STATS
# =============================================================================

@dataclass(frozen=True)
class KeyedConfig:
    """Configuration for one KeyedLimiter instance."""
    name: str
    burst: int
    refill_rate: float  # tokens per second
    daily_limit: int = 0  # 0 disables the daily layer
    idle_ttl: float = DEFAULT_IDLE_TTL
    max_keys: int = DEFAULT_MAX_KEYS
    cleanup_period: float = DEFAULT_CLEANUP_PERIOD

    def __post_init__(self):
        if self.burst <= 0:
            raise ValueError(f"[{self.name}] burst must be positive")
        if self.refill_rate < 0:
            raise ValueError(f"[{self.name}] refill_rate must be >= 0")
        if self.max_keys <= 0:
            raise ValueError(f"[{self.name}] max_keys must be positive")

    @property
    def daily_enabled(self) -> bool:
        return self.daily_limit > 0


@dataclass(frozen=True)
class UsageStats:
    """Snapshot of one key's limiter state."""
    burst_available: float
    burst_max: float
    burst_refill_rate: float
    daily_remaining: int
    daily_max: int
    daily_resets_at: Optional[datetime] = None

    @property
    def daily_enabled(self) -> bool:
        return self.daily_max >= 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.daily_resets_at is not None:
            data["daily_resets_at"] = self.daily_resets_at.isoformat()
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Entry:
    __slots__ = ("lock", "bucket", "daily", "last_seen")

    def __init__(self, bucket: TokenBucket, daily: Optional[DailyCounter], now: float):
        self.lock = threading.Lock()
        self.bucket = bucket
        self.daily = daily
        self.last_seen = now


# =============================================================================
# LIMITER
# =============================================================================

class KeyedLimiter:
    """Per-key token bucket + optional daily cap."""

    def __init__(
        self,
        config: KeyedConfig,
        metrics: Optional[BotMetrics] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self._metrics = metrics
        self._clock = clock
        self._wall_clock = wall_clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self.config.name

    # -------------------------------------------------------------------------
    # Entry management
    # -------------------------------------------------------------------------

    def _new_entry(self) -> _Entry:
        bucket = TokenBucket(self.config.burst, self.config.refill_rate, clock=self._clock)
        daily = None
        if self.config.daily_enabled:
            daily = DailyCounter(self.config.daily_limit, tz=TAIPEI, clock=self._wall_clock)
        return _Entry(bucket, daily, self._clock())

    def _get_or_create(self, key: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                return entry

            entry = self._new_entry()
            self._entries[key] = entry
            while len(self._entries) > self.config.max_keys:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"[ratelimit:{self.name}] LRU evicted key {evicted!r}")
            return entry

    def _peek(self, key: str) -> Optional[_Entry]:
        with self._lock:
            return self._entries.get(key)

    def _drop(self, reason: str) -> None:
        if self._metrics is not None:
            self._metrics.record_rate_limit_drop(self.name, reason)

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def allow(self, key: str) -> bool:
        """Consume one request for key. Empty keys are always allowed."""
        if not key:
            return True

        entry = self._get_or_create(key)
        with entry.lock:
            entry.last_seen = self._clock()

            if entry.daily is not None and not entry.daily.can_consume():
                self._drop("daily")
                logger.debug(f"[ratelimit:{self.name}] daily limit reached for {key!r}")
                return False

            if not entry.bucket.can_take():
                self._drop("burst")
                logger.debug(f"[ratelimit:{self.name}] burst exhausted for {key!r}")
                return False

            if entry.daily is not None:
                entry.daily.consume()
            entry.bucket.take()
            return True

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def get_available(self, key: str) -> float:
        """Burst tokens currently available (full burst for unknown keys)."""
        entry = self._peek(key) if key else None
        if entry is None:
            return float(self.config.burst)
        with entry.lock:
            return entry.bucket.available()

    def get_daily_remaining(self, key: str) -> int:
        """Remaining daily requests; DAILY_DISABLED (-1) when the layer is off."""
        if not self.config.daily_enabled:
            return DAILY_DISABLED
        entry = self._peek(key) if key else None
        if entry is None or entry.daily is None:
            return self.config.daily_limit
        with entry.lock:
            return entry.daily.remaining()

    def get_usage_stats(self, key: str) -> UsageStats:
        daily_max = self.config.daily_limit if self.config.daily_enabled else DAILY_DISABLED
        return UsageStats(
            burst_available=self.get_available(key),
            burst_max=float(self.config.burst),
            burst_refill_rate=self.config.refill_rate,
            daily_remaining=self.get_daily_remaining(key),
            daily_max=daily_max,
            daily_resets_at=self._daily_resets_at(key),
        )

    def _daily_resets_at(self, key: str) -> Optional[datetime]:
        """Reset time of the key's daily window (None until the key has one)."""
        entry = self._peek(key) if key else None
        if entry is None or entry.daily is None:
            return None
        with entry.lock:
            return entry.daily.resets_at()

    def active_keys(self) -> int:
        with self._lock:
            return len(self._entries)

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    def cleanup(self) -> int:
        """Evict idle entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            candidates = list(self._entries.items())

        stale = []
        for key, entry in candidates:
            with entry.lock:
                if now - entry.last_seen < self.config.idle_ttl:
                    continue
                if not entry.bucket.is_full():
                    continue
                # evicting would hand the key a fresh daily quota
                if entry.daily is not None and entry.daily.used() > 0:
                    continue
                stale.append(key)

        removed = 0
        with self._lock:
            for key in stale:
                entry = self._entries.get(key)
                # skip entries touched since the scan
                if entry is not None and now - entry.last_seen >= self.config.idle_ttl:
                    del self._entries[key]
                    removed += 1
            remaining = len(self._entries)

        if removed:
            logger.debug(f"[ratelimit:{self.name}] cleanup removed {removed}, {remaining} active")
        return removed

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_period)
            try:
                self.cleanup()
            except Exception as exc:
                logger.exception(f"[ratelimit:{self.name}] cleanup failed: {exc}")

    def start(self) -> None:
        """Start the background cleanup task on the running loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        logger.info(
            f"[ratelimit:{self.name}] started (burst={self.config.burst}, "
            f"refill={self.config.refill_rate:.4f}/s, daily={self.config.daily_limit or 'off'})"
        )

    async def stop(self) -> None:
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = ["KeyedConfig", "KeyedLimiter", "UsageStats", "DAILY_DISABLED"]
