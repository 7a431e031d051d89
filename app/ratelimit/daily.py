# FILE: app/ratelimit/daily.py
"""
Fixed-day request counter for the daily layer of the keyed limiter.

The window is the local calendar day in Asia/Taipei: the counter resets the
first time it is touched after local midnight. A limit of 0 (or less)
means the counter is disabled; KeyedLimiter simply does not create one.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

TAIPEI = ZoneInfo("Asia/Taipei")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyCounter:
    """Counts requests per local calendar day."""

    def __init__(
        self,
        limit: int,
        tz: ZoneInfo = TAIPEI,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if limit <= 0:
            raise ValueError(f"daily limit must be positive, got {limit}")
        self.limit = int(limit)
        self._tz = tz
        self._clock = clock
        self._window: date = self._today()
        self._used = 0

    def _today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def _roll(self) -> None:
        today = self._today()
        if today != self._window:
            self._window = today
            self._used = 0

    def can_consume(self) -> bool:
        self._roll()
        return self._used < self.limit

    def consume(self) -> None:
        self._roll()
        self._used = min(self.limit, self._used + 1)

    def remaining(self) -> int:
        self._roll()
        return max(0, self.limit - self._used)

    def used(self) -> int:
        self._roll()
        return self._used

    def resets_at(self) -> datetime:
        """Next local midnight, as an aware datetime."""
        now_local = self._clock().astimezone(self._tz)
        tomorrow = date.fromordinal(now_local.date().toordinal() + 1)
        return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=self._tz)


__all__ = ["DailyCounter", "TAIPEI"]
