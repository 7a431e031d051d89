# FILE: app/metrics/tracker.py
"""
Bot Metrics Tracker

In-process counters for the routing core. Every degraded reply, limiter
drop, LLM call and provider failover increments a labelled counter so the
numbers can be scraped from GET /metrics or inspected in tests.

Usage:
    metrics = BotMetrics()
    metrics.record_rate_limit_drop("llm", "daily")
    metrics.record_llm_fallback("gemini", "groq", "nlu")
    metrics.get("llm_fallback_total", from_provider="gemini", to_provider="groq", operation="nlu")

Counters are keyed by (name, sorted label items). Thread-safe: the webhook
runs in the event loop but limiter cleanup may run elsewhere.
"""

import os
import logging
import threading
from collections import defaultdict
from typing import Dict, Tuple, Any

logger = logging.getLogger(__name__)

# Log every counter increment at DEBUG (noisy, off by default)
METRICS_DEBUG = os.getenv("METRICS_DEBUG", "0") == "1"

_LabelKey = Tuple[Tuple[str, str], ...]


class BotMetrics:
    """Labelled counters for routing, rate limiting and LLM calls."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, Dict[_LabelKey, int]] = defaultdict(lambda: defaultdict(int))

    def inc(self, name: str, **labels: str) -> None:
        key: _LabelKey = tuple(sorted((k, str(v)) for k, v in labels.items()))
        with self._lock:
            self._counters[name][key] += 1
        if METRICS_DEBUG:
            logger.debug(f"[metrics] {name} {dict(key)} +1")

    def get(self, name: str, **labels: str) -> int:
        """Current value of one counter series (0 if never incremented)."""
        key: _LabelKey = tuple(sorted((k, str(v)) for k, v in labels.items()))
        with self._lock:
            series = self._counters.get(name)
            if not series:
                return 0
            return series.get(key, 0)

    def total(self, name: str) -> int:
        """Sum of a counter across all label combinations."""
        with self._lock:
            return sum(self._counters.get(name, {}).values())

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view for JSON export."""
        with self._lock:
            return {
                name: [
                    {"labels": dict(key), "value": value}
                    for key, value in sorted(series.items())
                ]
                for name, series in sorted(self._counters.items())
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()

    # =========================================================================
    # RATE LIMITING
    # =========================================================================

    def record_rate_limit_drop(self, limiter: str, reason: str) -> None:
        """reason: "burst" or "daily"."""
        self.inc("rate_limit_dropped_total", limiter=limiter, reason=reason)

    def record_throttled_reply(self, limiter: str) -> None:
        self.inc("throttled_replies_total", limiter=limiter)

    # =========================================================================
    # LLM
    # =========================================================================

    def record_llm_request(self, provider: str, operation: str, status: str) -> None:
        self.inc("llm_requests_total", provider=provider, operation=operation, status=status)

    def record_llm_error(self, provider: str, operation: str, error_type: str) -> None:
        self.inc("llm_errors_total", provider=provider, operation=operation, error_type=error_type)

    def record_llm_fallback(self, from_provider: str, to_provider: str, operation: str) -> None:
        self.inc(
            "llm_fallback_total",
            from_provider=from_provider,
            to_provider=to_provider,
            operation=operation,
        )

    # =========================================================================
    # ROUTING / REPLIES
    # =========================================================================

    def record_route(self, route: str) -> None:
        """route: keyword, nlu, postback, throttled."""
        self.inc("routes_total", route=route)

    def record_handler(self, module: str, status: str) -> None:
        self.inc("handler_calls_total", module=module, status=status)

    def record_degraded_reply(self, reason: str) -> None:
        self.inc("degraded_replies_total", reason=reason)


__all__ = ["BotMetrics"]
