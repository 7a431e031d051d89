# FILE: app/ratelimit/limiters.py
"""
Factories for the two process-wide limiters.

- user: webhook admission, burst + refill, no daily cap
- llm:  LLM admission, burst = LLM_BURST_TOKENS, refill = LLM_REFILL_PER_HOUR / 3600,
        daily cap = LLM_DAILY_LIMIT

Both are keyed by chat id and are fully independent of each other.
"""
from typing import Optional

from config.settings import Settings
from app.metrics.tracker import BotMetrics
from app.ratelimit.keyed import KeyedConfig, KeyedLimiter

USER_LIMITER_NAME = "user"
LLM_LIMITER_NAME = "llm"


def new_user_limiter(settings: Settings, metrics: Optional[BotMetrics] = None) -> KeyedLimiter:
    config = KeyedConfig(
        name=USER_LIMITER_NAME,
        burst=settings.user_rate_burst,
        refill_rate=settings.user_rate_refill,
        daily_limit=0,
        idle_ttl=settings.rate_limit_idle_ttl,
        max_keys=settings.rate_limit_max_keys,
    )
    return KeyedLimiter(config, metrics=metrics)


def new_llm_limiter(settings: Settings, metrics: Optional[BotMetrics] = None) -> KeyedLimiter:
    config = KeyedConfig(
        name=LLM_LIMITER_NAME,
        burst=settings.llm_burst_tokens,
        refill_rate=settings.llm_refill_per_hour / 3600.0,
        daily_limit=max(0, settings.llm_daily_limit),
        idle_ttl=settings.rate_limit_idle_ttl,
        max_keys=settings.rate_limit_max_keys,
    )
    return KeyedLimiter(config, metrics=metrics)


__all__ = ["new_user_limiter", "new_llm_limiter", "USER_LIMITER_NAME", "LLM_LIMITER_NAME"]
