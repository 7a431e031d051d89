# FILE: app/ratelimit/__init__.py
"""
Two-tier keyed rate limiting: token bucket (burst) + optional daily cap.
"""

from app.ratelimit.bucket import TokenBucket
from app.ratelimit.daily import DailyCounter, TAIPEI
from app.ratelimit.keyed import DAILY_DISABLED, KeyedConfig, KeyedLimiter, UsageStats
from app.ratelimit.limiters import (
    LLM_LIMITER_NAME,
    USER_LIMITER_NAME,
    new_llm_limiter,
    new_user_limiter,
)

__all__ = [
    "TokenBucket",
    "DailyCounter",
    "TAIPEI",
    "DAILY_DISABLED",
    "KeyedConfig",
    "KeyedLimiter",
    "UsageStats",
    "LLM_LIMITER_NAME",
    "USER_LIMITER_NAME",
    "new_llm_limiter",
    "new_user_limiter",
]
