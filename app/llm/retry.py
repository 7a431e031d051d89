# FILE: app/llm/retry.py
"""
Full-jitter retry for LLM calls.

    delay(n) = uniform(0, min(cap, base * 2**n))      # n = 0-indexed attempt

Only TRANSIENT errors are retried. PERMANENT and CANCELED abort at once.
After the last attempt the most recent error is raised with its class intact.

Deadlines are absolute time.monotonic() values threaded down from the
dispatcher. No attempt starts when less than `min_budget` seconds remain,
and no sleep is allowed to run past the deadline.

asyncio.CancelledError is never caught here: cancellation propagates.
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from config.settings import Settings
from app.llm.errors import ErrorClass, ProviderError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_system_random = random.Random()


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    cap_delay: float = 10.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.cap_delay < 0:
            raise ValueError("delays must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            cap_delay=settings.retry_cap_delay,
        )


def calculate_backoff(
    attempt: int,
    base: float,
    cap: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Full-jitter delay for 0-indexed attempt n: uniform in [0, min(cap, base * 2**n))."""
    if attempt < 0 or base <= 0 or cap <= 0:
        return 0.0
    # clamp the exponent so huge attempt numbers cannot overflow
    ceiling = min(cap, base * (2 ** min(attempt, 62)))
    r = (rng or _system_random).random()
    return r * ceiling


def remaining_budget(deadline: Optional[float], now: Optional[float] = None) -> Optional[float]:
    """Seconds left before deadline (None when there is no deadline)."""
    if deadline is None:
        return None
    current = time.monotonic() if now is None else now
    return deadline - current


def has_sufficient_budget(deadline: Optional[float], required: float) -> bool:
    """True if there is no deadline or at least `required` seconds remain."""
    left = remaining_budget(deadline)
    if left is None:
        return True
    return left >= required


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    deadline: Optional[float] = None,
    min_budget: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    label: str = "",
) -> T:
    """
    Run operation with classified full-jitter retry.

    Raises:
        ProviderError: the last failure, with .attempts set. Budget refusal
            is reported as CANCELED.
    """
    last: Optional[ProviderError] = None

    for attempt in range(policy.max_attempts):
        if not has_sufficient_budget(deadline, min_budget):
            err = ProviderError(
                "insufficient time budget for another attempt",
                error_class=ErrorClass.CANCELED,
            )
            err.attempts = attempt
            if last is not None:
                logger.warning(f"[retry] {label} out of time after {attempt} attempt(s); last error: {last}")
                last.attempts = attempt
                raise last
            raise err

        try:
            return await operation()
        except ProviderError as exc:
            err = exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            err = ProviderError.from_exception(exc)

        err.attempts = attempt + 1
        last = err
        if not is_retryable(err):
            logger.debug(f"[retry] {label} {err.error_class.value} error, not retrying: {err}")
            raise err

        if attempt + 1 >= policy.max_attempts:
            break

        delay = calculate_backoff(attempt, policy.base_delay, policy.cap_delay, rng)
        if err.retry_after > delay:
            delay = min(err.retry_after, policy.cap_delay)

        left = remaining_budget(deadline)
        if left is not None and left - delay < min_budget:
            logger.warning(f"[retry] {label} backoff {delay:.2f}s would overrun deadline; giving up")
            raise err

        logger.warning(
            f"[retry] {label} attempt {attempt + 1}/{policy.max_attempts} failed ({err}); "
            f"retrying in {delay:.2f}s"
        )
        await sleep(delay)

    assert last is not None
    raise last


__all__ = [
    "RetryPolicy",
    "calculate_backoff",
    "remaining_budget",
    "has_sufficient_budget",
    "with_retry",
]
