# FILE: app/llm/fallbacks.py
"""
Provider Fallback Orchestrator.

Composes a primary and an optional secondary ProviderAdapter for the two
LLM operations of the bot.

FALLBACK SCENARIOS:

1. Primary exhausts its model chain on TRANSIENT errors (429/5xx/timeouts):
   - Switch to the secondary provider
   - Record a FailoverEvent (from -> to, operation)

2. Primary is no longer serving (auth failure, exhausted quota):
   - Same as (1): the key is useless, not the request

3. Primary fails PERMANENT for the request itself (bad request, schema
   violation) or the call was CANCELED:
   - No fallback; the error is raised

4. Both providers fail:
   - Intent parsing raises the PRIMARY's terminal error
   - Query expansion returns the original query unchanged

Usage:
    from app.llm.fallbacks import FallbackIntentParser, FallbackQueryExpander

    parser = FallbackIntentParser(primary, fallback, metrics)
    result = await parser.parse("我想找微積分的課", deadline=ctx.deadline)

    expander = FallbackQueryExpander(primary, fallback, metrics)
    expanded = await expander.expand("AWS")   # "AWS" if everything fails
"""

import asyncio
import logging
import os
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar

from app.llm.errors import (
    ErrorClass,
    FallbackAction,
    ProviderError,
    error_type_label,
    fallback_action,
)
from app.metrics.tracker import BotMetrics
from app.providers.base import ProviderAdapter
from app.translation.expander import should_expand
from app.translation.intent_parser import describe
from app.translation.schemas import OperationKind, ParseResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# CONFIGURATION
# =============================================================================

# Number of failover events kept for inspection
FAILOVER_HISTORY_SIZE = int(os.getenv("LLM_FAILOVER_HISTORY", "50"))


# =============================================================================
# FAILOVER EVENTS
# =============================================================================

@dataclass
class FailoverEvent:
    """Record of one provider switch."""
    from_provider: str
    to_provider: str
    operation: str  # "intent" | "expander"
    error_type: str
    error_message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "from_provider": self.from_provider,
            "to_provider": self.to_provider,
            "operation": self.operation,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }


def should_failover(exc: ProviderError) -> bool:
    """TRANSIENT exhaustion or a provider that can no longer serve."""
    if exc.error_class == ErrorClass.CANCELED:
        return False
    action = fallback_action(exc)
    return action in (FallbackAction.RETRY, FallbackAction.FALLBACK)


# =============================================================================
# BASE ORCHESTRATOR
# =============================================================================

class _FallbackBase:
    def __init__(
        self,
        primary: Optional[ProviderAdapter],
        fallback: Optional[ProviderAdapter] = None,
        metrics: Optional[BotMetrics] = None,
    ):
        # A lone fallback is promoted so "secondary only" configs still work
        if primary is None and fallback is not None:
            primary, fallback = fallback, None
        self.primary = primary
        self.fallback = fallback
        self._metrics = metrics
        self._events: Deque[FailoverEvent] = deque(maxlen=FAILOVER_HISTORY_SIZE)

    def is_enabled(self) -> bool:
        return self.primary is not None

    def providers(self) -> List[str]:
        return [a.provider_id for a in (self.primary, self.fallback) if a is not None]

    def recent_events(self) -> List[FailoverEvent]:
        return list(self._events)

    def _record_failover(self, exc: ProviderError, operation: OperationKind) -> None:
        assert self.primary is not None and self.fallback is not None
        event = FailoverEvent(
            from_provider=self.primary.provider_id,
            to_provider=self.fallback.provider_id,
            operation=operation.value,
            error_type=error_type_label(exc),
            error_message=str(exc),
        )
        self._events.append(event)
        if self._metrics is not None:
            self._metrics.record_llm_fallback(event.from_provider, event.to_provider, operation.metric_label)
        logger.info(
            f"[fallback] {event.operation}: {event.from_provider} -> {event.to_provider} "
            f"({event.error_type}: {exc})"
        )

    async def _execute(
        self,
        operation: OperationKind,
        call: Callable[[ProviderAdapter], Awaitable[T]],
    ) -> T:
        if self.primary is None:
            raise ProviderError("no LLM provider configured", error_class=ErrorClass.PERMANENT)

        try:
            return await call(self.primary)
        except ProviderError as exc:
            primary_error = exc

        if self.fallback is None or not should_failover(primary_error):
            raise primary_error

        self._record_failover(primary_error, operation)
        try:
            return await call(self.fallback)
        except ProviderError as exc:
            logger.warning(
                f"[fallback] {operation.metric_label}: all providers failed "
                f"(primary: {primary_error}; fallback: {exc})"
            )
            raise primary_error from exc


# =============================================================================
# INTENT PARSER
# =============================================================================

class FallbackIntentParser(_FallbackBase):
    """Forced function-calling NLU with cross-provider failover."""

    async def parse(self, text: str, deadline: Optional[float] = None) -> ParseResult:
        result = await self._execute(
            OperationKind.INTENT,
            lambda adapter: adapter.parse_intent(text, deadline=deadline),
        )
        logger.info(f"[fallback] nlu parsed: {describe(result)}")
        return result


# =============================================================================
# QUERY EXPANDER
# =============================================================================

class FallbackQueryExpander(_FallbackBase):
    """Advisory query expansion: never raises for provider failures."""

    async def expand(self, query: str, deadline: Optional[float] = None) -> str:
        if not self.is_enabled() or not should_expand(query):
            return query
        try:
            return await self._execute(
                OperationKind.EXPANDER,
                lambda adapter: adapter.expand_query(query, deadline=deadline),
            )
        except asyncio.CancelledError:
            raise
        except ProviderError as exc:
            logger.warning(f"[fallback] expansion failed, using original query: {exc}")
            return query


__all__ = [
    "FAILOVER_HISTORY_SIZE",
    "FailoverEvent",
    "should_failover",
    "FallbackIntentParser",
    "FallbackQueryExpander",
]
