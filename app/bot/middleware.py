# FILE: app/bot/middleware.py
"""
Handler middlewares applied by HandlerRegistry.dispatch_message().

A middleware receives (ctx, router, text, call_next) and must return the
messages produced by call_next (or a substitute). They run in the order
they were registered; the last one calls router.handle_message().
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from app.bot.context import RequestContext
from app.bot.messages import Message
from app.bot.replies import contract_violation_reply
from app.metrics.tracker import BotMetrics

if TYPE_CHECKING:
    from app.bot.router import PatternRouter

logger = logging.getLogger(__name__)

NextHandler = Callable[[RequestContext, "PatternRouter", str], Awaitable[List[Message]]]
Middleware = Callable[[RequestContext, "PatternRouter", str, NextHandler], Awaitable[List[Message]]]


def logging_middleware(log: Optional[logging.Logger] = None) -> Middleware:
    log = log or logger

    async def middleware(ctx, router, text, call_next):
        started = time.monotonic()
        log.debug(f"[handler] {router.name} started (text_length={len(text)})")
        messages = await call_next(ctx, router, text)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        log.debug(f"[handler] {router.name} completed in {elapsed_ms}ms ({len(messages)} messages)")
        return messages

    return middleware


def metrics_middleware(metrics: Optional[BotMetrics]) -> Middleware:
    async def middleware(ctx, router, text, call_next):
        try:
            messages = await call_next(ctx, router, text)
        except asyncio.CancelledError:
            raise
        except Exception:
            if metrics is not None:
                metrics.record_handler(router.name, "error")
            raise
        if metrics is not None:
            metrics.record_handler(router.name, "success" if messages else "empty")
        return messages

    return middleware


def recovery_middleware(log: Optional[logging.Logger] = None) -> Middleware:
    log = log or logger

    async def middleware(ctx, router, text, call_next):
        try:
            return await call_next(ctx, router, text)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception(f"[handler] {router.name} crashed")
            return contract_violation_reply(router.sender_name)

    return middleware


__all__ = [
    "Middleware",
    "NextHandler",
    "logging_middleware",
    "metrics_middleware",
    "recovery_middleware",
]
