# FILE: app/bot/registry.py
"""
Handler registry: ordered module list plus middleware chain.

Registration order is the routing order; the first module whose
can_handle() is True wins. Postbacks go to the module named by the payload, either the
"<name>:" prefix or the "m" field of a JSON payload.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from app.bot.context import RequestContext
from app.bot.messages import Message
from app.bot.middleware import Middleware, NextHandler
from app.bot.router import PatternRouter

logger = logging.getLogger(__name__)


class HandlerRegistry:
    def __init__(self):
        self._handlers: List[PatternRouter] = []
        self._by_name: Dict[str, PatternRouter] = {}
        self._middlewares: List[Middleware] = []

    def register(self, handler: PatternRouter) -> None:
        if handler.name in self._by_name:
            raise ValueError(f"handler already registered: {handler.name}")
        self._handlers.append(handler)
        self._by_name[handler.name] = handler
        logger.debug(f"[registry] registered {handler!r}")

    def use(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)

    def get_handler(self, name: str) -> Optional[PatternRouter]:
        return self._by_name.get(name)

    def handlers(self) -> List[PatternRouter]:
        return list(self._handlers)

    def names(self) -> List[str]:
        return [h.name for h in self._handlers]

    def find_handler(self, text: str) -> Optional[PatternRouter]:
        for handler in self._handlers:
            if handler.can_handle(text):
                return handler
        return None

    async def dispatch_message(self, ctx: RequestContext, text: str) -> Optional[List[Message]]:
        """Messages from the first matching module, or None if every module declined."""
        handler = self.find_handler(text)
        if handler is None:
            return None
        logger.debug(f"[registry] {text[:40]!r} -> {handler.name}")
        return await self._build_chain()(ctx, handler, text)

    async def dispatch_postback(self, ctx: RequestContext, data: str) -> Optional[List[Message]]:
        """Messages from the module owning the prefix, or None if no module owns it."""
        for handler in self._handlers:
            if handler.can_handle_postback(data):
                return await handler.handle_postback(ctx, data)
        return None

    def _build_chain(self) -> NextHandler:
        async def final(ctx: RequestContext, handler: PatternRouter, text: str) -> List[Message]:
            return await handler.handle_message(ctx, text)

        chain: NextHandler = final
        for middleware in reversed(self._middlewares):
            chain = _wrap(middleware, chain)
        return chain


def _wrap(middleware: Middleware, call_next: NextHandler) -> NextHandler:
    async def wrapped(ctx: RequestContext, handler: PatternRouter, text: str) -> List[Message]:
        return await middleware(ctx, handler, text, call_next)

    return wrapped


__all__ = ["HandlerRegistry"]
