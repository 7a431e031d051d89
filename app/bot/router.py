# FILE: app/bot/router.py
"""
Pattern-Action Router base class.

Every bot module subclasses PatternRouter and returns its matchers from
build_matchers(). The list is sorted by priority ONCE at construction and
stored as a tuple; can_handle() and handle_message() both read it through
find_matcher(), so "can handle" and "handled" can never disagree.

Contract:
    can_handle(text) is True  =>  handle_message(ctx, text) returns >= 1 message

A handler that returns nothing or raises is replaced by a generic apology
and logged at ERROR level.

Patterns are matched from the start of the trimmed text. Postbacks naming
this module (the "<name>:" prefix or a JSON "m" field) are decoded by
app.bot.postback and handed to handle_postback_action().
"""
from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Match, Optional, Pattern, Sequence, Tuple

from app.bot.context import RequestContext
from app.bot.errors import MissingParameterError, UnknownIntentError
from app.bot.keywords import match_keyword
from app.bot.messages import Message
from app.bot.postback import Postback, decode_postback, postback_module
from app.bot.replies import DEFAULT_SENDER, contract_violation_reply

logger = logging.getLogger(__name__)

MatchHandler = Callable[[RequestContext, str, Match], Awaitable[List[Message]]]


@dataclass(frozen=True)
class PatternMatcher:
    """(priority, compiled pattern, handler, name). Lower priority runs first."""
    pattern: Pattern[str]
    priority: int
    handler: MatchHandler
    name: str


class PatternRouter(ABC):
    """Base for keyword-routed bot modules."""

    name: str = ""
    sender_name: str = DEFAULT_SENDER
    # Legacy postbacks for this module must carry "$data"
    postback_requires_data: bool = True

    def __init__(self):
        if not self.name:
            raise ValueError(f"{type(self).__name__} must define a name")
        # sorted() is stable: equal priorities keep declaration order
        self._matchers: Tuple[PatternMatcher, ...] = tuple(
            sorted(self.build_matchers(), key=lambda m: m.priority)
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} matchers={len(self._matchers)}>"

    @abstractmethod
    def build_matchers(self) -> Sequence[PatternMatcher]:
        """Return this module's matchers (any order)."""

    @property
    def matchers(self) -> Tuple[PatternMatcher, ...]:
        return self._matchers

    # =========================================================================
    # TEXT ROUTING
    # =========================================================================

    def find_matcher(self, text: str) -> Optional[Tuple[PatternMatcher, Match]]:
        text = (text or "").strip()
        if not text:
            return None
        for matcher in self._matchers:
            match = match_keyword(matcher.pattern, text)
            if match:
                return matcher, match
        return None

    def can_handle(self, text: str) -> bool:
        return self.find_matcher(text) is not None

    async def handle_message(self, ctx: RequestContext, text: str) -> List[Message]:
        found = self.find_matcher(text)
        if found is None:
            return []
        matcher, match = found
        text = text.strip()
        logger.debug(f"[{self.name}] matched {matcher.name} (priority {matcher.priority})")

        try:
            messages = await matcher.handler(ctx, text, match)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[{self.name}] handler {matcher.name} failed")
            return contract_violation_reply(self.sender_name)

        if not messages:
            logger.error(
                f"[{self.name}] handler {matcher.name} returned no messages for a matched input"
            )
            return contract_violation_reply(self.sender_name)
        return list(messages)

    # =========================================================================
    # POSTBACKS
    # =========================================================================

    def can_handle_postback(self, data: str) -> bool:
        return postback_module(data) == self.name

    async def handle_postback(self, ctx: RequestContext, data: str) -> List[Message]:
        """Decode and route a postback. An empty list means "no reply"."""
        postback = decode_postback(data, require_data=self.postback_requires_data)
        if postback is None:
            return []
        if postback.module != self.name:
            logger.warning(f"[{self.name}] postback for another module: {postback.module!r}")
            return []

        try:
            messages = await self.handle_postback_action(ctx, postback)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[{self.name}] postback action {postback.action!r} failed")
            return contract_violation_reply(self.sender_name)
        return list(messages or [])

    async def handle_postback_action(
        self, ctx: RequestContext, postback: Postback
    ) -> Optional[List[Message]]:
        logger.warning(f"[{self.name}] unsupported postback action: {postback.action!r}")
        return None

    # =========================================================================
    # NLU DISPATCH
    # =========================================================================

    async def dispatch_intent(
        self, ctx: RequestContext, intent: str, params: Dict[str, str]
    ) -> List[Message]:
        raise UnknownIntentError(self.name, intent)

    @staticmethod
    def require_param(params: Dict[str, str], name: str) -> str:
        value = (params or {}).get(name, "")
        value = value.strip() if isinstance(value, str) else ""
        if not value:
            raise MissingParameterError(name)
        return value


def regex_matcher(
    regex: str, priority: int, handler: MatchHandler, name: str, flags: int = 0
) -> PatternMatcher:
    return PatternMatcher(
        pattern=re.compile(regex, flags), priority=priority, handler=handler, name=name
    )


__all__ = [
    "MatchHandler",
    "PatternMatcher",
    "PatternRouter",
    "regex_matcher",
]
