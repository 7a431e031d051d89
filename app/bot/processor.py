# FILE: app/bot/processor.py
"""
Message processor: the top-level pipeline for inbound chat events.

Text flow:

    received -> user admission (webhook limiter)
        deny  -> throttle reply
        allow -> help keywords -> keyword routing (registry, registration order)
                 match -> module reply
                 miss  -> group w/o @mention -> no reply
                          NLU off?          -> keyword help
                          LLM admission     -> deny: AI quota reply
                          intent parser     -> fail: help (nlu_failed)
                          dispatch intent   -> module reply / help (dispatch)

Postback flow: admission -> size check -> help -> prefix dispatch.

Raw errors never reach users. Every degraded reply increments
degraded_replies_total{reason}.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from app.bot.context import LLM_ADMITTED_KEY, RequestContext
from app.bot.errors import InternalError, MissingParameterError, RateLimitedError, UnknownIntentError
from app.bot.mention import Mentionee, is_bot_mentioned, remove_bot_mentions
from app.bot.messages import MAX_TEXT_LENGTH, Message, quick_reply_compact, text_message
from app.bot.postback import MAX_POSTBACK_BYTES
from app.bot.registry import HandlerRegistry
from app.bot.replies import (
    DEFAULT_SENDER,
    FallbackContext,
    expired_postback_reply,
    help_message,
    instruction_messages,
    internal_error_reply,
    invalid_postback_reply,
    llm_quota_reply,
    text_too_long_reply,
    throttle_reply,
)
from app.llm.errors import ProviderError, error_type_label
from app.llm.fallbacks import FallbackIntentParser
from app.metrics.tracker import BotMetrics
from app.ratelimit.keyed import KeyedLimiter
from app.translation.schemas import ParseResult
from config.settings import Settings

logger = logging.getLogger(__name__)

HELP_KEYWORDS = ("使用說明", "help")


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def sanitize_text(text: str) -> str:
    """Trim, drop punctuation and symbols, collapse whitespace (ideographic space included)."""
    kept = "".join(ch for ch in (text or "") if ch.isalnum() or ch.isspace())
    return normalize_whitespace(kept)


def is_help_keyword(text: str) -> bool:
    folded = text.strip().casefold()
    return any(folded == k.casefold() for k in HELP_KEYWORDS)


class Processor:
    """Admission, routing, NLU fallback and intent dispatch for one event."""

    def __init__(
        self,
        registry: HandlerRegistry,
        user_limiter: Optional[KeyedLimiter] = None,
        llm_limiter: Optional[KeyedLimiter] = None,
        intent_parser: Optional[FallbackIntentParser] = None,
        metrics: Optional[BotMetrics] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.user_limiter = user_limiter
        self.llm_limiter = llm_limiter
        self.intent_parser = intent_parser
        self.metrics = metrics
        self.settings = settings

    def nlu_enabled(self) -> bool:
        if self.settings is not None and not self.settings.llm_enabled:
            return False
        return self.intent_parser is not None and self.intent_parser.is_enabled()

    # =========================================================================
    # TEXT MESSAGES
    # =========================================================================

    async def on_text(self, ctx: RequestContext, text: str,
                      mentionees: Sequence[Mentionee] = ()) -> List[Message]:
        try:
            self._admit(self.user_limiter, ctx)
        except RateLimitedError as exc:
            return self._throttled(exc.limiter, throttle_reply())

        if not text:
            return []
        if len(text) > MAX_TEXT_LENGTH:
            logger.warning(f"[processor] text exceeds {MAX_TEXT_LENGTH} chars ({len(text)})")
            self._degraded("text_too_long")
            return text_too_long_reply(MAX_TEXT_LENGTH)

        raw_text = text
        text = sanitize_text(text)
        if not text:
            return []

        if is_help_keyword(text):
            logger.info("[processor] help requested")
            self._route("help")
            return instruction_messages(self.nlu_enabled())

        messages = await self.registry.dispatch_message(ctx, text)
        if messages:
            self._route("keyword")
            return messages

        if ctx.is_group:
            if not is_bot_mentioned(mentionees):
                logger.debug(f"[processor] unmatched group message without @mention in {ctx.chat_id}; ignoring")
                return []
            text = sanitize_text(remove_bot_mentions(raw_text, mentionees))
            if not text:
                return help_message(FallbackContext.GENERIC, nlu_enabled=self.nlu_enabled())

        return await self._handle_unmatched(ctx, text)

    async def _handle_unmatched(self, ctx: RequestContext, text: str) -> List[Message]:
        if not self.nlu_enabled():
            self._degraded("nlu_disabled")
            return help_message(FallbackContext.NLU_DISABLED, nlu_enabled=False)

        try:
            self._admit(self.llm_limiter, ctx)
        except RateLimitedError as exc:
            return self._throttled(exc.limiter, llm_quota_reply())

        assert self.intent_parser is not None
        try:
            result = await self.intent_parser.parse(text, deadline=ctx.deadline)
        except asyncio.CancelledError:
            raise
        except ProviderError as exc:
            logger.warning(f"[processor] NLU intent parsing failed ({error_type_label(exc)}): {exc}")
            self._degraded("nlu_failed")
            return help_message(FallbackContext.NLU_FAILED, nlu_enabled=True)

        logger.info(
            f"[processor] NLU intent parsed: module={result.module} "
            f"intent={result.intent} params={result.params}"
        )
        self._route("nlu")
        return await self.dispatch_intent(ctx.with_values(**{LLM_ADMITTED_KEY: True}), result)

    async def dispatch_intent(self, ctx: RequestContext, result: ParseResult) -> List[Message]:
        """Route a ParseResult to help, a direct reply, or a module's dispatch_intent()."""
        if result.is_help:
            return instruction_messages(self.nlu_enabled())

        if result.is_direct_reply:
            message = (result.params.get("message") or "").strip()
            if not message:
                logger.warning("[processor] direct_reply missing message parameter")
                self._degraded("direct_reply_empty")
                return help_message(FallbackContext.GENERIC, nlu_enabled=self.nlu_enabled())
            return [text_message(message, DEFAULT_SENDER, quick_reply_compact())]

        handler = self.registry.get_handler(result.module)
        if handler is None:
            logger.warning(f"[processor] unknown module from NLU: {result.module!r}")
            self._degraded("unknown_module")
            return help_message(FallbackContext.UNKNOWN_MODULE, nlu_enabled=self.nlu_enabled())

        try:
            messages = await handler.dispatch_intent(ctx, result.intent, dict(result.params))
            if not messages:
                raise InternalError(f"{result.module}/{result.intent} returned no messages")
        except (MissingParameterError, UnknownIntentError) as exc:
            logger.warning(f"[processor] dispatch failed for {result.module}/{result.intent}: {exc}")
            self._handler_status(result.module, "error")
            self._degraded("dispatch_failed")
            return help_message(FallbackContext.DISPATCH_FAILED, nlu_enabled=self.nlu_enabled())
        except InternalError as exc:
            logger.error(f"[processor] {exc}")
            self._handler_status(result.module, "empty")
            self._degraded("dispatch_failed")
            return help_message(FallbackContext.DISPATCH_FAILED, nlu_enabled=self.nlu_enabled())
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[processor] {result.module}/{result.intent} crashed")
            self._handler_status(result.module, "error")
            self._degraded("handler_error")
            return internal_error_reply()

        self._handler_status(result.module, "success")
        return list(messages)

    # =========================================================================
    # POSTBACKS
    # =========================================================================

    async def on_postback(self, ctx: RequestContext, data: str) -> List[Message]:
        try:
            self._admit(self.user_limiter, ctx)
        except RateLimitedError as exc:
            return self._throttled(exc.limiter, throttle_reply())

        if not data or not data.strip():
            logger.debug("[processor] empty postback data")
            return []
        if len(data.encode("utf-8")) > MAX_POSTBACK_BYTES:
            logger.warning(f"[processor] postback exceeds {MAX_POSTBACK_BYTES} bytes")
            self._degraded("postback_too_long")
            return invalid_postback_reply()

        data = data.strip()
        if is_help_keyword(data):
            self._route("help")
            return instruction_messages(self.nlu_enabled())

        messages = await self.registry.dispatch_postback(ctx, data)
        if messages is None:
            logger.warning(f"[processor] no module owns postback {data[:60]!r}")
            self._degraded("postback_unknown")
            return expired_postback_reply()

        self._route("postback")
        return messages

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _admit(self, limiter: Optional[KeyedLimiter], ctx: RequestContext) -> None:
        """Take one token for ctx.chat_id or raise RateLimitedError."""
        if not ctx.chat_id or limiter is None:
            return
        if not limiter.allow(ctx.chat_id):
            logger.warning(f"[processor] {limiter.name} rate limit exceeded for {ctx.chat_id}")
            raise RateLimitedError(limiter.name, ctx.chat_id)

    def _throttled(self, limiter: str, reply: List[Message]) -> List[Message]:
        if self.metrics is not None:
            self.metrics.record_throttled_reply(limiter)
            self.metrics.record_route("throttled")
            self.metrics.record_degraded_reply(f"rate_limited_{limiter}")
        return reply

    def _route(self, route: str) -> None:
        if self.metrics is not None:
            self.metrics.record_route(route)

    def _degraded(self, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_degraded_reply(reason)

    def _handler_status(self, module: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_handler(module, status)


__all__ = ["Processor", "HELP_KEYWORDS", "sanitize_text", "normalize_whitespace", "is_help_keyword"]
