# FILE: app/modules/usage.py
"""
Usage / quota module (額度小幫手).

Reports the caller's standing in both limiters: the webhook ("user")
bucket and the LLM bucket plus its daily cap.

Matchers:
    1  額度說明         how the quotas work
    2  usage keywords   用量 / 配額 / 額度 / quota / usage ...

Intents: query()
Postbacks: usage:query, usage:explain (no data segment)
"""
from __future__ import annotations

import logging
import math
import re
from typing import Dict, List, Match, Optional

from app.bot.context import RequestContext
from app.bot.keywords import build_keyword_regex
from app.bot.messages import Message, QuickReplyItem, qr_help, text_message
from app.bot.postback import Postback, encode_postback
from app.bot.router import PatternMatcher, PatternRouter
from app.ratelimit.daily import TAIPEI
from app.ratelimit.keyed import KeyedLimiter, UsageStats

logger = logging.getLogger(__name__)

MODULE_NAME = "usage"
SENDER_NAME = "額度小幫手"

PRIORITY_EXPLAIN = 1
PRIORITY_QUERY = 2

USAGE_KEYWORDS = ["用量", "配額", "額度", "扣打", "quota", "usage", "limit"]

EXPLAIN_REGEX = re.compile(r"^額度說明$")
USAGE_REGEX = build_keyword_regex(USAGE_KEYWORDS)

INTENT_QUERY = "query"
ACTION_EXPLAIN = "explain"


def _bar(available: float, maximum: float, width: int = 10) -> str:
    if maximum <= 0:
        return ""
    filled = max(0, min(width, int(round(width * available / maximum))))
    return "▰" * filled + "▱" * (width - filled)


def _format_bucket(label: str, stats: UsageStats) -> List[str]:
    available = int(math.floor(stats.burst_available))
    maximum = int(stats.burst_max)
    lines = [f"{label}", f"  {_bar(stats.burst_available, stats.burst_max)} {available}/{maximum}"]
    if stats.burst_refill_rate > 0:
        per_hour = stats.burst_refill_rate * 3600
        lines.append(f"  每小時恢復約 {per_hour:g} 次")
    return lines


def format_usage(user_stats: Optional[UsageStats], llm_stats: Optional[UsageStats]) -> str:
    parts = ["📊 使用額度"]
    if user_stats is not None:
        parts.append("\n".join(_format_bucket("💬 訊息額度", user_stats)))
    if llm_stats is not None:
        lines = _format_bucket("🤖 AI 查詢額度", llm_stats)
        if llm_stats.daily_enabled:
            lines.append(f"  今日剩餘 {llm_stats.daily_remaining}/{llm_stats.daily_max}")
            if llm_stats.daily_resets_at is not None:
                reset = llm_stats.daily_resets_at.astimezone(TAIPEI)
                lines.append(f"  將於 {reset:%m/%d %H:%M} 重置")
        parts.append("\n".join(lines))
    if len(parts) == 1:
        parts.append("目前未啟用額度限制")
    return "\n\n".join(parts)


EXPLAIN_TEXT = (
    "📖 額度說明\n\n"
    "💬 訊息額度\n"
    "每位使用者可連續傳送一定數量的訊息，用完後會隨時間慢慢恢復。\n\n"
    "🤖 AI 查詢額度\n"
    "自然語言查詢與智慧搜尋會使用 AI 額度，除了短時間的連續上限外，每日另有總量限制，"
    "於每天午夜（台灣時間）重置。\n\n"
    "💡 使用關鍵字查詢（如「課程 微積分」）不會消耗 AI 額度"
)


class UsageModule(PatternRouter):
    name = MODULE_NAME
    sender_name = SENDER_NAME
    postback_requires_data = False

    def __init__(
        self,
        user_limiter: Optional[KeyedLimiter] = None,
        llm_limiter: Optional[KeyedLimiter] = None,
    ):
        self.user_limiter = user_limiter
        self.llm_limiter = llm_limiter
        super().__init__()

    def build_matchers(self) -> List[PatternMatcher]:
        return [
            PatternMatcher(EXPLAIN_REGEX, PRIORITY_EXPLAIN, self._on_explain, "Explain"),
            PatternMatcher(USAGE_REGEX, PRIORITY_QUERY, self._on_query, "Query"),
        ]

    async def _on_explain(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.explain()

    async def _on_query(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.query(ctx)

    def query(self, ctx: RequestContext) -> List[Message]:
        key = ctx.chat_id
        user_stats = self.user_limiter.get_usage_stats(key) if self.user_limiter else None
        llm_stats = self.llm_limiter.get_usage_stats(key) if self.llm_limiter else None
        logger.debug(f"[usage] stats for {key}: user={user_stats} llm={llm_stats}")
        explain = QuickReplyItem("📖 額度說明", text="額度說明", data=encode_postback(MODULE_NAME, ACTION_EXPLAIN))
        return [self._reply(format_usage(user_stats, llm_stats), [explain])]

    def explain(self) -> List[Message]:
        refresh = QuickReplyItem("📊 查詢額度", text="額度", data=encode_postback(MODULE_NAME, INTENT_QUERY))
        return [self._reply(EXPLAIN_TEXT, [refresh])]

    async def dispatch_intent(self, ctx: RequestContext, intent: str, params: Dict[str, str]) -> List[Message]:
        if intent == INTENT_QUERY:
            return self.query(ctx)
        return await super().dispatch_intent(ctx, intent, params)

    async def handle_postback_action(self, ctx: RequestContext, postback: Postback) -> Optional[List[Message]]:
        if postback.action == INTENT_QUERY:
            return self.query(ctx)
        if postback.action == ACTION_EXPLAIN:
            return self.explain()
        return await super().handle_postback_action(ctx, postback)

    def _reply(self, text: str, items: Optional[List[QuickReplyItem]] = None) -> Message:
        return text_message(text, self.sender_name, (items or []) + [qr_help()])


__all__ = ["MODULE_NAME", "USAGE_KEYWORDS", "format_usage", "UsageModule"]
