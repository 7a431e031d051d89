# FILE: app/bot/__init__.py
"""
Bot core: keyword routing, postbacks, dispatch pipeline.
"""

from app.bot.context import CHAT_ID_KEY, LLM_ADMITTED_KEY, RequestContext
from app.bot.errors import (
    BotError,
    InternalError,
    MissingParameterError,
    RateLimitedError,
    UnknownIntentError,
)
from app.bot.keywords import build_keyword_regex, extract_search_term, match_keyword
from app.bot.mention import Mentionee, is_bot_mentioned, remove_bot_mentions
from app.bot.messages import Message, QuickReplyItem, Sender, TextMessage, text_message
from app.bot.postback import Postback, decode_postback, encode_postback
from app.bot.registry import HandlerRegistry
from app.bot.router import PatternMatcher, PatternRouter

__all__ = [
    "CHAT_ID_KEY",
    "LLM_ADMITTED_KEY",
    "RequestContext",
    "BotError",
    "InternalError",
    "MissingParameterError",
    "RateLimitedError",
    "UnknownIntentError",
    "build_keyword_regex",
    "extract_search_term",
    "match_keyword",
    "Mentionee",
    "is_bot_mentioned",
    "remove_bot_mentions",
    "Message",
    "QuickReplyItem",
    "Sender",
    "TextMessage",
    "text_message",
    "Postback",
    "decode_postback",
    "encode_postback",
    "HandlerRegistry",
    "PatternMatcher",
    "PatternRouter",
]
