# FILE: app/bot/replies.py
"""
Canned user-facing replies shared by the dispatcher and the modules.

Every degraded path (throttled, NLU failure, dispatch failure, handler
crash, stale postback) ends in one of these; raw errors never reach users.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from app.bot.messages import (
    Message,
    QuickReplyItem,
    qr_help,
    qr_usage,
    quick_reply_compact,
    quick_reply_main_nav,
    text_message,
)

DEFAULT_SENDER = "NTPU 小工具"


class FallbackContext(str, Enum):
    """Why the generic help reply is being shown."""
    GENERIC = ""
    NLU_DISABLED = "nlu_off"
    NLU_FAILED = "nlu_failed"
    DISPATCH_FAILED = "dispatch"
    UNKNOWN_MODULE = "module"


_FALLBACK_HEADERS = {
    FallbackContext.NLU_DISABLED: ("📖 請使用關鍵字", "目前僅支援關鍵字查詢"),
    FallbackContext.NLU_FAILED: ("😅 無法理解訊息", "請試著換個方式說明，或使用關鍵字"),
    FallbackContext.DISPATCH_FAILED: ("⚠️ 處理失敗", "系統暫時無法處理此請求"),
    FallbackContext.UNKNOWN_MODULE: ("⚠️ 處理失敗", "系統暫時無法處理此請求"),
}

_KEYWORD_EXAMPLES = (
    "📖 關鍵字查詢\n"
    "📚 課程 微積分、課程 王教授\n"
    "🎓 學號 王小明、系 資工\n"
    "📞 聯絡 資工系、緊急\n"
    "🎯 學程列表、學程 人工智慧"
)

_NLU_EXAMPLES = (
    "💬 直接問我\n"
    "• 微積分的課有哪些\n"
    "• 王小明的學號\n"
    "• 資工系電話"
)


def help_message(
    context: FallbackContext = FallbackContext.GENERIC,
    nlu_enabled: bool = False,
) -> List[Message]:
    """Contextualized fallback shown when a message could not be served."""
    if context in _FALLBACK_HEADERS:
        title, subtext = _FALLBACK_HEADERS[context]
    else:
        title = "🔍 NTPU 小工具"
        subtext = "直接對話或使用關鍵字查詢" if nlu_enabled else "使用關鍵字快速查詢"

    sections = [f"{title}\n{subtext}"]
    if nlu_enabled:
        sections.append(_NLU_EXAMPLES)
    sections.append(_KEYWORD_EXAMPLES)
    return [text_message("\n\n".join(sections), DEFAULT_SENDER, quick_reply_main_nav())]


def instruction_messages(nlu_enabled: bool = False) -> List[Message]:
    """Detailed usage guide (使用說明)."""
    messages: List[Message] = []
    if nlu_enabled:
        messages.append(text_message(
            "🤖 AI 模式\n直接用自然語言問我\n\n"
            "💬 使用範例\n"
            "• 「微積分的課有哪些」\n"
            "• 「王小明的學號是多少」\n"
            "• 「人工智慧學程有什麼課」\n"
            "• 「資工系的電話是多少」\n"
            "• 「緊急電話幾號」\n\n"
            "✨ AI 會自動理解您的問題",
            DEFAULT_SENDER,
        ))

    title = "📖 關鍵字模式" if nlu_enabled else "📖 使用說明"
    messages.append(text_message(
        f"{title}\n使用關鍵字進行查詢\n\n"
        "📚 課程：課程 微積分、老師 王小明、1131U0001\n"
        "🔮 智慧搜尋：找課 資料分析\n"
        "🎓 學號：學號 王小明、412345678、系 資工、所有系代碼\n"
        "📞 聯絡：聯絡 資工系、緊急\n"
        "🎯 學程：學程列表、學程 人工智慧\n"
        "📊 配額：配額、額度說明",
        DEFAULT_SENDER,
    ))

    messages.append(text_message(
        "💡 小提示\n"
        "• 關鍵字後面需空一格再接查詢內容\n"
        "• 課程編號可直接輸入查詢\n"
        "• 查詢結果可點選按鈕查看詳細資訊",
        DEFAULT_SENDER,
        quick_reply_main_nav(),
    ))
    return messages


# =============================================================================
# RATE LIMITING
# =============================================================================

def throttle_reply() -> List[Message]:
    return [text_message(
        "⏳ 訊息太頻繁，請稍後再試\n💡 稍等幾秒後即可繼續使用",
        DEFAULT_SENDER,
        quick_reply_compact(),
    )]


def llm_quota_reply() -> List[Message]:
    return [text_message(
        "🤖 AI 查詢額度已用完\n\n"
        "📊 目前配額已用完，請稍後再試\n"
        "💡 配額重置前僅能使用關鍵字查詢\n"
        "• 課程 微積分\n"
        "• 學號 王小明\n"
        "• 聯絡 資工系",
        DEFAULT_SENDER,
        [QuickReplyItem("📚 課程", text="課程"), qr_usage(), qr_help()],
    )]


# =============================================================================
# INPUT / INTERNAL ERRORS
# =============================================================================

def text_too_long_reply(limit: int) -> List[Message]:
    return [text_message(
        f"❌ 訊息內容過長\n\n訊息長度超過 {limit} 字元，請縮短後重試。",
        DEFAULT_SENDER,
        quick_reply_compact(),
    )]


def invalid_postback_reply() -> List[Message]:
    return [text_message("❌ 操作資料異常\n\n請使用下方按鈕重新操作", DEFAULT_SENDER, quick_reply_compact())]


def expired_postback_reply() -> List[Message]:
    return [text_message("⚠️ 操作已過期或無效\n\n請使用下方按鈕重新操作", DEFAULT_SENDER, quick_reply_compact())]


def contract_violation_reply(sender_name: Optional[str] = None) -> List[Message]:
    """Generic apology used when a matched handler produced nothing usable."""
    return [text_message(
        "⚠️ 抱歉，處理您的請求時發生問題\n請稍後再試，或使用下方按鈕重新查詢",
        sender_name or DEFAULT_SENDER,
        quick_reply_compact(),
    )]


def internal_error_reply() -> List[Message]:
    return contract_violation_reply(DEFAULT_SENDER)


__all__ = [
    "DEFAULT_SENDER",
    "FallbackContext",
    "help_message",
    "instruction_messages",
    "throttle_reply",
    "llm_quota_reply",
    "text_too_long_reply",
    "invalid_postback_reply",
    "expired_postback_reply",
    "contract_violation_reply",
    "internal_error_reply",
]
