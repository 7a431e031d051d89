# FILE: app/bot/messages.py
"""
Outbound reply messages.

A provider-neutral subset of the LINE message model: the core only decides
WHAT to say (text, an optional sender persona, quick-reply shortcuts); the
platform transport renders it. to_dict() produces the LINE-shaped JSON.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# LINE rejects text messages longer than this
MAX_TEXT_LENGTH = 5000

# LINE allows at most 13 quick reply buttons; labels max 20 chars
MAX_QUICK_REPLY_ITEMS = 13
MAX_QUICK_REPLY_LABEL = 20


@dataclass(frozen=True)
class Sender:
    """Per-message persona ("課程小幫手", ...)."""
    name: str
    icon_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.icon_url:
            out["iconUrl"] = self.icon_url
        return out


@dataclass(frozen=True)
class QuickReplyItem:
    """A quick reply button that either sends text or a postback."""
    label: str
    text: Optional[str] = None
    data: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        label = self.label[:MAX_QUICK_REPLY_LABEL]
        if self.data is not None:
            action = {"type": "postback", "label": label, "data": self.data}
            if self.text:
                action["displayText"] = self.text
        else:
            action = {"type": "message", "label": label, "text": self.text or self.label}
        return {"type": "action", "action": action}


@dataclass
class Message:
    sender: Optional[Sender] = None
    quick_reply: List[QuickReplyItem] = field(default_factory=list)

    @property
    def type(self) -> str:
        raise NotImplementedError

    def _base_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type}
        if self.sender is not None:
            out["sender"] = self.sender.to_dict()
        if self.quick_reply:
            out["quickReply"] = {
                "items": [q.to_dict() for q in self.quick_reply[:MAX_QUICK_REPLY_ITEMS]]
            }
        return out

    def to_dict(self) -> Dict[str, Any]:
        return self._base_dict()


@dataclass
class TextMessage(Message):
    text: str = ""

    @property
    def type(self) -> str:
        return "text"

    def to_dict(self) -> Dict[str, Any]:
        out = self._base_dict()
        text = self.text
        if len(text) > MAX_TEXT_LENGTH:
            text = text[: MAX_TEXT_LENGTH - 1] + "…"
        out["text"] = text
        return out


@dataclass
class FlexMessage(Message):
    alt_text: str = ""
    contents: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return "flex"

    def to_dict(self) -> Dict[str, Any]:
        out = self._base_dict()
        out["altText"] = self.alt_text[:400]
        out["contents"] = self.contents
        return out


def text_message(
    text: str,
    sender_name: Optional[str] = None,
    quick_reply: Optional[List[QuickReplyItem]] = None,
) -> TextMessage:
    """Shorthand used by every module."""
    return TextMessage(
        text=text,
        sender=Sender(sender_name) if sender_name else None,
        quick_reply=list(quick_reply or []),
    )


# =============================================================================
# QUICK REPLY PRESETS
# =============================================================================

def qr_help() -> QuickReplyItem:
    return QuickReplyItem("📖 使用說明", text="使用說明")


def qr_usage() -> QuickReplyItem:
    return QuickReplyItem("📊 配額", text="配額")


def quick_reply_main_nav() -> List[QuickReplyItem]:
    return [
        QuickReplyItem("📚 課程", text="課程"),
        QuickReplyItem("🎓 學號", text="學號"),
        QuickReplyItem("📞 聯繫", text="聯繫"),
        QuickReplyItem("🎯 學程", text="學程列表"),
        qr_help(),
    ]


def quick_reply_compact() -> List[QuickReplyItem]:
    return [QuickReplyItem("📚 課程", text="課程"), qr_help()]


__all__ = [
    "MAX_TEXT_LENGTH",
    "Sender",
    "QuickReplyItem",
    "Message",
    "TextMessage",
    "FlexMessage",
    "text_message",
    "qr_help",
    "qr_usage",
    "quick_reply_main_nav",
    "quick_reply_compact",
]
