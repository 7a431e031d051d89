# FILE: app/modules/contact.py
"""
Campus contact module (聯繫小幫手).

Matchers:
    1  緊急 prefix        emergency phone numbers
    2  contact keywords   聯絡 資工系 / 電話 圖書館 / 分機 學務處

Intents: search(query), emergency()
Postbacks: contact:search$<query>
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Match, Optional

from app.bot.context import RequestContext
from app.bot.keywords import build_keyword_regex, extract_search_term
from app.bot.messages import Message, QuickReplyItem, qr_help, text_message
from app.bot.postback import Postback, encode_postback
from app.bot.router import PatternMatcher, PatternRouter
from app.modules.catalog import Contact, ContactStore

logger = logging.getLogger(__name__)

MODULE_NAME = "contact"
SENDER_NAME = "聯繫小幫手"

PRIORITY_EMERGENCY = 1
PRIORITY_CONTACT = 2

MAX_CONTACTS_PER_REPLY = 10

CONTACT_KEYWORDS = [
    "聯繫", "聯絡", "聯繫方式", "聯絡方式",
    "連繫", "連絡",
    "電話", "分機",
    "email", "信箱",
    "touch", "contact", "connect",
]

EMERGENCY_REGEX = re.compile(r"^緊急")
CONTACT_REGEX = build_keyword_regex(CONTACT_KEYWORDS)

INTENT_SEARCH = "search"
INTENT_EMERGENCY = "emergency"

# Phone numbers without hyphens so they copy cleanly
EMERGENCY_PHONES = (
    ("三峽校區", (
        ("☎️", "總機", "0286741111"),
        ("🏢", "24H緊急行政電話", "0226731949"),
        ("🚨", "24H急難救助專線", "0226711234"),
        ("🚪", "大門哨所", "0226733920"),
        ("🏠", "宿舍夜間緊急電話", "0286716784"),
    )),
    ("臺北校區", (
        ("☎️", "總機", "0225024654"),
        ("🚨", "24H急難救助電話", "0225023671"),
    )),
    ("其他常用電話", (
        ("👮", "北大派出所", "0226730561"),
        ("🏥", "恩主公醫院", "0226723456"),
    )),
)


def emergency_text() -> str:
    parts = ["🚨 緊急聯絡電話"]
    for campus, rows in EMERGENCY_PHONES:
        lines = "\n".join(f"{icon} {label}：{phone}" for icon, label, phone in rows)
        parts.append(f"📍 {campus}\n{lines}")
    return "\n\n".join(parts)


def format_contact(contact: Contact) -> str:
    lines = [f"📇 {contact.name}"]
    if contact.organization and contact.organization != contact.name:
        lines.append(f"🏢 {contact.organization}")
    if contact.title:
        lines.append(f"💼 {contact.title}")
    if contact.phone:
        lines.append(f"☎️ {contact.phone}")
    if contact.extension:
        lines.append(f"📞 分機 {contact.extension}")
    if contact.email:
        lines.append(f"✉️ {contact.email}")
    if contact.location:
        lines.append(f"📍 {contact.location}")
    return "\n".join(lines)


class ContactModule(PatternRouter):
    name = MODULE_NAME
    sender_name = SENDER_NAME

    def __init__(self, store: ContactStore):
        self.store = store
        super().__init__()

    def build_matchers(self) -> List[PatternMatcher]:
        return [
            PatternMatcher(EMERGENCY_REGEX, PRIORITY_EMERGENCY, self._on_emergency, "Emergency"),
            PatternMatcher(CONTACT_REGEX, PRIORITY_CONTACT, self._on_contact, "Contact"),
        ]

    async def _on_emergency(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.emergency()

    async def _on_contact(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        query = extract_search_term(text, match.group(1))
        if not query:
            return [self._reply(
                "📞 請輸入查詢內容\n\n例如：\n• 聯絡 資工系\n• 電話 圖書館\n• 分機 學務處\n\n"
                "💡 提示：輸入「緊急」可查看緊急聯絡電話"
            )]
        return self.search(query)

    def emergency(self) -> List[Message]:
        return [self._reply(emergency_text())]

    def search(self, query: str) -> List[Message]:
        contacts = self.store.search_contacts(query)
        if not contacts:
            return [self._reply(
                f"🔍 查無「{query}」相關聯絡資訊\n\n💡 建議\n• 試試單位全名或簡稱\n• 輸入「緊急」查看緊急聯絡電話"
            )]
        logger.info(f"[contact] {len(contacts)} contacts for {query!r}")
        shown = contacts[:MAX_CONTACTS_PER_REPLY]
        body = "\n\n".join(format_contact(c) for c in shown)
        header = f"📞 「{query}」聯絡資訊（共 {len(contacts)} 筆）"
        orgs = []
        for c in shown:
            if c.organization and c.organization != query and c.organization not in orgs:
                orgs.append(c.organization)
        items = [
            QuickReplyItem(org, data=encode_postback(MODULE_NAME, INTENT_SEARCH, org))
            for org in orgs[:3]
        ]
        return [self._reply(f"{header}\n\n{body}", items)]

    async def dispatch_intent(self, ctx: RequestContext, intent: str, params: Dict[str, str]) -> List[Message]:
        if intent == INTENT_SEARCH:
            return self.search(self.require_param(params, "query"))
        if intent == INTENT_EMERGENCY:
            return self.emergency()
        return await super().dispatch_intent(ctx, intent, params)

    async def handle_postback_action(self, ctx: RequestContext, postback: Postback) -> Optional[List[Message]]:
        if postback.action == INTENT_SEARCH and postback.first:
            return self.search(postback.first)
        return await super().handle_postback_action(ctx, postback)

    def _reply(self, text: str, items: Optional[List[QuickReplyItem]] = None) -> Message:
        emergency = QuickReplyItem("🚨 緊急電話", text="緊急")
        return text_message(text, self.sender_name, (items or []) + [emergency, qr_help()])


__all__ = [
    "MODULE_NAME",
    "CONTACT_KEYWORDS",
    "EMERGENCY_PHONES",
    "emergency_text",
    "ContactModule",
]
