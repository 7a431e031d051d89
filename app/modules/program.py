# FILE: app/modules/program.py
"""
Academic program module (學程小幫手).

Matchers:
    1  list keywords     學程列表 / 所有學程 / program list / programs
    2  search keywords   學程 人工智慧 / program 金融

Search is two-tier: substring match from the store, then fuzzy
character-set match ("人工" or "智慧人工" both find 人工智慧學程),
deduplicated by name. Course counts and course lists are limited to the
two most recent semesters via a SemesterLookup; the module never holds a
reference to the course module.

Intents: list(), search(query), courses(programName)
Postbacks: program:courses$<program name>, program:course_programs$<uid>
"""
from __future__ import annotations

import logging
from typing import Dict, List, Match, Optional

from app.bot.context import RequestContext
from app.bot.keywords import build_keyword_regex, contains_all_chars, extract_search_term
from app.bot.messages import Message, QuickReplyItem, qr_help, text_message
from app.bot.postback import Postback, encode_postback
from app.bot.router import PatternMatcher, PatternRouter
from app.modules.catalog import ProgramStore, ProgramSummary, SemesterLookup

logger = logging.getLogger(__name__)

MODULE_NAME = "program"
SENDER_NAME = "學程小幫手"

PRIORITY_LIST = 1
PRIORITY_SEARCH = 2

MAX_PROGRAMS_PER_REPLY = 50
MAX_COURSES_PER_SECTION = 40

LIST_KEYWORDS = ["學程列表", "所有學程", "program list", "programs"]
SEARCH_KEYWORDS = ["學程", "program"]

LIST_REGEX = build_keyword_regex(LIST_KEYWORDS)
SEARCH_REGEX = build_keyword_regex(SEARCH_KEYWORDS)

INTENT_LIST = "list"
INTENT_SEARCH = "search"
INTENT_COURSES = "courses"
ACTION_COURSE_PROGRAMS = "course_programs"

SEARCH_HELP_TEXT = (
    "🎓 學程查詢說明\n\n"
    "• 學程列表：查看所有學程\n"
    "• 學程 關鍵字：搜尋學程\n\n"
    "例如：\n"
    "• 學程 資訊\n"
    "• 學程 管理\n"
    "• 學程 智慧財產"
)


def format_program_line(program: ProgramSummary) -> str:
    line = f"• {program.name}"
    if program.total_courses:
        line += f"（必 {program.required_count}／選 {program.elective_count}）"
    return line


def view_courses_item(program_name: str) -> QuickReplyItem:
    return QuickReplyItem(
        label=program_name,
        text=f"查看 {program_name} 課程",
        data=encode_postback(MODULE_NAME, INTENT_COURSES, program_name),
    )


def quick_reply_program_nav() -> List[QuickReplyItem]:
    return [QuickReplyItem("🎓 學程列表", text="學程列表"), qr_help()]


class ProgramModule(PatternRouter):
    name = MODULE_NAME
    sender_name = SENDER_NAME

    def __init__(self, store: ProgramStore, semesters: Optional[SemesterLookup] = None):
        self.store = store
        self.semesters = semesters
        super().__init__()

    def build_matchers(self) -> List[PatternMatcher]:
        return [
            PatternMatcher(LIST_REGEX, PRIORITY_LIST, self._on_list, "List"),
            PatternMatcher(SEARCH_REGEX, PRIORITY_SEARCH, self._on_search, "Search"),
        ]

    async def _on_list(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.list_programs()

    async def _on_search(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        term = extract_search_term(text, match.group(1))
        if not term:
            return [self._reply(SEARCH_HELP_TEXT)]
        return self.search(term)

    def _recent(self):
        if self.semesters is None:
            logger.debug("[program] no semester lookup, using all semesters")
            return None, None
        return self.semesters.recent_semesters()

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def list_programs(self) -> List[Message]:
        years, terms = self._recent()
        programs = self.store.all_programs(years, terms)
        if not programs:
            return [self._reply("📭 目前沒有學程資料\n\n請稍後再試，系統會定期更新學程資訊。")]
        logger.info(f"[program] listing {len(programs)} programs")
        return self._format_list(
            programs,
            f"🎓 學程列表 (共 {len(programs)} 個)",
            "💡 輸入「學程 關鍵字」搜尋特定學程",
        )

    def search(self, term: str) -> List[Message]:
        years, terms = self._recent()
        found = list(self.store.search_programs(term, years, terms))
        seen = {p.name for p in found}
        for program in self.store.all_programs(years, terms):
            if program.name not in seen and contains_all_chars(program.name, term):
                found.append(program)
                seen.add(program.name)

        if not found:
            return [self._reply(
                f"🔍 查無「{term}」相關學程\n\n💡 建議\n• 使用「學程列表」查看所有學程\n• 嘗試其他關鍵字"
            )]
        logger.info(f"[program] {len(found)} programs for {term!r}")
        return self._format_list(
            found,
            f"🔍 搜尋結果 (共 {len(found)} 個)",
            "💡 點選下方按鈕查看學程課程",
            with_buttons=True,
        )

    def courses(self, program_name: str) -> List[Message]:
        years, terms = self._recent()
        entries = self.store.program_courses(program_name, years, terms)
        if not entries:
            return [self._reply(
                f"📭 「{program_name}」在近 2 學期沒有課程資料\n\n💡 可能原因：\n"
                "• 該學程可能在本學期未開設相關課程\n"
                "• 學程名稱可能有誤，請嘗試「學程列表」查看正確名稱"
            )]

        required = [e.course for e in entries if e.required]
        elective = [e.course for e in entries if not e.required]
        sections = [f"🎓 {program_name}（共 {len(entries)} 門課）"]
        for label, courses in (("📌 必修", required), ("📚 選修", elective)):
            if not courses:
                continue
            rows = "\n".join(
                f"• {c.title}（{c.uid}）" for c in courses[:MAX_COURSES_PER_SECTION]
            )
            if len(courses) > MAX_COURSES_PER_SECTION:
                rows += f"\n…另有 {len(courses) - MAX_COURSES_PER_SECTION} 門"
            sections.append(f"{label} {len(courses)} 門\n{rows}")
        return [self._reply("\n\n".join(sections))]

    def course_programs(self, uid: str) -> List[Message]:
        names = self.store.course_programs(uid)
        if not names:
            return [self._reply(f"📭 課程 {uid.upper()} 不屬於任何學程")]
        lines = "\n".join(f"• {n}" for n in names)
        return [self._reply(
            f"🎓 課程 {uid.upper()} 相關學程\n\n{lines}",
            [view_courses_item(n) for n in names[:5]],
        )]

    def _format_list(
        self,
        programs: List[ProgramSummary],
        title: str,
        footer: str,
        with_buttons: bool = False,
    ) -> List[Message]:
        messages: List[Message] = []
        shown = programs[:MAX_PROGRAMS_PER_REPLY]
        lines = "\n".join(format_program_line(p) for p in shown)
        items = [view_courses_item(p.name) for p in shown[:5]] if with_buttons else []
        messages.append(self._reply(f"{title}\n\n{lines}\n\n{footer}", items))
        return messages

    # =========================================================================
    # NLU / POSTBACK
    # =========================================================================

    async def dispatch_intent(self, ctx: RequestContext, intent: str, params: Dict[str, str]) -> List[Message]:
        if intent == INTENT_LIST:
            return self.list_programs()
        if intent == INTENT_SEARCH:
            return self.search(self.require_param(params, "query"))
        if intent == INTENT_COURSES:
            return self.courses(self.require_param(params, "programName"))
        return await super().dispatch_intent(ctx, intent, params)

    async def handle_postback_action(self, ctx: RequestContext, postback: Postback) -> Optional[List[Message]]:
        logger.info(f"[program] postback action={postback.action} data={postback.joined_data!r}")
        if postback.action == INTENT_COURSES:
            return self.courses(postback.joined_data)
        if postback.action == ACTION_COURSE_PROGRAMS:
            return self.course_programs(postback.first)
        return await super().handle_postback_action(ctx, postback)

    def _reply(self, text: str, items: Optional[List[QuickReplyItem]] = None) -> Message:
        return text_message(text, self.sender_name, (items or []) + quick_reply_program_nav())


__all__ = [
    "MODULE_NAME",
    "LIST_KEYWORDS",
    "SEARCH_KEYWORDS",
    "SEARCH_HELP_TEXT",
    "ProgramModule",
]
