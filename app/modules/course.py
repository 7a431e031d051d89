# FILE: app/modules/course.py
"""
Course module (課程小幫手).

Matchers (lower priority runs first):
    1  UID          1131U0001 / 991U0001 style course identifiers
    2  CourseNo     U0001 style course number, resolved in the recent semesters
    3  Historical   課程 110 微積分: title or teacher search within one ROC year
    4  Smart        找課 / 找課程 / 搜課 + free-text description
    5  Keyword      課程 / 老師 / course / teacher ... + title or teacher name

Smart search expands the query through the LLM query expander (when
wired and admitted by the LLM limiter) and ranks recent-semester courses
with BM25. Expansion is advisory: on failure the original query is ranked.

Intents: search(keyword), smart(query), uid(uid)
Postbacks: course:uid$<uid>
"""
from __future__ import annotations

import logging
import math
import re
from collections import Counter
from datetime import date
from typing import Callable, Dict, List, Match, Optional, Protocol, Sequence

from app.bot.context import LLM_ADMITTED_KEY, RequestContext
from app.bot.keywords import build_keyword_regex, extract_search_term
from app.bot.messages import Message, QuickReplyItem, qr_help, text_message
from app.bot.postback import Postback, encode_postback
from app.bot.router import PatternMatcher, PatternRouter
from app.modules.catalog import Course, CourseStore, SemesterLookup, semesters_for_date, today_taipei
from app.ratelimit.keyed import KeyedLimiter
from app.translation.expander import tokenize

logger = logging.getLogger(__name__)

MODULE_NAME = "course"
SENDER_NAME = "課程小幫手"

PRIORITY_UID = 1
PRIORITY_COURSE_NO = 2
PRIORITY_HISTORICAL = 3
PRIORITY_SMART = 4
PRIORITY_KEYWORD = 5

# ROC year 89 = AD 2000, the oldest year the course system serves
MIN_HISTORICAL_YEAR = 89

MAX_COURSES_PER_REPLY = 10
MAX_SMART_RESULTS = 5

COURSE_KEYWORDS = [
    # course title
    "課", "課程", "科目",
    "課名", "課程名", "課程名稱",
    "科目名", "科目名稱",
    # teacher
    "師", "老師", "教師", "教授",
    "老師名", "教師名", "教授名",
    "老師名稱", "教師名稱", "教授名稱",
    "授課教師", "授課老師", "授課教授",
    "class", "course", "teacher", "professor", "prof", "dr", "doctor",
]
SMART_KEYWORDS = ["找課", "找課程", "搜課"]

UID_REGEX = re.compile(r"^(\d{3,4}[umnp]\d{4})$", re.IGNORECASE)
COURSE_NO_REGEX = re.compile(r"^([umnp]\d{4})$", re.IGNORECASE)
HISTORICAL_REGEX = re.compile(r"^(課程?|course|class)\s+(\d{2,3})\s+(.+)$", re.IGNORECASE)
COURSE_REGEX = build_keyword_regex(COURSE_KEYWORDS)
SMART_REGEX = build_keyword_regex(SMART_KEYWORDS)

INTENT_SEARCH = "search"
INTENT_SMART = "smart"
INTENT_UID = "uid"


class QueryExpander(Protocol):
    async def expand(self, query: str, deadline: Optional[float] = None) -> str: ...


# =============================================================================
# BM25
# =============================================================================

def _course_document(course: Course) -> str:
    return " ".join([course.title, *course.teachers, course.note])


def rank_courses(query: str, courses: Sequence[Course], limit: int = MAX_SMART_RESULTS,
                 k1: float = 1.5, b: float = 0.75) -> List[Course]:
    """BM25 over title, teachers and note. Courses scoring zero are dropped."""
    query_terms = set(tokenize(query))
    if not query_terms or not courses:
        return []

    docs = [Counter(tokenize(_course_document(c))) for c in courses]
    avg_len = sum(sum(d.values()) for d in docs) / len(docs) or 1.0
    df: Dict[str, int] = Counter(t for d in docs for t in set(d) if t in query_terms)
    n = len(docs)

    scored = []
    for course, doc in zip(courses, docs):
        length = sum(doc.values())
        score = 0.0
        for term in query_terms:
            tf = doc.get(term, 0)
            if not tf:
                continue
            idf = math.log(1 + (n - df[term] + 0.5) / (df[term] + 0.5))
            score += idf * tf * (k1 + 1) / (tf + k1 * (1 - b + b * length / avg_len))
        if score > 0:
            scored.append((score, course))

    scored.sort(key=lambda pair: (-pair[0], pair[1].uid))
    return [course for _, course in scored[:limit]]


# =============================================================================
# FORMATTING
# =============================================================================

def format_course(course: Course) -> str:
    lines = [f"📘 {course.title}", f"🔖 {course.uid}（{course.year}-{course.term}）"]
    if course.teachers:
        lines.append(f"👨‍🏫 {'、'.join(course.teachers)}")
    if course.times:
        lines.append(f"🕐 {'、'.join(course.times)}")
    if course.locations:
        lines.append(f"📍 {'、'.join(course.locations)}")
    if course.note:
        lines.append(f"📝 {course.note}")
    if course.detail_url:
        lines.append(f"🔗 {course.detail_url}")
    return "\n".join(lines)


def course_detail_item(course: Course) -> QuickReplyItem:
    return QuickReplyItem(
        label=course.title,
        text=f"查看 {course.title}",
        data=encode_postback(MODULE_NAME, INTENT_UID, course.uid),
    )


# =============================================================================
# HANDLER
# =============================================================================

class CourseModule(PatternRouter):
    name = MODULE_NAME
    sender_name = SENDER_NAME

    def __init__(
        self,
        store: CourseStore,
        semesters: Optional[SemesterLookup] = None,
        expander: Optional[QueryExpander] = None,
        llm_limiter: Optional[KeyedLimiter] = None,
        today: Callable[[], date] = today_taipei,
    ):
        self.store = store
        self.semesters = semesters
        self.expander = expander
        self.llm_limiter = llm_limiter
        self._today = today
        super().__init__()

    def build_matchers(self) -> List[PatternMatcher]:
        return [
            PatternMatcher(UID_REGEX, PRIORITY_UID, self._on_uid, "UID"),
            PatternMatcher(COURSE_NO_REGEX, PRIORITY_COURSE_NO, self._on_uid, "CourseNo"),
            PatternMatcher(HISTORICAL_REGEX, PRIORITY_HISTORICAL, self._on_historical, "Historical"),
            PatternMatcher(SMART_REGEX, PRIORITY_SMART, self._on_smart, "Smart"),
            PatternMatcher(COURSE_REGEX, PRIORITY_KEYWORD, self._on_keyword, "Keyword"),
        ]

    # =========================================================================
    # PATTERN HANDLERS
    # =========================================================================

    async def _on_uid(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.course_by_uid(match.group(1))

    async def _on_historical(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.historical_search(int(match.group(2)), match.group(3).strip())

    async def _on_smart(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        query = extract_search_term(text, match.group(1))
        if not query:
            return [self._reply(
                "🔮 智慧搜尋說明\n\n"
                "用一句話描述想找的課程，例如：\n"
                "• 找課 資料分析\n"
                "• 找課 想學 AWS 雲端\n"
                "• 搜課 程式設計入門"
            )]
        return await self.smart_search(ctx, query)

    async def _on_keyword(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        keyword = extract_search_term(text, match.group(1))
        if not keyword:
            return [self._reply(
                "📚 課程查詢說明\n\n"
                "• 課程 課名：以課名搜尋\n"
                "• 老師 姓名：以教師搜尋\n"
                "• 直接輸入課號：如 1131U0001 或 U0001\n"
                "• 課程 學年 課名：查詢歷史課程，如 課程 110 微積分\n"
                "• 找課 描述：智慧搜尋"
            )]
        return self.search(keyword)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def _recent(self):
        if self.semesters is None:
            return None, None
        return self.semesters.recent_semesters()

    def _roc_year(self) -> int:
        return self._today().year - 1911

    def search(self, keyword: str) -> List[Message]:
        years, terms = self._recent()
        courses = self.store.search_courses(keyword, years, terms)
        if not courses and years:
            # Nothing in the recent semesters: widen to everything on record
            courses = self.store.search_courses(keyword)
        if not courses:
            return [self._reply(
                f"🔍 查無「{keyword}」相關課程\n\n💡 建議\n• 確認課名或教師姓名\n• 試試「找課 {keyword}」智慧搜尋"
            )]

        logger.info(f"[course] {len(courses)} courses for {keyword!r}")
        shown = courses[:MAX_COURSES_PER_REPLY]
        body = "\n\n".join(format_course(c) for c in shown)
        header = f"📚 「{keyword}」搜尋結果（共 {len(courses)} 筆）"
        if len(courses) > len(shown):
            header += f"\n僅顯示前 {len(shown)} 筆，請加入更多關鍵字"
        return [self._reply(f"{header}\n\n{body}", [course_detail_item(c) for c in shown])]

    async def smart_search(self, ctx: RequestContext, query: str) -> List[Message]:
        expanded = await self._expand(ctx, query)
        years, terms = self._recent()
        pool = self.store.list_courses(years, terms)
        if not pool and years:
            pool = self.store.list_courses()
        ranked = rank_courses(expanded, pool)
        if not ranked:
            return [self._reply(
                f"🔮 找不到與「{query}」相關的課程\n\n💡 試試換個描述，或使用「課程 課名」精確搜尋"
            )]
        body = "\n\n".join(format_course(c) for c in ranked)
        return [self._reply(f"🔮 「{query}」智慧搜尋結果\n\n{body}", [course_detail_item(c) for c in ranked])]

    async def _expand(self, ctx: RequestContext, query: str) -> str:
        if self.expander is None:
            return query
        # NLU dispatch already paid for this request's LLM token
        charge = self.llm_limiter is not None and ctx.chat_id and not ctx.get(LLM_ADMITTED_KEY)
        if charge and not self.llm_limiter.allow(ctx.chat_id):
            logger.info("[course] LLM limiter declined expansion; ranking original query")
            return query
        expanded = await self.expander.expand(query, deadline=ctx.deadline)
        if expanded != query:
            logger.debug(f"[course] expanded {query!r} -> {expanded!r}")
        return expanded

    def course_by_uid(self, uid: str) -> List[Message]:
        """Full uid lookup; a bare course number (U0001) is tried in the recent semesters."""
        uid = uid.strip().upper()
        if COURSE_NO_REGEX.match(uid):
            return self.course_by_no(uid)
        course = self.store.get_course(uid)
        if course is None:
            return [self._reply(f"🔍 查無課號「{uid}」\n\n請確認課號是否正確，例如：1131U0001")]
        return [self._reply(format_course(course))]

    def course_by_no(self, course_no: str) -> List[Message]:
        years, terms = self._recent()
        if not years:
            years, terms = semesters_for_date(self._today())
        for year, term in zip(years, terms):
            course = self.store.get_course(f"{year}{term}{course_no}")
            if course is not None:
                logger.info(f"[course] course number {course_no} resolved to {course.uid}")
                return [self._reply(format_course(course))]
        return [self._reply(
            f"🔍 查無課程編號 {course_no}\n\n"
            "💡 請確認：\n• 課程編號拼寫是否正確\n• 該課程是否在近兩學期開設\n\n"
            f"📝 若已知完整課號，可直接輸入：\n   例如：{years[0]}1{course_no}",
            [QuickReplyItem(label="📚 搜尋課程", text="課程")],
        )]

    def historical_search(self, year: int, keyword: str) -> List[Message]:
        """Search one ROC academic year; recent years go through the regular search."""
        current = self._roc_year()
        if year < MIN_HISTORICAL_YEAR or year > current:
            return [self._reply(
                f"❌ 無效的學年度：{year}\n\n💡 請輸入 {MIN_HISTORICAL_YEAR}-{current} 之間的學年度\n範例：課程 110 微積分"
            )]
        if year >= current - 1:
            return self.search(keyword)

        courses = self.store.search_courses(keyword, [year, year], [1, 2])
        if not courses:
            return [self._reply(
                f"🔍 查無 {year} 學年度包含「{keyword}」的課程\n\n"
                "💡 請確認：\n• 學年度和課程名稱是否正確\n• 該課程是否在該學年度開設",
                [QuickReplyItem(label="📚 查詢近期課程", text=f"課程 {keyword}")],
            )]

        logger.info(f"[course] {len(courses)} courses for {keyword!r} in year {year}")
        shown = courses[:MAX_COURSES_PER_REPLY]
        body = "\n\n".join(format_course(c) for c in shown)
        header = f"📜 {year} 學年度「{keyword}」搜尋結果（共 {len(courses)} 筆）"
        return [self._reply(f"{header}\n\n{body}", [course_detail_item(c) for c in shown])]

    # =========================================================================
    # NLU / POSTBACK
    # =========================================================================

    async def dispatch_intent(self, ctx: RequestContext, intent: str, params: Dict[str, str]) -> List[Message]:
        if intent == INTENT_SEARCH:
            return self.search(self.require_param(params, "keyword"))
        if intent == INTENT_SMART:
            return await self.smart_search(ctx, self.require_param(params, "query"))
        if intent == INTENT_UID:
            return self.course_by_uid(self.require_param(params, "uid"))
        return await super().dispatch_intent(ctx, intent, params)

    async def handle_postback_action(self, ctx: RequestContext, postback: Postback) -> Optional[List[Message]]:
        if postback.action == INTENT_UID and postback.first:
            return self.course_by_uid(postback.first)
        return await super().handle_postback_action(ctx, postback)

    def _reply(self, text: str, items: Optional[List[QuickReplyItem]] = None) -> Message:
        return text_message(text, self.sender_name, (items or []) + [qr_help()])


__all__ = [
    "MODULE_NAME",
    "COURSE_KEYWORDS",
    "SMART_KEYWORDS",
    "UID_REGEX",
    "COURSE_NO_REGEX",
    "HISTORICAL_REGEX",
    "QueryExpander",
    "rank_courses",
    "format_course",
    "CourseModule",
]
