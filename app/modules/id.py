# FILE: app/modules/id.py
"""
Student ID / department module (學號小幫手).

Matchers:
    1  所有系代碼           full undergraduate department code table
    2  8-9 digit number     student ID lookup
    3  department keywords  系 資工 / 系代碼 85 (name <-> code)
    5  student keywords     學號 王小明 / 學號 412345678

Intents: search(name), student_id(student_id), department(department)
Postbacks: id:student_id$<id>, id:department$<name or code>
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Match, Optional, Tuple

from app.bot.context import RequestContext
from app.bot.keywords import build_keyword_regex, contains_all_chars, extract_search_term
from app.bot.messages import Message, QuickReplyItem, qr_help, text_message
from app.bot.postback import Postback, encode_postback
from app.bot.router import PatternMatcher, PatternRouter
from app.modules.catalog import Student, StudentStore

logger = logging.getLogger(__name__)

MODULE_NAME = "id"
SENDER_NAME = "學號小幫手"

PRIORITY_ALL_CODES = 1
PRIORITY_STUDENT_ID = 2
PRIORITY_DEPARTMENT = 3
PRIORITY_STUDENT = 5

MAX_STUDENTS_PER_REPLY = 20

STUDENT_KEYWORDS = ["學號", "學生", "姓名", "student", "id"]
DEPARTMENT_KEYWORDS = [
    "系代碼", "系所代碼", "科系代碼",
    "系編號", "系所編號", "科系編號",
    "系所", "科系", "系名", "系所名", "科系名", "系所名稱", "科系名稱",
    "系", "所",
    "dep", "department", "depCode", "departmentCode",
]

ALL_CODES_REGEX = re.compile(r"^所有系代碼$")
STUDENT_ID_REGEX = re.compile(r"^(\d{8,9})$")
DEPARTMENT_REGEX = build_keyword_regex(DEPARTMENT_KEYWORDS)
STUDENT_REGEX = build_keyword_regex(STUDENT_KEYWORDS)

INTENT_SEARCH = "search"
INTENT_STUDENT_ID = "student_id"
INTENT_DEPARTMENT = "department"

# Undergraduate department codes
DEPARTMENT_CODES: Dict[str, str] = {
    "法律學系": "71",
    "法學組": "712",
    "司法組": "714",
    "財經法組": "716",
    "公共行政暨政策學系": "72",
    "經濟學系": "73",
    "社會學系": "742",
    "社會工作學系": "744",
    "財政學系": "75",
    "不動產與城鄉環境學系": "76",
    "會計學系": "77",
    "統計學系": "78",
    "企業管理學系": "79",
    "金融與合作經營學系": "80",
    "中國文學系": "81",
    "應用外語學系": "82",
    "歷史學系": "83",
    "休閒運動管理學系": "84",
    "資訊工程學系": "85",
    "通訊工程學系": "86",
    "電機工程學系": "87",
}
CODE_TO_DEPARTMENT: Dict[str, str] = {code: name for name, code in DEPARTMENT_CODES.items()}

_COLLEGES: Tuple[Tuple[str, Tuple[Tuple[str, str], ...]], ...] = (
    ("📖 人文學院", (("中文系", "81"), ("應外系", "82"), ("歷史系", "83"))),
    ("⚖️ 法律學院", (("法學組", "712"), ("司法組", "714"), ("財法組", "716"))),
    ("💼 商學院", (("企管系", "79"), ("金融系", "80"), ("會計系", "77"), ("統計系", "78"), ("休運系", "84"))),
    ("🏛️ 公共事務學院", (("公行系", "72"), ("財政系", "75"), ("不動系", "76"))),
    ("👥 社會科學學院", (("經濟系", "73"), ("社學系", "742"), ("社工系", "744"))),
    ("💻 電機資訊學院", (("電機系", "87"), ("資工系", "85"), ("通訊系", "86"))),
)


def all_department_codes_text() -> str:
    parts = ["📋 大學部系代碼一覽"]
    for college, departments in _COLLEGES:
        rows = "\n".join(f"  {name} → {code}" for name, code in departments)
        parts.append(f"{college}\n{rows}")
    return "\n\n".join(parts)


def find_departments(term: str) -> List[Tuple[str, str]]:
    """(name, code) pairs whose name contains the term, contiguously or character-wise."""
    term = term.strip()
    exact = [(n, c) for n, c in DEPARTMENT_CODES.items() if term in n]
    if exact:
        return exact
    return [(n, c) for n, c in DEPARTMENT_CODES.items() if contains_all_chars(n, term)]


def format_student(student: Student) -> str:
    line = f"🎓 {student.name}  {student.id}"
    if student.department:
        line += f"  {student.department}"
    return line


class IDModule(PatternRouter):
    name = MODULE_NAME
    sender_name = SENDER_NAME

    def __init__(self, store: StudentStore):
        self.store = store
        super().__init__()

    def build_matchers(self) -> List[PatternMatcher]:
        return [
            PatternMatcher(ALL_CODES_REGEX, PRIORITY_ALL_CODES, self._on_all_codes, "AllCodes"),
            PatternMatcher(STUDENT_ID_REGEX, PRIORITY_STUDENT_ID, self._on_student_id, "StudentID"),
            PatternMatcher(DEPARTMENT_REGEX, PRIORITY_DEPARTMENT, self._on_department, "Department"),
            PatternMatcher(STUDENT_REGEX, PRIORITY_STUDENT, self._on_student, "Student"),
        ]

    async def _on_all_codes(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return [self._reply(all_department_codes_text())]

    async def _on_student_id(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        return self.by_student_id(match.group(1))

    async def _on_department(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        term = extract_search_term(text, match.group(1))
        if not term:
            return [self._reply(
                "🔍 查詢系所資訊\n\n請輸入系名或系代碼：\n例如：「系 資工」或「系代碼 85」\n\n"
                "💡 提示：輸入「所有系代碼」查看完整對照表"
            )]
        return self.department(term)

    async def _on_student(self, ctx: RequestContext, text: str, match: Match) -> List[Message]:
        term = extract_search_term(text, match.group(1))
        if not term:
            return [self._reply(
                "🎓 學號查詢說明\n\n• 學號 姓名：以姓名查學號\n• 直接輸入學號：如 412345678\n• 系 系名：查系代碼"
            )]
        if STUDENT_ID_REGEX.match(term):
            return self.by_student_id(term)
        return self.search(term)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def search(self, name: str) -> List[Message]:
        students = self.store.search_students(name)
        if not students:
            return [self._reply(f"🔍 查無「{name}」相關學生\n\n請確認姓名是否正確")]
        logger.info(f"[id] {len(students)} students for {name!r}")
        shown = students[:MAX_STUDENTS_PER_REPLY]
        lines = "\n".join(format_student(s) for s in shown)
        header = f"🎓 「{name}」搜尋結果（共 {len(students)} 筆）"
        departments = list(dict.fromkeys(s.department for s in shown if s.department))
        items = [
            QuickReplyItem(d, data=encode_postback(MODULE_NAME, INTENT_DEPARTMENT, d))
            for d in departments[:3]
        ]
        return [self._reply(f"{header}\n\n{lines}", items)]

    def by_student_id(self, student_id: str) -> List[Message]:
        student = self.store.get_student(student_id)
        if student is None:
            return [self._reply(f"🔍 查無學號「{student_id}」\n\n請確認學號是否正確")]
        return [self._reply(format_student(student))]

    def department(self, term: str) -> List[Message]:
        term = term.strip()
        if term.isdigit():
            name = CODE_TO_DEPARTMENT.get(term)
            if name is None:
                return [self._reply("🔍 查無該系代碼\n\n請輸入正確的系代碼\n例如：85（資工系）")]
            return [self._reply(f"🏫 系代碼 {term} → {name}")]

        matches = find_departments(term)
        if not matches:
            return [self._reply("🔍 查無該系所\n\n請輸入正確的系名\n例如：資工、法律、企管")]
        lines = "\n".join(f"🏫 {name} → {code}" for name, code in matches)
        return [self._reply(lines)]

    # =========================================================================
    # NLU / POSTBACK
    # =========================================================================

    async def dispatch_intent(self, ctx: RequestContext, intent: str, params: Dict[str, str]) -> List[Message]:
        if intent == INTENT_SEARCH:
            return self.search(self.require_param(params, "name"))
        if intent == INTENT_STUDENT_ID:
            return self.by_student_id(self.require_param(params, "student_id"))
        if intent == INTENT_DEPARTMENT:
            return self.department(self.require_param(params, "department"))
        return await super().dispatch_intent(ctx, intent, params)

    async def handle_postback_action(self, ctx: RequestContext, postback: Postback) -> Optional[List[Message]]:
        if postback.action == INTENT_STUDENT_ID and postback.first:
            return self.by_student_id(postback.first)
        if postback.action == INTENT_DEPARTMENT and postback.first:
            return self.department(postback.first)
        return await super().handle_postback_action(ctx, postback)

    def _reply(self, text: str, items: Optional[List[QuickReplyItem]] = None) -> Message:
        return text_message(text, self.sender_name, (items or []) + [qr_help()])


__all__ = [
    "MODULE_NAME",
    "STUDENT_KEYWORDS",
    "DEPARTMENT_KEYWORDS",
    "DEPARTMENT_CODES",
    "find_departments",
    "all_department_codes_text",
    "IDModule",
]
