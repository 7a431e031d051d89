# FILE: tests/test_modules.py
"""
Tests for app/modules
Catalog semantics and the five bot modules: course, id, contact, program, usage.
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from app.bot.context import RequestContext
from app.bot.errors import MissingParameterError, UnknownIntentError
from app.modules import (
    ContactModule,
    CourseModule,
    IDModule,
    InMemoryCatalog,
    ProgramModule,
    UsageModule,
    semesters_for_date,
)
from app.modules.catalog import Course
from app.modules.course import rank_courses
from app.translation.expander import tokenize
from app.modules.id import all_department_codes_text, find_departments
from app.modules.usage import format_usage
from app.ratelimit.keyed import KeyedConfig, KeyedLimiter

CTX = RequestContext.create(chat_id="U1")


def quick_reply_data(message):
    return [q.data for q in message.quick_reply if q.data]


# =============================================================================
# CATALOG
# =============================================================================

class TestCatalog:
    """Test the in-memory store."""

    def test_uid_infers_semester(self):
        """Test year and term are derived from the course uid."""
        course = Course(uid="1131u0001", title="x")
        assert course.uid == "1131U0001"
        assert course.semester == (113, 1)
        assert course.no == "U0001"

    def test_recent_semesters_from_data(self, catalog):
        """Test the two newest semesters present in the data are used."""
        assert catalog.recent_semesters() == ([113, 112], [1, 2])

    def test_empty_catalog_uses_calendar(self):
        """Test an empty catalog falls back to the academic calendar."""
        catalog = InMemoryCatalog(today=lambda: date(2024, 10, 15))
        assert catalog.recent_semesters() == ([113, 112], [1, 2])

    @pytest.mark.parametrize("day,expected", [
        (date(2024, 10, 15), ([113, 112], [1, 2])),
        (date(2025, 1, 10), ([113, 112], [1, 2])),
        (date(2025, 3, 1), ([113, 113], [2, 1])),
        (date(2025, 8, 31), ([113, 113], [2, 1])),
    ])
    def test_semesters_for_date(self, day, expected):
        """Test the calendar rule across the year."""
        assert semesters_for_date(day) == expected

    def test_search_courses_semester_filter(self, catalog):
        """Test semester filters exclude older offerings."""
        found = catalog.search_courses("王大明", [113, 112], [1, 2])
        assert [c.uid for c in found] == ["1131U0001"]
        assert len(catalog.search_courses("王大明")) == 2

    def test_search_courses_fuzzy_title(self, catalog):
        """Test scattered characters of a title match after exact hits."""
        assert [c.title for c in catalog.search_courses("雲運")] == ["雲端運算概論"]

    def test_from_file_missing(self, tmp_path):
        """Test a missing seed file yields an empty catalog."""
        catalog = InMemoryCatalog.from_file(str(tmp_path / "nope.json"))
        assert catalog.list_courses() == []

    def test_from_file(self, tmp_path, sample_catalog_dict):
        """Test a JSON seed is loaded."""
        import json

        path = tmp_path / "catalog.json"
        path.write_text(json.dumps(sample_catalog_dict, ensure_ascii=False), encoding="utf-8")
        catalog = InMemoryCatalog.from_file(str(path))
        assert catalog.get_course("1131u0001").title == "微積分"
        assert catalog.course_programs("1131U0002") == ["人工智慧學程"]


# =============================================================================
# COURSE
# =============================================================================

class TestBM25:
    """Test smart-search ranking."""

    def test_tokenize_cjk_bigrams(self):
        """Test CJK runs yield unigrams and bigrams; ASCII is lowercased."""
        tokens = tokenize("AWS 雲端")
        assert "aws" in tokens
        assert {"雲", "端", "雲端"} <= set(tokens)

    def test_rank_prefers_matching_note(self, catalog):
        """Test the course mentioning AWS ranks first."""
        ranked = rank_courses("AWS Amazon Web Services 雲端", catalog.list_courses())
        assert ranked[0].uid == "1131U0003"

    def test_zero_scores_dropped(self, catalog):
        """Test unrelated queries return nothing."""
        assert rank_courses("量子物理", catalog.list_courses()) == []
        assert rank_courses("", catalog.list_courses()) == []


class TestCourseModule:
    """Test course matchers and operations."""

    @pytest.mark.asyncio
    async def test_uid_lookup(self, catalog):
        """Test a bare uid is looked up."""
        module = CourseModule(catalog, semesters=catalog)
        messages = await module.handle_message(CTX, "1131U0001")
        assert "微積分" in messages[0].text
        assert messages[0].sender.name == "課程小幫手"

    @pytest.mark.asyncio
    async def test_keyword_search_with_detail_buttons(self, catalog):
        """Test keyword search adds course:uid postbacks."""
        module = CourseModule(catalog, semesters=catalog)
        messages = await module.handle_message(CTX, "老師 王大明")
        assert "微積分" in messages[0].text
        assert "course:uid$1131U0001" in quick_reply_data(messages[0])

    @pytest.mark.asyncio
    async def test_search_widens_to_all_semesters(self, catalog):
        """Test older courses are found when recent semesters have none."""
        module = CourseModule(catalog, semesters=catalog)
        messages = await module.handle_message(CTX, "課程 線性代數")
        assert "1112U0005" in messages[0].text

    @pytest.mark.asyncio
    async def test_keyword_only_help(self, catalog):
        """Test a bare keyword explains usage."""
        module = CourseModule(catalog, semesters=catalog)
        messages = await module.handle_message(CTX, "課程")
        assert messages[0].text.startswith("📚 課程查詢說明")

    @pytest.mark.asyncio
    async def test_smart_search_uses_expander(self, catalog):
        """Test smart search expands then ranks."""
        expander = AsyncMock()
        expander.expand = AsyncMock(return_value="AWS Amazon Web Services 雲端 cloud")
        module = CourseModule(catalog, semesters=catalog, expander=expander)
        messages = await module.handle_message(CTX, "找課 AWS")
        assert "雲端運算概論" in messages[0].text
        expander.expand.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_smart_search_llm_denied_uses_original(self, catalog):
        """Test a denied LLM admission ranks the raw query."""
        expander = AsyncMock()
        limiter = KeyedLimiter(KeyedConfig(name="llm", burst=1, refill_rate=0.0))
        limiter.allow("U1")
        module = CourseModule(catalog, semesters=catalog, expander=expander, llm_limiter=limiter)
        messages = await module.handle_message(CTX, "找課 雲端")
        assert "雲端運算概論" in messages[0].text
        expander.expand.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispatch_intents(self, catalog):
        """Test the three NLU intents."""
        module = CourseModule(catalog, semesters=catalog)
        assert "微積分" in (await module.dispatch_intent(CTX, "search", {"keyword": "微積分"}))[0].text
        assert "資料結構" in (await module.dispatch_intent(CTX, "uid", {"uid": "1131u0002"}))[0].text
        with pytest.raises(MissingParameterError):
            await module.dispatch_intent(CTX, "smart", {})
        with pytest.raises(UnknownIntentError):
            await module.dispatch_intent(CTX, "delete", {})

    @pytest.mark.asyncio
    async def test_uid_postback(self, catalog):
        """Test course:uid$<uid> shows the course."""
        module = CourseModule(catalog, semesters=catalog)
        messages = await module.handle_postback(CTX, "course:uid$1122U0004")
        assert "統計學" in messages[0].text

    @pytest.mark.asyncio
    async def test_bare_course_number_recent_semester(self, catalog, fixed_today):
        """Test U0001 resolves against the recent semesters."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        assert module.can_handle("U0001")
        messages = await module.handle_message(CTX, "u0001")
        assert "1131U0001" in messages[0].text
        assert "微積分" in messages[0].text

    @pytest.mark.asyncio
    async def test_course_number_falls_back_to_previous_semester(self, catalog, fixed_today):
        """Test a course number only offered last semester is still found."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        messages = await module.dispatch_intent(CTX, "uid", {"uid": "U0004"})
        assert "1122U0004" in messages[0].text
        assert "統計學" in messages[0].text

    @pytest.mark.asyncio
    async def test_course_number_not_found(self, catalog, fixed_today):
        """Test an unknown course number suggests the full uid form."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        messages = await module.handle_message(CTX, "U0005")
        assert "查無課程編號 U0005" in messages[0].text
        assert "1131U0005" in messages[0].text
        assert "課程" in [q.text for q in messages[0].quick_reply]

    @pytest.mark.asyncio
    async def test_historical_year_search(self, catalog, fixed_today):
        """Test 課程 <year> <keyword> searches that academic year only."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        messages = await module.handle_message(CTX, "課程 111 線性代數")
        assert messages[0].text.startswith("📜 111 學年度「線性代數」")
        assert "1112U0005" in messages[0].text

    @pytest.mark.asyncio
    async def test_historical_year_no_result(self, catalog, fixed_today):
        """Test an empty historical year offers a recent search."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        messages = await module.handle_message(CTX, "課程 100 微積分")
        assert "查無 100 學年度包含「微積分」的課程" in messages[0].text
        assert "課程 微積分" in [q.text for q in messages[0].quick_reply]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["課程 50 微積分", "課程 120 微積分"])
    async def test_historical_year_out_of_range(self, catalog, fixed_today, text):
        """Test years before 89 or after the current year are rejected."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        messages = await module.handle_message(CTX, text)
        assert messages[0].text.startswith("❌ 無效的學年度")
        assert "89-113" in messages[0].text

    @pytest.mark.asyncio
    async def test_historical_recent_year_uses_regular_search(self, catalog, fixed_today):
        """Test the current and previous year go through the regular search."""
        module = CourseModule(catalog, semesters=catalog, today=lambda: fixed_today)
        messages = await module.handle_message(CTX, "課程 112 統計學")
        assert messages[0].text.startswith("📚 「統計學」搜尋結果")


# =============================================================================
# ID
# =============================================================================

class TestIDModule:
    """Test student and department lookups."""

    @pytest.mark.asyncio
    async def test_student_id_direct(self, catalog):
        """Test a bare 9-digit number is a student id."""
        messages = await IDModule(catalog).handle_message(CTX, "412345678")
        assert "王小明" in messages[0].text

    @pytest.mark.asyncio
    async def test_name_search_department_buttons(self, catalog):
        """Test name search lists matches with department postbacks."""
        messages = await IDModule(catalog).handle_message(CTX, "學號 王小")
        assert "王小明" in messages[0].text and "王小美" in messages[0].text
        data = quick_reply_data(messages[0])
        assert "id:department$資訊工程學系" in data
        assert "id:department$統計學系" in data

    @pytest.mark.asyncio
    async def test_department_name_and_code(self, catalog):
        """Test department lookups work both ways."""
        module = IDModule(catalog)
        assert "85" in (await module.handle_message(CTX, "系 資工"))[0].text
        assert "資訊工程學系" in (await module.handle_message(CTX, "系代碼 85"))[0].text
        assert "查無該系代碼" in (await module.handle_message(CTX, "系代碼 99"))[0].text

    @pytest.mark.asyncio
    async def test_all_codes(self, catalog):
        """Test the full code table."""
        messages = await IDModule(catalog).handle_message(CTX, "所有系代碼")
        assert messages[0].text == all_department_codes_text()

    def test_find_departments_fuzzy(self):
        """Test character-set matching finds abbreviations."""
        assert ("資訊工程學系", "85") in find_departments("資工")

    @pytest.mark.asyncio
    async def test_postbacks(self, catalog):
        """Test student_id and department postbacks."""
        module = IDModule(catalog)
        assert "陳大文" in (await module.handle_postback(CTX, "id:student_id$41234567"))[0].text
        assert "78" in (await module.handle_postback(CTX, "id:department$統計學系"))[0].text


# =============================================================================
# CONTACT
# =============================================================================

class TestContactModule:
    """Test contact search and emergency numbers."""

    @pytest.mark.asyncio
    async def test_emergency_prefix(self, catalog):
        """Test text starting with 緊急 returns the emergency numbers."""
        messages = await ContactModule(catalog).handle_message(CTX, "緊急電話")
        assert "0226711234" in messages[0].text

    @pytest.mark.asyncio
    async def test_search_by_alias(self, catalog):
        """Test the organization field is searchable."""
        messages = await ContactModule(catalog).handle_message(CTX, "聯絡 學務處")
        assert "學生事務處" in messages[0].text
        assert "66000" in messages[0].text

    @pytest.mark.asyncio
    async def test_organization_buttons(self, catalog):
        """Test organization quick replies use contact:search postbacks."""
        messages = await ContactModule(catalog).handle_message(CTX, "電話 資訊工程")
        assert "contact:search$電機資訊學院" in quick_reply_data(messages[0])

    @pytest.mark.asyncio
    async def test_no_result(self, catalog):
        """Test a miss suggests alternatives."""
        messages = await ContactModule(catalog).handle_message(CTX, "聯絡 火星")
        assert messages[0].text.startswith("🔍 查無「火星」")

    @pytest.mark.asyncio
    async def test_dispatch(self, catalog):
        """Test NLU intents."""
        module = ContactModule(catalog)
        assert "圖書館" in (await module.dispatch_intent(CTX, "search", {"query": "圖書館"}))[0].text
        assert "緊急聯絡電話" in (await module.dispatch_intent(CTX, "emergency", {}))[0].text


# =============================================================================
# PROGRAM
# =============================================================================

class TestProgramModule:
    """Test program listing, search and course lists."""

    @pytest.mark.asyncio
    async def test_list_counts_recent_courses(self, catalog):
        """Test counts only include recent-semester courses."""
        messages = await ProgramModule(catalog, semesters=catalog).handle_message(CTX, "學程列表")
        assert "人工智慧學程（必 1／選 1）" in messages[0].text
        assert "金融科技學程（必 1／選 0）" in messages[0].text

    @pytest.mark.asyncio
    async def test_fuzzy_search(self, catalog):
        """Test reordered characters still find the program."""
        messages = await ProgramModule(catalog, semesters=catalog).handle_message(CTX, "學程 智慧人工")
        assert "人工智慧學程" in messages[0].text
        assert "program:courses$人工智慧學程" in quick_reply_data(messages[0])

    @pytest.mark.asyncio
    async def test_search_help(self, catalog):
        """Test a bare keyword explains usage."""
        messages = await ProgramModule(catalog, semesters=catalog).handle_message(CTX, "學程")
        assert messages[0].text.startswith("🎓 學程查詢說明")

    @pytest.mark.asyncio
    async def test_courses_split_required_elective(self, catalog):
        """Test course lists separate required and elective."""
        messages = await ProgramModule(catalog, semesters=catalog).dispatch_intent(
            CTX, "courses", {"programName": "人工智慧學程"}
        )
        text = messages[0].text
        assert "📌 必修 1 門" in text
        assert "📚 選修 1 門" in text

    @pytest.mark.asyncio
    async def test_courses_empty(self, catalog):
        """Test an unknown program gets the no-data reply."""
        messages = await ProgramModule(catalog, semesters=catalog).dispatch_intent(
            CTX, "courses", {"programName": "不存在學程"}
        )
        assert "在近 2 學期沒有課程資料" in messages[0].text

    @pytest.mark.asyncio
    async def test_course_programs_postback(self, catalog):
        """Test program:course_programs$<uid> lists programs for a course."""
        module = ProgramModule(catalog, semesters=catalog)
        messages = await module.handle_postback(CTX, "program:course_programs$1122U0004")
        assert "金融科技學程" in messages[0].text


# =============================================================================
# USAGE
# =============================================================================

class TestUsageModule:
    """Test quota reporting."""

    def _limiters(self):
        user = KeyedLimiter(KeyedConfig(name="user", burst=15, refill_rate=0.1))
        llm = KeyedLimiter(KeyedConfig(name="llm", burst=60, refill_rate=30 / 3600, daily_limit=180))
        return user, llm

    @pytest.mark.asyncio
    async def test_query_reports_both_limiters(self):
        """Test the reply shows message and AI quotas plus daily remaining."""
        user, llm = self._limiters()
        llm.allow("U1")
        messages = await UsageModule(user, llm).handle_message(CTX, "額度")
        text = messages[0].text
        assert text.startswith("📊 使用額度")
        assert "💬 訊息額度" in text
        assert "🤖 AI 查詢額度" in text
        assert "今日剩餘 179/180" in text
        assert "00:00 重置" in text

    @pytest.mark.asyncio
    async def test_explain(self):
        """Test 額度說明 is matched before the generic keyword."""
        messages = await UsageModule().handle_message(CTX, "額度說明")
        assert messages[0].text.startswith("📖 額度說明")

    def test_format_without_limiters(self):
        """Test the reply when no limiter is wired."""
        assert "目前未啟用額度限制" in format_usage(None, None)

    @pytest.mark.asyncio
    async def test_dispatch_query(self):
        """Test the usage_query intent."""
        user, llm = self._limiters()
        messages = await UsageModule(user, llm).dispatch_intent(CTX, "query", {})
        assert "15/15" in messages[0].text


# =============================================================================
# MATCHER AGREEMENT
# =============================================================================

CORPUS = [
    "1131U0001", "u0001", "U9999", "課程 110 微積分", "課程 50 微積分", "課程", "課程 微積分",
    "找課", "找課 雲端", "老師 王大明", "學號 王小明", "412345678", "系代碼", "所有系代碼",
    "資工系", "緊急", "聯絡 圖書館", "學程列表", "學程", "學程 人工智慧", "額度", "額度說明",
    "hello", "今天天氣如何", "我想找微積分的課", "", "   ",
]


class TestMatcherAgreement:
    """Test can_handle and handle_message agree for every module."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", CORPUS)
    async def test_can_handle_iff_reply(self, catalog, fixed_today, text):
        """Test a module replies exactly when it claims the text."""
        modules = [
            ContactModule(catalog),
            CourseModule(catalog, semesters=catalog, today=lambda: fixed_today),
            IDModule(catalog),
            ProgramModule(catalog, semesters=catalog),
            UsageModule(),
        ]
        for module in modules:
            messages = await module.handle_message(CTX, text)
            assert module.can_handle(text) == bool(messages), module.name
            if messages:
                assert not messages[0].text.startswith("⚠️ 抱歉，處理您的請求時發生問題"), module.name
