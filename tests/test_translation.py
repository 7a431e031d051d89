# FILE: tests/test_translation.py
"""
Tests for app/translation
Function table, vendor tool rendering, tool-call validation and expansion helpers.
"""

import pytest

from app.llm.errors import SchemaViolationError
from app.translation.expander import (
    clean_expansion,
    contains_abbreviation,
    ensure_original,
    expansion_messages,
    should_expand,
    tokenize,
)
from app.translation.functions import (
    FUNCTION_DECLARATIONS,
    INTENT_MODULE_MAP,
    to_gemini_tools,
    to_openai_tools,
)
from app.translation.intent_parser import describe, parse_tool_call, parse_vendor_response
from app.translation.schemas import ToolCall, VendorResponse


class TestFunctionTable:
    """Test the declared NLU functions."""

    def test_names_unique(self):
        """Test function names are unique."""
        names = [f.name for f in FUNCTION_DECLARATIONS]
        assert len(names) == len(set(names))

    def test_module_map(self):
        """Test representative function names map to module/intent."""
        assert INTENT_MODULE_MAP["course_search"] == ("course", "search")
        assert INTENT_MODULE_MAP["id_student_id"] == ("id", "student_id")
        assert INTENT_MODULE_MAP["program_courses"] == ("program", "courses")
        assert INTENT_MODULE_MAP["usage_query"] == ("usage", "query")
        assert INTENT_MODULE_MAP["direct_reply"] == ("direct_reply", "")

    def test_openai_rendering(self):
        """Test Chat Completions tools carry JSON schema parameters."""
        tools = {t["function"]["name"]: t for t in to_openai_tools()}
        assert len(tools) == len(FUNCTION_DECLARATIONS)
        params = tools["course_search"]["function"]["parameters"]
        assert params["type"] == "object"
        assert params["required"] == ["keyword"]
        assert tools["program_list"]["function"]["parameters"]["properties"] == {}

    def test_gemini_rendering_omits_empty_parameters(self):
        """Test Gemini declarations skip parameters for no-arg functions."""
        [block] = to_gemini_tools()
        decls = {d["name"]: d for d in block["function_declarations"]}
        assert "parameters" not in decls["contact_emergency"]
        assert decls["id_search"]["parameters"]["type"] == "OBJECT"
        assert decls["id_search"]["parameters"]["properties"]["name"]["type"] == "STRING"


class TestParseToolCall:
    """Test tool-call validation."""

    def test_maps_to_module_intent(self):
        """Test a valid call becomes a ParseResult."""
        result = parse_tool_call(ToolCall(name="contact_search", arguments={"query": " 圖書館 "}))
        assert result.module == "contact"
        assert result.intent == "search"
        assert result.params == {"query": "圖書館"}
        assert result.function_name == "contact_search"

    def test_undeclared_arguments_dropped(self):
        """Test keys outside the declaration are discarded."""
        result = parse_tool_call(ToolCall(name="id_search", arguments={"name": "王小明", "sql": "drop"}))
        assert result.params == {"name": "王小明"}

    def test_values_stringified_and_none_dropped(self):
        """Test non-string values become strings and None disappears."""
        result = parse_tool_call(ToolCall(name="id_student_id", arguments={"student_id": 412345678}))
        assert result.params == {"student_id": "412345678"}
        result = parse_tool_call(ToolCall(name="id_search", arguments={"name": None}))
        assert result.params == {}

    def test_unknown_function(self):
        """Test unknown function names are schema violations."""
        with pytest.raises(SchemaViolationError):
            parse_tool_call(ToolCall(name="rm_rf"))

    def test_direct_reply(self):
        """Test direct_reply is flagged."""
        result = parse_tool_call(ToolCall(name="direct_reply", arguments={"message": "你好！"}))
        assert result.is_direct_reply
        assert result.params["message"] == "你好！"

    def test_help(self):
        """Test help is flagged."""
        assert parse_tool_call(ToolCall(name="help")).is_help


class TestParseVendorResponse:
    """Test the forced-call response check."""

    def test_text_answer_rejected(self):
        """Test a text-only answer is a schema violation carrying provenance."""
        with pytest.raises(SchemaViolationError) as info:
            parse_vendor_response(VendorResponse(text="hello"), provider="groq", model="llama")
        assert info.value.provider == "groq"
        assert info.value.model == "llama"

    def test_unknown_function_gets_provenance(self):
        """Test provider/model are filled on nested violations."""
        with pytest.raises(SchemaViolationError) as info:
            parse_vendor_response(VendorResponse(tool_call=ToolCall(name="nope")), provider="gemini")
        assert info.value.provider == "gemini"

    def test_describe(self):
        """Test the log form of a result."""
        result = parse_tool_call(ToolCall(name="course_uid", arguments={"uid": "1131U0001"}))
        assert describe(result) == "course.uid(uid='1131U0001')"
        assert describe(None) == "<none>"


class TestExpansionHelpers:
    """Test expansion gating and output cleanup."""

    def test_short_queries_expand(self):
        """Test queries up to 15 codepoints are expanded."""
        assert should_expand("雲端")
        assert should_expand("x" * 15)
        assert not should_expand("x" * 16)

    def test_acronym_forces_expansion(self):
        """Test a long query with an acronym is expanded."""
        query = "我想要找跟 AWS 雲端服務相關而且可以實作的課程"
        assert len(query) > 15
        assert contains_abbreviation(query)
        assert should_expand(query)

    def test_acronym_needs_word_boundary(self):
        """Test acronyms embedded in words do not count."""
        assert not contains_abbreviation("MAIL server")

    def test_blank_never_expands(self):
        """Test whitespace is not expanded."""
        assert not should_expand("   ")

    def test_clean_expansion(self):
        """Test echoed prefixes and newlines are stripped."""
        assert clean_expansion("輸出: AI  人工智慧\nmachine learning") == "AI 人工智慧 machine learning"

    def test_ensure_original_keeps_complete_output(self):
        """Test output already containing the query is kept as-is."""
        assert ensure_original("ai", "AI 人工智慧") == "AI 人工智慧"

    def test_ensure_original_prepends_missing(self):
        """Test missing original tokens are prepended."""
        assert ensure_original("程式設計", "programming coding") == "程式設計 programming coding"

    def test_ensure_original_empty(self):
        """Test empty output returns the original."""
        assert ensure_original(" AWS ", "") == "AWS"

    def test_ensure_original_word_inside_longer_word_is_missing(self):
        """Test an original embedded in a longer word is still prepended."""
        result = ensure_original("AI", "Explainable systems 可解釋系統")
        assert result == "AI Explainable systems 可解釋系統"
        assert "ai" in tokenize(result)

    def test_ensure_original_cjk_tokens(self):
        """Test CJK queries compare by bigram, not by substring."""
        assert ensure_original("雲端", "cloud 雲端運算") == "cloud 雲端運算"
        assert ensure_original("程式設計", "程式 設計").startswith("程式設計 ")

    def test_tokenize_mixed(self):
        """Test ASCII words are lowercased and CJK yields unigrams and bigrams."""
        tokens = tokenize("AWS 雲端")
        assert tokens.count("aws") == 1
        assert {"雲", "端", "雲端"} <= set(tokens)

    def test_expansion_messages(self):
        """Test the user turn embeds the trimmed query."""
        system_prompt, user_text = expansion_messages("  AWS ")
        assert "查詢擴展" in system_prompt
        assert "\nAWS\n" in user_text
