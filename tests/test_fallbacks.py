# FILE: tests/test_fallbacks.py
"""
Tests for app/llm/fallbacks.py
Primary/secondary provider orchestration for NLU and query expansion.
"""

from unittest.mock import AsyncMock

import pytest

from app.llm.errors import ErrorClass, ProviderError, SchemaViolationError
from app.llm.fallbacks import (
    FallbackIntentParser,
    FallbackQueryExpander,
    should_failover,
)
from app.translation.schemas import ParseResult


class StubAdapter:
    """Just enough of ProviderAdapter for the orchestrators."""

    def __init__(self, provider_id, intent=None, expansion=None):
        self.provider_id = provider_id
        self.parse_intent = AsyncMock(side_effect=intent if isinstance(intent, BaseException) else None,
                                      return_value=intent)
        self.expand_query = AsyncMock(side_effect=expansion if isinstance(expansion, BaseException) else None,
                                      return_value=expansion)


COURSE = ParseResult(module="course", intent="search", params={"keyword": "微積分"})


class TestShouldFailover:
    """Test failover decisions."""

    def test_transient_fails_over(self):
        """Test exhausted transient errors switch providers."""
        assert should_failover(ProviderError("busy", status_code=503))

    def test_unusable_provider_fails_over(self):
        """Test auth and quota failures switch providers."""
        assert should_failover(ProviderError("no", status_code=401))
        assert should_failover(ProviderError("insufficient_quota"))

    def test_request_errors_do_not_fail_over(self):
        """Test bad requests and schema violations stay on the primary."""
        assert not should_failover(ProviderError("bad", status_code=400))
        assert not should_failover(SchemaViolationError("free text"))

    def test_canceled_does_not_fail_over(self):
        """Test canceled calls never switch."""
        assert not should_failover(ProviderError("x", error_class=ErrorClass.CANCELED))


class TestFallbackIntentParser:
    """Test NLU failover."""

    @pytest.mark.asyncio
    async def test_primary_success(self, metrics):
        """Test the primary answer is used and the fallback untouched."""
        primary = StubAdapter("gemini", intent=COURSE)
        fallback = StubAdapter("groq", intent=COURSE)
        parser = FallbackIntentParser(primary, fallback, metrics)

        assert await parser.parse("微積分") == COURSE
        fallback.parse_intent.assert_not_called()
        assert parser.recent_events() == []

    @pytest.mark.asyncio
    async def test_transient_switches_to_fallback(self, metrics):
        """Test exhausted primary switches and records the event."""
        primary = StubAdapter("gemini", intent=ProviderError("busy", status_code=503))
        fallback = StubAdapter("groq", intent=COURSE)
        parser = FallbackIntentParser(primary, fallback, metrics)

        assert await parser.parse("微積分") == COURSE
        events = parser.recent_events()
        assert len(events) == 1
        assert events[0].from_provider == "gemini"
        assert events[0].to_provider == "groq"
        assert events[0].operation == "intent"
        assert events[0].to_dict()["error_type"] == "server_error"
        assert metrics.get("llm_fallback_total", from_provider="gemini", to_provider="groq", operation="nlu") == 1

    @pytest.mark.asyncio
    async def test_permanent_is_not_retried_elsewhere(self):
        """Test a schema violation is raised without touching the fallback."""
        primary = StubAdapter("gemini", intent=SchemaViolationError("free text"))
        fallback = StubAdapter("groq", intent=COURSE)
        parser = FallbackIntentParser(primary, fallback)

        with pytest.raises(SchemaViolationError):
            await parser.parse("hi")
        fallback.parse_intent.assert_not_called()

    @pytest.mark.asyncio
    async def test_both_fail_raises_primary_error(self):
        """Test the primary's error is surfaced when both fail."""
        primary_error = ProviderError("busy", status_code=503, provider="gemini")
        primary = StubAdapter("gemini", intent=primary_error)
        fallback = StubAdapter("groq", intent=ProviderError("down", status_code=502))
        parser = FallbackIntentParser(primary, fallback)

        with pytest.raises(ProviderError) as info:
            await parser.parse("x")
        assert info.value is primary_error

    @pytest.mark.asyncio
    async def test_lone_fallback_promoted(self):
        """Test a secondary-only configuration still parses."""
        fallback = StubAdapter("groq", intent=COURSE)
        parser = FallbackIntentParser(None, fallback)
        assert parser.is_enabled()
        assert parser.providers() == ["groq"]
        assert await parser.parse("x") == COURSE

    @pytest.mark.asyncio
    async def test_no_provider_raises_permanent(self):
        """Test an unconfigured parser is disabled and raises PERMANENT."""
        parser = FallbackIntentParser(None, None)
        assert not parser.is_enabled()
        with pytest.raises(ProviderError) as info:
            await parser.parse("x")
        assert info.value.error_class == ErrorClass.PERMANENT

    @pytest.mark.asyncio
    async def test_deadline_passed_through(self):
        """Test the request deadline reaches the adapter."""
        primary = StubAdapter("gemini", intent=COURSE)
        parser = FallbackIntentParser(primary)
        await parser.parse("x", deadline=123.0)
        primary.parse_intent.assert_awaited_once_with("x", deadline=123.0)


class TestFallbackQueryExpander:
    """Test advisory expansion."""

    @pytest.mark.asyncio
    async def test_expands_short_query(self):
        """Test a short query goes through the primary."""
        primary = StubAdapter("gemini", expansion="AWS Amazon Web Services 雲端")
        expander = FallbackQueryExpander(primary)
        assert await expander.expand("AWS") == "AWS Amazon Web Services 雲端"

    @pytest.mark.asyncio
    async def test_long_query_skipped(self):
        """Test long queries without acronyms are not expanded."""
        primary = StubAdapter("gemini", expansion="unused")
        expander = FallbackQueryExpander(primary)
        query = "我想要找一門可以學到資料分析與統計方法的課程"
        assert await expander.expand(query) == query
        primary.expand_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_failover_then_success(self, metrics):
        """Test expansion also fails over on transient errors."""
        primary = StubAdapter("gemini", expansion=ProviderError("busy", status_code=429))
        fallback = StubAdapter("groq", expansion="AI 人工智慧")
        expander = FallbackQueryExpander(primary, fallback, metrics)
        assert await expander.expand("AI") == "AI 人工智慧"
        assert metrics.get("llm_fallback_total", from_provider="gemini", to_provider="groq", operation="expander") == 1

    @pytest.mark.asyncio
    async def test_all_fail_returns_original(self):
        """Test total failure yields the original query."""
        primary = StubAdapter("gemini", expansion=ProviderError("busy", status_code=503))
        fallback = StubAdapter("groq", expansion=ProviderError("down", status_code=503))
        expander = FallbackQueryExpander(primary, fallback)
        assert await expander.expand("AI") == "AI"

    @pytest.mark.asyncio
    async def test_disabled_returns_original(self):
        """Test no providers means no expansion."""
        assert await FallbackQueryExpander(None).expand("AI") == "AI"
