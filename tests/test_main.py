# FILE: tests/test_main.py
"""
Tests for main.py
FastAPI webhook, health, metrics and usage endpoints over a keyword-only container.
"""

import pytest
from fastapi.testclient import TestClient

from app.container import build_container
from config.settings import Settings
from main import app


@pytest.fixture
def container(catalog):
    return build_container(Settings(llm_enabled=False, user_rate_burst=2, user_rate_refill=0.0), catalog=catalog)


@pytest.fixture
def client(container):
    app.state.container = container
    with TestClient(app) as c:
        yield c
    del app.state.container


def text_event(text, user="U1", token="r1", **source):
    return {
        "type": "message",
        "replyToken": token,
        "source": {"type": "user", "userId": user, **source},
        "message": {"type": "text", "text": text},
    }


class TestContainer:
    """Test application wiring."""

    def test_modules_in_registration_order(self, container):
        """Test modules are registered contact, course, id, program, usage."""
        assert container.registry.names() == ["contact", "course", "id", "program", "usage"]

    def test_llm_disabled_builds_no_adapters(self, container):
        """Test LLM_ENABLED=false leaves the parser disabled."""
        assert not container.intent_parser.is_enabled()
        assert not container.processor.nlu_enabled()

    def test_missing_keys_keyword_only(self, catalog):
        """Test enabling the LLM without any key still runs keyword-only."""
        built = build_container(Settings(llm_enabled=True, api_keys={}), catalog=catalog)
        assert built.intent_parser.providers() == []

    def test_configured_providers_build_chain(self, catalog):
        """Test keyed primary and fallback providers become the failover chain."""
        settings = Settings(llm_enabled=True, primary_provider="groq", fallback_provider="cerebras",
                            api_keys={"groq": "k1", "cerebras": "k2"})
        assert settings.configured_providers() == ["groq", "cerebras"]
        assert settings.nlu_enabled()
        built = build_container(settings, catalog=catalog)
        assert built.intent_parser.providers() == ["groq", "cerebras"]

    def test_duplicate_provider_listed_once(self):
        """Test primary equal to fallback yields a single provider."""
        settings = Settings(llm_enabled=True, primary_provider="groq", fallback_provider="groq",
                            api_keys={"groq": "k1"})
        assert settings.configured_providers() == ["groq"]
        assert not Settings(llm_enabled=False, api_keys={"groq": "k1"}).nlu_enabled()


class TestWebhook:
    """Test POST /webhook."""

    def test_text_event_reply(self, client):
        """Test a keyword message produces a LINE-shaped reply."""
        resp = client.post("/webhook", json={"events": [text_event("學程列表")]})
        assert resp.status_code == 200
        [reply] = resp.json()["replies"]
        assert reply["chat_id"] == "U1"
        assert reply["reply_token"] == "r1"
        message = reply["messages"][0]
        assert message["type"] == "text"
        assert message["text"].startswith("🎓 學程列表")
        assert message["sender"]["name"] == "學程小幫手"
        assert message["quickReply"]["items"]

    def test_group_chat_id_preferred(self, client):
        """Test group and room ids key the reply over the user id."""
        resp = client.post("/webhook", json={"events": [text_event("緊急", groupId="G1")]})
        assert resp.json()["replies"][0]["chat_id"] == "G1"

    def test_postback_event(self, client):
        """Test postback events are routed by prefix."""
        event = {
            "type": "postback",
            "replyToken": "r2",
            "source": {"type": "user", "userId": "U1"},
            "postback": {"data": "usage:explain"},
        }
        resp = client.post("/webhook", json={"events": [event]})
        assert resp.json()["replies"][0]["messages"][0]["text"].startswith("📖 額度說明")

    def test_non_text_and_silent_events_skipped(self, client):
        """Test stickers, follows and malformed postbacks produce no reply."""
        events = [
            {"type": "message", "source": {"userId": "U1"}, "message": {"type": "sticker"}},
            {"type": "follow", "source": {"userId": "U1"}},
            {"type": "postback", "source": {"userId": "U1"}, "postback": {"data": "program:courses_no_split"}},
        ]
        resp = client.post("/webhook", json={"events": events})
        assert resp.status_code == 200
        assert resp.json()["replies"] == []

    def test_throttled_after_burst(self, client):
        """Test the third message from one chat is throttled."""
        for _ in range(2):
            client.post("/webhook", json={"events": [text_event("緊急")]})
        resp = client.post("/webhook", json={"events": [text_event("緊急")]})
        assert "訊息太頻繁" in resp.json()["replies"][0]["messages"][0]["text"]

    def test_unmatched_text_keyword_help(self, client):
        """Test keyword-only mode answers free text with help."""
        resp = client.post("/webhook", json={"events": [text_event("今天天氣如何")]})
        assert resp.json()["replies"][0]["messages"][0]["text"].startswith("📖 請使用關鍵字")

    def test_group_unmatched_without_mention_silent(self, client):
        """Test free text in a group is ignored unless the bot is mentioned."""
        event = text_event("今天天氣如何", type="group", groupId="G1")
        resp = client.post("/webhook", json={"events": [event]})
        assert resp.status_code == 200
        assert resp.json()["replies"] == []

    def test_group_mention_reaches_fallback(self, client):
        """Test a bot mention in a group is answered and keywords need none."""
        mentioned = text_event("@NTPU小工具 今天天氣如何", type="group", groupId="G1")
        mentioned["message"]["mention"] = {
            "mentionees": [{"index": 0, "length": 8, "type": "user", "isSelf": True}],
        }
        keyword = text_event("緊急", token="r2", type="room", roomId="R1")
        resp = client.post("/webhook", json={"events": [mentioned, keyword]})
        first, second = resp.json()["replies"]
        assert first["chat_id"] == "G1"
        assert first["messages"][0]["text"].startswith("📖 請使用關鍵字")
        assert second["chat_id"] == "R1"

    def test_invalid_body(self, client):
        """Test events without a type are rejected."""
        resp = client.post("/webhook", json={"events": [{"source": {}}]})
        assert resp.status_code == 422


class TestOpsEndpoints:
    """Test health, metrics and usage."""

    def test_health(self, client):
        """Test health lists modules and NLU state."""
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["modules"] == ["contact", "course", "id", "program", "usage"]
        assert data["nlu_enabled"] is False
        assert data["llm_providers"] == []

    def test_metrics_after_traffic(self, client):
        """Test counters appear after a keyword route."""
        client.post("/webhook", json={"events": [text_event("學程列表")]})
        data = client.get("/metrics").json()
        routes = data["counters"]["routes_total"]
        assert {"labels": {"route": "keyword"}, "value": 1} in routes
        assert data["rate_limit"]["user_active_keys"] == 1
        assert data["rate_limit"]["llm_active_keys"] == 0
        assert data["recent_failovers"] == []

    def test_usage(self, client):
        """Test usage stats reflect consumed tokens."""
        client.post("/webhook", json={"events": [text_event("緊急")]})
        data = client.get("/usage/U1").json()
        assert data["user"]["burst_available"] == 1
        assert data["user"]["burst_max"] == 2
        assert data["llm"]["daily_max"] == 180
