# FILE: tests/test_postback.py
"""
Tests for app/bot/postback.py
Legacy module:action$data and compact JSON postback payloads.
"""

import json

import pytest

from app.bot.postback import (
    MAX_POSTBACK_BYTES,
    decode_postback,
    encode_json_postback,
    encode_postback,
    postback_module,
)


class TestLegacyFormat:
    """Test module:action$d1$d2 payloads."""

    def test_encode(self):
        """Test data items are joined with '$'."""
        assert encode_postback("course", "detail", "1131U0001") == "course:detail$1131U0001"
        assert encode_postback("usage", "query") == "usage:query"

    def test_decode_with_data(self):
        """Test multiple data items decode in order."""
        pb = decode_postback("program:courses$人工智慧學程$extra")
        assert pb.module == "program"
        assert pb.action == "courses"
        assert pb.data == ("人工智慧學程", "extra")
        assert pb.first == "人工智慧學程"
        assert pb.params == {"p0": "人工智慧學程", "p1": "extra"}

    def test_decode_without_data(self):
        """Test a data-less payload decodes when data is optional."""
        pb = decode_postback("usage:query")
        assert pb.action == "query"
        assert pb.data == ()

    def test_missing_data_rejected_when_required(self):
        """Test require_data rejects payloads without '$'."""
        assert decode_postback("program:courses", require_data=True) is None

    def test_missing_separator(self):
        """Test payloads without ':' are malformed."""
        assert decode_postback("garbage") is None
        assert postback_module("garbage") == ""

    def test_empty_module_or_action(self):
        """Test empty module or action are malformed."""
        assert decode_postback(":detail$x") is None
        assert decode_postback("course:$x") is None

    def test_reserved_characters_rejected_on_encode(self):
        """Test separators inside fields are refused."""
        with pytest.raises(ValueError):
            encode_postback("course", "detail", "a$b")
        with pytest.raises(ValueError):
            encode_postback("co:urse", "detail")
        with pytest.raises(ValueError):
            encode_postback("", "detail")

    def test_oversized_encode_rejected(self):
        """Test payloads above the LINE limit are refused."""
        with pytest.raises(ValueError):
            encode_postback("course", "detail", "x" * MAX_POSTBACK_BYTES)


class TestJsonFormat:
    """Test compact JSON payloads."""

    def test_encode_compact(self):
        """Test JSON is compact and keeps CJK readable."""
        payload = encode_json_postback("course", "detail", {"uid": "1131U0001"})
        assert payload == '{"m":"course","a":"detail","p":{"uid":"1131U0001"}}'

    def test_decode(self):
        """Test params decode and also populate data."""
        pb = decode_postback(json.dumps({"m": "id", "a": "department", "p": {"dept": "資工"}}))
        assert pb.module == "id"
        assert pb.action == "department"
        assert pb.params == {"dept": "資工"}
        assert pb.data == ("資工",)
        assert postback_module('{"m":"id","a":"x"}') == "id"

    def test_invalid_json(self):
        """Test broken JSON decodes to None."""
        assert decode_postback("{not json") is None

    def test_missing_fields(self):
        """Test module and action are required."""
        assert decode_postback('{"m":"course"}') is None
        assert decode_postback('{"m":"course","a":"x","p":[1]}') is None

    def test_require_data_applies(self):
        """Test require_data also applies to JSON payloads."""
        assert decode_postback('{"m":"course","a":"detail"}', require_data=True) is None

    def test_oversized_encode_rejected(self):
        """Test the 300 byte bound."""
        with pytest.raises(ValueError):
            encode_json_postback("course", "detail", {"q": "課" * 120})


class TestDecodeGuards:
    """Test guards shared by both formats."""

    def test_empty_payload(self):
        """Test empty and blank payloads decode to None."""
        assert decode_postback("") is None
        assert decode_postback("   ") is None
        assert decode_postback(None) is None

    def test_oversized_payload(self):
        """Test payloads over 300 bytes decode to None."""
        assert decode_postback("course:detail$" + "x" * 400) is None
