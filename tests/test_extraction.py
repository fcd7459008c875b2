"""Tests for JSON recovery from model output and narrative content cleanup."""

import json
from unittest.mock import MagicMock

import pytest

from narrator.extraction import (
    FALLBACK_EXCERPT_CHARS,
    build_fallback,
    clean_content,
    extract_json,
    unwrap_nested,
)
from narrator.normalizer import normalize

# [{"type":"text","text":"```json\n{...}\n```"}]: array -> fence -> object
TRIPLE_NESTED = json.dumps([{
    "type": "text",
    "text": "```json\n" + json.dumps({"title": "T", "summary": "Deep summary"}) + "\n```",
}])

# Model wrote prose around the object inside a text block
PROSE_IN_TEXT_ARRAY = json.dumps([{
    "type": "text",
    "text": 'Here you go: {"summary": "Revenue grew", "insights": []}',
}])


class TestExtractJson:

    def test_object_inside_prose(self):
        raw = 'Here is the result: {"summary":"Revenue grew","insights":[]} Hope it helps.'
        assert extract_json(raw) == '{"summary":"Revenue grew","insights":[]}'

    def test_greedy_span_keeps_nested_objects(self):
        raw = 'Prefix {"a": {"b": 1}, "summary": "x"} suffix'
        assert extract_json(raw) == '{"a": {"b": 1}, "summary": "x"}'

    def test_malformed_text_returns_fallback(self):
        result = json.loads(extract_json("I cannot comply."))
        assert "I cannot comply." in result["summary"]
        assert len(result["insights"]) == 1
        assert result["insights"][0]["title"] == "Processing Error"

    def test_fenced_block(self):
        raw = 'Sure!\n```json\n{"summary": "ok"}\n```\nAnything else?'
        assert json.loads(extract_json(raw)) == {"summary": "ok"}

    def test_triple_nested(self):
        result = json.loads(extract_json(TRIPLE_NESTED))
        assert result == {"title": "T", "summary": "Deep summary"}

    def test_text_array_with_prose_around_object(self):
        result = json.loads(extract_json(PROSE_IN_TEXT_ARRAY))
        assert result == {"summary": "Revenue grew", "insights": []}
        assert normalize(extract_json(PROSE_IN_TEXT_ARRAY)).summary == "Revenue grew"

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "   ",
        "Just some prose, no braces at all.",
        '{"summary": "truncated", "insights": [',
        '{"summary": }',
        "[1, 2, 3]",
        '[{"text": "not json either"}]',
        "```\nnot json\n```",
        12345,
    ])
    def test_always_returns_an_object(self, raw):
        result = json.loads(extract_json(raw))
        assert isinstance(result, dict)

    def test_logs_warning_on_unparseable(self):
        log = MagicMock()
        extract_json("nothing to see", log)
        assert log.warning.called

    def test_valid_span_does_not_warn(self):
        log = MagicMock()
        extract_json('{"summary": "fine"}', log)
        assert not log.warning.called


class TestBuildFallback:

    def test_short_text_not_marked_truncated(self):
        fallback = build_fallback("I cannot comply.")
        assert fallback["summary"].endswith("I cannot comply.")

    def test_long_text_truncated(self):
        raw = "x" * (FALLBACK_EXCERPT_CHARS + 50)
        summary = build_fallback(raw)["summary"]
        assert summary.endswith("x" * FALLBACK_EXCERPT_CHARS + "...")
        assert "x" * (FALLBACK_EXCERPT_CHARS + 1) not in summary

    def test_shape(self):
        fallback = build_fallback(None)
        assert fallback["title"] == "Data Analysis"
        assert fallback["trends"] == []
        assert len(fallback["recommendations"]) == 3
        assert fallback["keyMetrics"]["totalRecords"] == 0
        assert set(fallback["narrative"]) == {"introduction", "mainFindings", "conclusions"}


class TestUnwrapNested:

    def test_prefers_object_with_result_fields(self):
        assert unwrap_nested(TRIPLE_NESTED) == {"title": "T", "summary": "Deep summary"}

    def test_pass_limit(self):
        assert unwrap_nested(TRIPLE_NESTED, max_passes=1) is None

    def test_text_array_with_prose_around_object(self):
        assert unwrap_nested(PROSE_IN_TEXT_ARRAY) == {"summary": "Revenue grew", "insights": []}

    def test_text_array_with_prose_only(self):
        assert unwrap_nested(json.dumps([{"type": "text", "text": "No data today."}])) is None

    def test_message_envelope(self):
        raw = json.dumps({"content": [{"type": "text", "text": json.dumps({"summary": "inner"})}]})
        assert unwrap_nested(raw) == {"summary": "inner"}

    def test_plain_text(self):
        assert unwrap_nested("hello") is None
        assert unwrap_nested(None) is None


class TestCleanContent:

    def test_text_array_with_inner_object(self):
        raw = '[{"type":"text","text":"{\\"title\\":\\"T\\",\\"content\\":\\"Hello\\"}"}]'
        assert clean_content(raw) == "Hello"

    def test_text_array_with_fenced_inner(self):
        raw = json.dumps([{"type": "text", "text": '```json\n{"content": "Deep"}\n```'}])
        assert clean_content(raw) == "Deep"

    def test_text_array_plain_text(self):
        raw = json.dumps([{"type": "text", "text": "Just prose."}])
        assert clean_content(raw) == "Just prose."

    def test_fenced_block(self):
        assert clean_content('```json\n{"content": "Body"}\n```') == "Body"

    def test_bare_object_text_field(self):
        assert clean_content('{"text": "Plain"}') == "Plain"

    def test_content_preferred_over_text(self):
        assert clean_content('{"text": "second", "content": "first"}') == "first"

    def test_object_without_text_fields_unchanged(self):
        raw = '{"title": "Only a title"}'
        assert clean_content(raw) == raw

    def test_invalid_json_unchanged(self):
        raw = "{not json}"
        assert clean_content(raw) == raw

    def test_plain_prose_unchanged(self):
        assert clean_content("Sales rose in Q3.") == "Sales rose in Q3."

    def test_empty_and_none(self):
        assert clean_content("") == ""
        assert clean_content(None) is None

    @pytest.mark.parametrize("raw", [
        '[{"type":"text","text":"{\\"title\\":\\"T\\",\\"content\\":\\"Hello\\"}"}]',
        '```json\n{"content": "{\\"text\\": \\"twice\\"}"}\n```',
        '{"content": "{\\"content\\": \\"{}\\"}"}',
        "plain",
        "{broken",
    ])
    def test_idempotent(self, raw):
        once = clean_content(raw)
        assert clean_content(once) == once
