"""
Unit tests for response parsing and schema validation.
"""

from typing import List

import pytest
from pydantic import BaseModel

from ai_gateway.core.errors import ParseError
from ai_gateway.core.parsers import (
    parse_structured_response,
    schema_instruction,
    try_parse_json,
    validate_ai_response,
    validate_data,
)


class EventIdea(BaseModel):
    title: str
    guests: int
    tags: List[str] = []


class TestTryParseJson:
    """Test JSON extraction from model text."""

    def test_plain_json(self):
        result = try_parse_json('{"a": 1}')
        assert result.ok
        assert result.value == {"a": 1}

    def test_whitespace_is_trimmed(self):
        assert try_parse_json('  \n [1, 2]\n ').value == [1, 2]

    def test_fenced_json_block(self):
        content = 'Here you go:\n```json\n{"title": "Gala"}\n```\nEnjoy!'
        assert try_parse_json(content).value == {"title": "Gala"}

    def test_fenced_block_without_language(self):
        content = '```\n{"title": "Gala"}\n```'
        assert try_parse_json(content).value == {"title": "Gala"}

    def test_invalid_json_is_a_value_not_an_exception(self):
        result = try_parse_json("definitely not json")
        assert not result.ok
        assert "Invalid JSON" in result.error

    def test_empty_content(self):
        assert not try_parse_json("").ok
        assert not try_parse_json(None).ok
        assert not try_parse_json("```json\n```").ok

    def test_unwrap(self):
        assert try_parse_json('{"a": 1}').unwrap() == {"a": 1}
        with pytest.raises(ParseError):
            try_parse_json("nope").unwrap()


class TestParseStructuredResponse:
    """Test the fallback helper."""

    def test_returns_value(self):
        assert parse_structured_response('{"a": 1}') == {"a": 1}

    def test_returns_fallback_on_failure(self):
        assert parse_structured_response("nope") is None
        assert parse_structured_response("nope", fallback={}) == {}


class TestSchemaValidation:
    """Test validation against pydantic schemas."""

    def test_valid_response(self):
        result = validate_ai_response('{"title": "Gala", "guests": 80}', EventIdea)
        assert result.success
        assert result.data == EventIdea(title="Gala", guests=80)
        assert result.errors == []

    def test_field_errors_have_paths(self):
        result = validate_ai_response('{"title": "Gala", "guests": "many", "tags": [1]}', EventIdea)

        assert not result.success
        paths = {error.path for error in result.errors}
        assert "guests" in paths
        assert "tags.0" in paths

    def test_missing_field(self):
        result = validate_ai_response('{"guests": 10}', EventIdea)
        assert not result.success
        assert [error.path for error in result.errors] == ["title"]

    def test_unparsable_text_is_single_root_error(self):
        result = validate_ai_response("not json", EventIdea)
        assert not result.success
        assert len(result.errors) == 1
        assert result.errors[0].path == ""

    def test_plain_types_are_supported(self):
        assert validate_data([1, 2], List[int]).data == [1, 2]
        assert not validate_data(["x"], List[int]).success

    def test_schema_instruction_embeds_schema(self):
        instruction = schema_instruction(EventIdea)
        assert "JSON schema" in instruction
        assert '"guests"' in instruction
