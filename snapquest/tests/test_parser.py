"""
Tests for the response parser.

The parser is total: whatever the classifier says, the result has a
non-empty name, description and location.
"""

import pytest

from ..core.models import DETECTION_FAILED, UNKNOWN_LANDMARK, UNKNOWN_LOCATION
from ..detection.parser import ResponseParser, parse_response, strip_code_fences


class TestStripCodeFences:
    """Tests for markdown fence removal."""

    def test_json_fence(self):
        """```json fences are removed."""
        text = '```json\n{"name":"X"}\n```'
        assert strip_code_fences(text) == '{"name":"X"}'

    def test_bare_fence(self):
        """Fences without a language tag are removed."""
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_fence_with_surrounding_prose(self):
        """Only the fenced body is kept."""
        text = 'Here you go:\n```json\n{"a": 1}\n```\nHope it helps'
        assert strip_code_fences(text) == '{"a": 1}'

    def test_unterminated_fence(self):
        """A stray opening fence is dropped."""
        assert strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'

    def test_plain_text_untouched(self):
        assert strip_code_fences("  I see a tower.  ") == "I see a tower."


class TestResponseParser:
    """Tests for ResponseParser.parse."""

    @pytest.fixture
    def parser(self):
        return ResponseParser()

    def test_fenced_json(self, parser):
        """Fenced JSON yields the three fields."""
        candidate = parser.parse('```json\n{"name":"X","description":"Y","location":"Z"}\n```')
        assert (candidate.name, candidate.description, candidate.location) == ("X", "Y", "Z")
        assert not candidate.is_soft_failure

    def test_bare_json(self, parser):
        candidate = parser.parse('{"name": "Union Square", "description": "Main square", "location": "Cluj"}')
        assert candidate.name == "Union Square"
        assert candidate.location == "Cluj"

    def test_prose_falls_back_to_unknown_landmark(self, parser):
        """Non-JSON text becomes an Unknown Landmark with the text as description."""
        candidate = parser.parse("I see a tower.")
        assert candidate.name == UNKNOWN_LANDMARK
        assert candidate.description == "I see a tower."
        assert candidate.location == UNKNOWN_LOCATION
        assert candidate.is_soft_failure

    def test_prose_description_truncated(self, parser):
        """Fallback description keeps the first 100 characters."""
        text = "a" * 250
        candidate = parser.parse(text)
        assert candidate.description == "a" * 100

    def test_empty_response(self, parser):
        """Empty text is a detection failure sentinel."""
        candidate = parser.parse("")
        assert candidate.name == DETECTION_FAILED
        assert candidate.description
        assert candidate.location == UNKNOWN_LOCATION

    def test_none_response(self, parser):
        assert parser.parse(None).name == DETECTION_FAILED

    def test_missing_fields_filled_individually(self, parser):
        """Only the missing field gets a sentinel."""
        candidate = parser.parse('{"name": "Art Museum", "description": "Banffy Palace"}')
        assert candidate.name == "Art Museum"
        assert candidate.description == "Banffy Palace"
        assert candidate.location == UNKNOWN_LOCATION

    def test_missing_name(self, parser):
        candidate = parser.parse('{"description": "A church", "location": "Cluj"}')
        assert candidate.name == UNKNOWN_LANDMARK
        assert candidate.location == "Cluj"

    def test_blank_fields_count_as_missing(self, parser):
        candidate = parser.parse('{"name": "   ", "description": "", "location": null}')
        assert candidate.name == UNKNOWN_LANDMARK
        assert candidate.location == UNKNOWN_LOCATION
        assert candidate.description

    def test_json_array_is_not_an_object(self, parser):
        """A JSON value that is not an object is treated like prose."""
        candidate = parser.parse('["Union Square"]')
        assert candidate.name == UNKNOWN_LANDMARK
        assert candidate.description == '["Union Square"]'

    def test_non_string_values_coerced(self, parser):
        candidate = parser.parse('{"name": 42, "description": "d", "location": "l"}')
        assert candidate.name == "42"

    def test_whitespace_trimmed(self, parser):
        candidate = parser.parse('  {"name": " X ", "description": "Y", "location": "Z"}  ')
        assert candidate.name == "X"

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "```",
        "``````",
        "```json\n```",
        "{",
        "null",
        "0",
        "true",
        '{"name": {}}',
        '{"name": "", "description": "", "location": ""}',
        "\x00\x01binary",
        "{" * 500,
        "ünïcödé 塔",
    ])
    def test_parse_is_total(self, parser, raw):
        """parse() never raises and never returns an empty field."""
        candidate = parser.parse(raw)
        assert candidate.name
        assert candidate.description
        assert candidate.location


def test_parse_response_convenience():
    """parse_response uses a default parser."""
    assert parse_response('{"name":"X","description":"Y","location":"Z"}').name == "X"
