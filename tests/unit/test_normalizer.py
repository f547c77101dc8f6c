"""Unit tests for judge response normalization."""

import pytest

from binding_lab.normalizer import (
    ParseFailure,
    ParseSuccess,
    clean_response,
    normalize_response,
    strip_code_fence,
)


class TestStripCodeFence:
    @pytest.mark.parametrize(
        "text",
        [
            '```json\n{"a": 1}\n```',
            '```\n{"a": 1}\n```',
            '  ```JSON\n{"a": 1}```  ',
        ],
    )
    def test_fences_removed(self, text):
        assert strip_code_fence(text) == '{"a": 1}'

    def test_unfenced_text_untouched(self):
        assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'


class TestCleanResponse:
    def test_prose_around_object_dropped(self):
        raw = 'Here is my evaluation:\n{"combinedTotal": 80}\nLet me know if you need more.'
        assert clean_response(raw) == '{"combinedTotal": 80}'

    def test_fenced_object_with_prose(self):
        raw = 'Sure!\n```json\n{"combinedTotal": 80}\n```'
        assert clean_response(raw) == '{"combinedTotal": 80}'

    def test_no_braces_left_alone(self):
        assert clean_response("no json here") == "no json here"


class TestNormalizeResponse:
    """Tests for the typed parse result."""

    def test_fenced_json_parses(self):
        """A fenced judge response normalizes to the same data as the bare object."""
        bare = normalize_response('{"combinedTotal": 80, "evaluation": "good"}')
        fenced = normalize_response('```json\n{"combinedTotal": 80, "evaluation": "good"}\n```')

        assert isinstance(bare, ParseSuccess)
        assert isinstance(fenced, ParseSuccess)
        assert fenced.data == bare.data == {"combinedTotal": 80, "evaluation": "good"}
        assert fenced.ok

    def test_nested_braces_kept(self):
        result = normalize_response(
            'Result: {"translationAccuracy": {"score": 80, "reason": "ok"}, "combinedTotal": 93}'
        )
        assert isinstance(result, ParseSuccess)
        assert result.data["translationAccuracy"] == {"score": 80, "reason": "ok"}

    def test_invalid_json_is_failure_with_raw_and_cleaned(self):
        raw = 'Verdict: {"combinedTotal": 80,,}'
        result = normalize_response(raw)

        assert isinstance(result, ParseFailure)
        assert not result.ok
        assert result.raw == raw
        assert result.cleaned == '{"combinedTotal": 80,,}'
        assert result.message

    def test_prose_only_is_failure(self):
        result = normalize_response("I cannot evaluate this translation.")
        assert isinstance(result, ParseFailure)

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_is_failure(self, raw):
        result = normalize_response(raw)
        assert isinstance(result, ParseFailure)
        assert result.message == "empty response"

    def test_array_is_failure(self):
        result = normalize_response("[1, 2, 3]")
        assert isinstance(result, ParseFailure)
        assert "expected a JSON object" in result.message
