"""Unit tests for error classification and operator messages."""

import pytest

from binding_lab.errors import (
    FallbackExhausted,
    NotFound,
    ParseError,
    ProviderError,
    ProviderTimeout,
    RateLimited,
    ValidationError,
    classify_error,
    describe_error,
)
from binding_lab.models import ErrorKind


class TestClassifyError:
    """Tests for mapping exceptions onto ErrorKind."""

    @pytest.mark.parametrize(
        "error, expected",
        [
            (ParseError("Expecting value", "oops", "oops"), ErrorKind.JSON_PARSE),
            (ProviderTimeout("a/b", "timed out"), ErrorKind.TIMEOUT),
            (ProviderError("a/b", "HTTP 500", status_code=500), ErrorKind.API_ERROR),
            (RateLimited("a/b", "slow down", status_code=429), ErrorKind.API_ERROR),
            (NotFound("a/b"), ErrorKind.NOT_FOUND),
            (ValueError("something else"), ErrorKind.UNKNOWN),
            (ValidationError("bad input"), ErrorKind.UNKNOWN),
        ],
    )
    def test_direct_classification(self, error, expected):
        assert classify_error(error) == expected

    def test_exhausted_chain_classified_by_last_error(self):
        error = FallbackExhausted("judge", 2, ProviderTimeout("a/b", "timed out"))
        assert classify_error(error) == ErrorKind.TIMEOUT

    def test_exhausted_chain_without_last_error(self):
        assert classify_error(FallbackExhausted("judge", 0, None)) == ErrorKind.UNKNOWN


class TestDescribeError:
    """Tests for operator-facing error text."""

    def test_fallback_exhausted_message(self):
        error = FallbackExhausted("baseline", 3, ProviderError("a/c", "[502] Bad gateway"))
        assert str(error) == (
            "All baseline models failed after 3 attempt(s). Last error: [502] Bad gateway"
        )

    def test_rate_limit_labelled(self):
        error = FallbackExhausted("judge", 1, RateLimited("a/b", "[429] Too many requests"))
        assert describe_error(error).startswith("Rate limited: ")

    def test_parse_error_includes_full_response(self):
        error = ParseError("Expecting value", raw_text="not json at all", cleaned_text="not json at all")
        message = describe_error(error)
        assert message.startswith("JSON Parse Error: Expecting value")
        assert "Full Response:\nnot json at all" in message
        assert message.endswith("Cleaned Response:\nnot json at all")

    def test_parse_error_keeps_full_cleaned_text(self):
        cleaned = "{" + "x" * 500
        error = ParseError("Unterminated string", raw_text="```json\n" + cleaned, cleaned_text=cleaned)
        message = describe_error(error)
        assert message.endswith(cleaned)
        assert message.count(cleaned) == 2

    def test_not_found_message(self):
        assert describe_error(NotFound("x/y")) == "Model not found in available models list: x/y"

    def test_empty_exception_uses_type_name(self):
        assert describe_error(RuntimeError()) == "RuntimeError"
