"""Exception taxonomy for the evaluation pipeline.

Provider failures advance fallback chains, parse failures zero a candidate's
score, and validation failures abort a run before any network call.
"""

from __future__ import annotations

from binding_lab.models import ErrorKind


class BindingLabError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(BindingLabError):
    """A provider call returned a non-success status or failed in transport."""

    label = "provider error"

    def __init__(self, model_id: str, message: str, status_code: int | None = None):
        self.model_id = model_id
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class RateLimited(ProviderError):
    """The provider signalled rate limiting (HTTP 429)."""

    label = "rate-limited"


class ProviderTimeout(ProviderError):
    """The provider call exceeded its timeout."""

    label = "timeout"


class FallbackExhausted(BindingLabError):
    """Every model in a fallback chain failed."""

    def __init__(self, role: str, attempts: int, last_error: ProviderError | None):
        self.role = role
        self.attempts = attempts
        self.last_error = last_error
        last = last_error.message if last_error is not None else "Unknown error"
        super().__init__(f"All {role} models failed after {attempts} attempt(s). Last error: {last}")


class ParseError(BindingLabError):
    """Judge output was not valid JSON after normalization."""

    def __init__(self, message: str, raw_text: str, cleaned_text: str):
        self.raw_text = raw_text
        self.cleaned_text = cleaned_text
        super().__init__(
            f"JSON Parse Error: {message}. "
            f"Original response: {raw_text[:200]}. "
            f"Cleaned response: {cleaned_text[:200]}"
        )


class NotFound(BindingLabError):
    """A selected model id is missing from the live catalog."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not found in available models list: {model_id}")


class ValidationError(BindingLabError):
    """Pre-flight validation failed; the run is aborted before any call."""


class StoreError(BindingLabError):
    """A persistence operation failed."""


class BindingValidationError(BindingLabError):
    """A binding selection violates slot or distinctness rules."""


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception raised while testing a candidate onto an ErrorKind."""
    if isinstance(error, FallbackExhausted):
        if error.last_error is None:
            return ErrorKind.UNKNOWN
        return classify_error(error.last_error)
    if isinstance(error, ParseError):
        return ErrorKind.JSON_PARSE
    if isinstance(error, ProviderTimeout):
        return ErrorKind.TIMEOUT
    if isinstance(error, ProviderError):
        return ErrorKind.API_ERROR
    if isinstance(error, NotFound):
        return ErrorKind.NOT_FOUND
    return ErrorKind.UNKNOWN


def describe_error(error: BaseException) -> str:
    """Operator-facing message for an error record, labelling rate limits."""
    message = str(error) or type(error).__name__
    root = error.last_error if isinstance(error, FallbackExhausted) else error
    if isinstance(root, RateLimited) and "rate-limited" not in message.lower():
        return f"Rate limited: {message}"
    if isinstance(error, ParseError):
        return (
            f"{message}\n\nFull Response:\n{error.raw_text}"
            f"\n\nCleaned Response:\n{error.cleaned_text}"
        )
    return message
