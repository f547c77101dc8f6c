"""Judge response normalization.

Judges are asked for bare JSON but routinely wrap it in markdown fences or
surround it with prose. ``normalize_response`` strips that packaging and
parses what is left, returning a typed result instead of raising.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")


@dataclass(frozen=True)
class ParseSuccess:
    data: dict[str, Any]
    raw: str
    cleaned: str

    ok = True


@dataclass(frozen=True)
class ParseFailure:
    message: str
    raw: str
    cleaned: str

    ok = False


ParseResult = Union[ParseSuccess, ParseFailure]


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def clean_response(text: str) -> str:
    """Strip fences, then any prose before the first ``{``/``[`` or after the last ``}``/``]``."""
    cleaned = strip_code_fence(text)

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if starts:
        cleaned = cleaned[min(starts):]

    end = max(cleaned.rfind("}"), cleaned.rfind("]"))
    if end != -1:
        cleaned = cleaned[: end + 1]

    return cleaned.strip()


def normalize_response(raw: str) -> ParseResult:
    """Clean a raw judge response and parse it as a JSON object."""
    cleaned = clean_response(raw or "")
    if not cleaned:
        return ParseFailure(message="empty response", raw=raw or "", cleaned=cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ParseFailure(message=str(e), raw=raw, cleaned=cleaned)

    if not isinstance(data, dict):
        return ParseFailure(
            message=f"expected a JSON object, got {type(data).__name__}",
            raw=raw,
            cleaned=cleaned,
        )

    return ParseSuccess(data=data, raw=raw, cleaned=cleaned)
