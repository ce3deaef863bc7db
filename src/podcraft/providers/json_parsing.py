"""Parse JSON objects out of free-text model responses.

Used only where a stage asks for JSON in prose instead of using a schema.
Failures come back as a ``ParseOutcome`` value rather than an exception so
the caller decides whether a bad response is fatal or retryable.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ParseOutcome:
    """Result of a free-text JSON parse.

    Attributes:
        ok: True when ``value`` holds a parsed object.
        value: Parsed JSON object, when ok.
        error: Why parsing failed, when not ok.
    """

    ok: bool
    value: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: dict[str, Any]) -> ParseOutcome:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> ParseOutcome:
        return cls(ok=False, error=error)


def _candidates(text: str) -> list[str]:
    """Substrings worth trying as JSON, most specific first."""
    candidates = [m.group(1).strip() for m in _FENCE_PATTERN.finditer(text)]
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    candidates.append(text.strip())
    return candidates


def parse_json_object(text: str | None) -> ParseOutcome:
    """Extract a JSON object from a model response.

    Tries fenced code blocks first, then the outermost brace span, then the
    whole text. ``strict=False`` tolerates raw control characters inside
    string values, which models emit routinely.

    Args:
        text: Raw model output.

    Returns:
        ParseOutcome with the first candidate that parses to a JSON object.
    """
    if not text or not text.strip():
        return ParseOutcome.failure("empty response")

    last_error = "no JSON object found"
    for candidate in _candidates(text):
        if not candidate:
            continue
        try:
            value = json.loads(candidate, strict=False)
        except json.JSONDecodeError as e:
            last_error = f"invalid JSON at line {e.lineno} column {e.colno}: {e.msg}"
            continue
        if isinstance(value, dict):
            return ParseOutcome.success(value)
        last_error = f"expected a JSON object, got {type(value).__name__}"

    return ParseOutcome.failure(last_error)
