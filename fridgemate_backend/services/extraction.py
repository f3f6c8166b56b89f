"""Isolate the JSON object inside free-form model output."""

from __future__ import annotations

import re

_OPENING_FENCE = re.compile(r"^`{3,}[A-Za-z0-9_+-]*\s*", re.MULTILINE)
_CLOSING_FENCE = re.compile(r"\s*`{3,}$", re.MULTILINE)

NO_JSON_FOUND_MESSAGE = "AI 응답에서 유효한 JSON을 찾을 수 없습니다. 다시 시도해주세요."


class ExtractionError(ValueError):
    """Raised when model output cannot be narrowed down to a JSON object."""


class NoJsonFoundError(ExtractionError):
    """Raised when the text has no ``{ ... }`` pair at all."""


def strip_code_fences(text: str) -> str:
    """Drop triple-backtick fences (with optional language tag) and trim."""

    cleaned = (text or "").strip()
    cleaned = _OPENING_FENCE.sub("", cleaned)
    cleaned = _CLOSING_FENCE.sub("", cleaned)
    return cleaned.strip()


def extract_json_text(raw_text: str) -> str:
    """Return the candidate JSON object text inside ``raw_text``.

    The slice runs from the first ``{`` to the last ``}`` rather than a
    balanced-bracket scan, so prose before and after the object is
    tolerated. The result is not guaranteed to parse.
    """

    candidate = strip_code_fences(raw_text)
    if candidate.startswith("{") and candidate.endswith("}"):
        return candidate

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise NoJsonFoundError(NO_JSON_FOUND_MESSAGE)
    return candidate[start : end + 1]
