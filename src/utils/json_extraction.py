"""Recover a JSON object from freeform model output.

Models are asked for JSON but routinely wrap it in prose ("Here is the
data: ...") or markdown code fences.  :func:`extract_json_object` strips
fences and returns the first *balanced* ``{...}`` block that parses,
scanning with awareness of string literals so braces inside values do not
confuse the match.
"""

from __future__ import annotations

import json
import re
from typing import Any

from src.utils.errors import MalformedModelOutputError

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the first JSON object found in *text*.

    Raises
    ------
    MalformedModelOutputError
        If no balanced block parses to a JSON object.
    """
    if not text or not text.strip():
        raise MalformedModelOutputError("Model returned an empty response")

    candidates: list[str] = []
    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        candidates.append(fence_match.group(1))
    candidates.append(text)

    for candidate in candidates:
        for block in _balanced_blocks(candidate):
            try:
                parsed = json.loads(block)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

    raise MalformedModelOutputError(
        f"No JSON object recoverable from model output ({len(text)} chars)"
    )


def _balanced_blocks(text: str):
    """Yield each top-level ``{...}`` substring in order of appearance."""
    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end == -1:
            return
        yield text[start : end + 1]
        start = text.find("{", end + 1)


def _matching_brace(text: str, start: int) -> int:
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return idx
    return -1
