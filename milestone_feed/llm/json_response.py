"""Tolerant JSON parsing of LLM responses.

Models wrap JSON in markdown fences, prepend prose, or return an envelope
object where a bare array was asked for (and vice versa). The helpers here
accept those shapes and raise `json.JSONDecodeError` / `ValueError` when no
usable JSON is present; callers translate that into their own error type.
"""

from __future__ import annotations

import json
from typing import Any


def parse_json_response(content: str) -> Any:
    """Parse JSON from an LLM response with fenced code block handling.

    Raises:
        json.JSONDecodeError: If JSON cannot be extracted or parsed
    """
    if not content or not content.strip():
        raise json.JSONDecodeError("Empty content", content or "", 0)
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        extracted = _extract_json_snippet(content)
        return json.loads(extracted)


def parse_json_list(content: str, envelope_key: str | None = None) -> list[Any]:
    """Parse a JSON array, unwrapping an object envelope when present.

    With `envelope_key` the envelope must carry that key. Without it, the
    first list-valued field of a single-object response is used.

    Raises:
        json.JSONDecodeError: If no JSON can be parsed
        ValueError: If the JSON holds no array in an accepted position
    """
    parsed = parse_json_response(content)
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        if envelope_key is not None:
            value = parsed.get(envelope_key)
            if isinstance(value, list):
                return value
            raise ValueError(f"response object has no '{envelope_key}' array")
        for value in parsed.values():
            if isinstance(value, list):
                return value
    raise ValueError(f"expected a JSON array, got {type(parsed).__name__}")


def _extract_json_snippet(content: str) -> str:
    """Extract JSON from text: a ```json fence first, else the outermost brackets."""
    fence = _extract_fenced_json(content)
    if fence:
        return fence

    candidates = []
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = content.find(open_ch)
        end = content.rfind(close_ch)
        if start != -1 and end > start:
            candidates.append((start, end))
    if not candidates:
        raise json.JSONDecodeError("No JSON value found", content, 0)
    # whichever structure opens first is the outer one
    start, end = min(candidates)
    return content[start : end + 1]


def _extract_fenced_json(content: str) -> str | None:
    lines = content.splitlines()
    start_idx = None
    for idx, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("```") and (stripped == "```" or "json" in stripped.lower()):
            start_idx = idx + 1
            break
    if start_idx is None:
        return None
    for idx in range(start_idx, len(lines)):
        if lines[idx].strip().startswith("```"):
            snippet = "\n".join(lines[start_idx:idx]).strip()
            return snippet or None
    return None
