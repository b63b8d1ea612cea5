"""Lenient JSON decoding for model output.

Accepted repairs, applied in this order until one parses:

1. Strip surrounding whitespace and a Markdown code fence (```json ... ```).
2. Parse directly.
3. If the result is itself a JSON string, parse that string (double-encoded).
4. Cut everything before the first `{` or `[`, drop trailing commas before a
   closing bracket, drop a dangling `,` or `:` at the end, close an open
   string and append the closers for every unbalanced `{` / `[`.

Nothing else is attempted. Anything that still fails raises
`LenientJSONError`.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(?P<body>.*?)\n?```$", flags=re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*(?=[}\]])")


class LenientJSONError(ValueError):
    """Raised when no accepted repair produces valid JSON."""


def strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = _FENCE.match(stripped)
    if match:
        return match.group("body").strip()
    if stripped.startswith("```"):
        # Truncated fence with no closing marker.
        first_newline = stripped.find("\n")
        return stripped[first_newline + 1 :].strip() if first_newline != -1 else ""
    return stripped


def repair_truncated(text: str) -> str:
    """Close unbalanced brackets and strings in a truncated JSON document."""

    starts = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not starts:
        return text
    body = _TRAILING_COMMA.sub("", text[min(starts) :])

    closers: list[str] = []
    in_string = False
    escaped = False
    for char in body:
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
            closers.append("}")
        elif char == "[":
            closers.append("]")
        elif char in "}]" and closers and closers[-1] == char:
            closers.pop()

    if in_string:
        if escaped:
            body = body[:-1]
        body += '"'
    body = body.rstrip()
    while body and body[-1] in ",:":
        body = body[:-1].rstrip()
    return _TRAILING_COMMA.sub("", body + "".join(reversed(closers)))


def loads_lenient(text: str) -> Any:
    if not isinstance(text, str) or not text.strip():
        raise LenientJSONError("empty payload")

    candidate = strip_code_fence(text)
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        pass
    else:
        return _decode_nested(value)

    repaired = repair_truncated(candidate)
    try:
        return _decode_nested(json.loads(repaired))
    except json.JSONDecodeError as exc:
        raise LenientJSONError(f"unrecoverable JSON payload: {exc.msg}") from exc


def _decode_nested(value: Any) -> Any:
    if isinstance(value, str):
        inner = strip_code_fence(value)
        try:
            return json.loads(inner)
        except json.JSONDecodeError:
            return value
    return value
