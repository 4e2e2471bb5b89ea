"""
Tolerant JSON extraction from LLM output.

Model replies that should be JSON often arrive wrapped in markdown fences,
prefixed with chatter, or truncated. parse_json_loose() tries progressively
looser strategies and returns None when nothing parses.
"""

import re
import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^\s*```(?:json|JSON)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json fence and a trailing ``` fence."""
    cleaned = _FENCE_OPEN.sub("", text)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def _try_load(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (ValueError, TypeError):
        return None


def _slice_between(text: str, open_char: str, close_char: str) -> Optional[str]:
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def scan_objects(text: str) -> list[dict]:
    """
    Collect every top-level {...} object that parses on its own.

    Brace depth is tracked outside string literals only, so braces inside
    quoted values and escaped quotes do not confuse the scan.
    """
    objects = []
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start != -1:
                parsed = _try_load(text[start:i + 1])
                if isinstance(parsed, dict):
                    objects.append(parsed)
                start = -1

    return objects


def parse_json_loose(text: Optional[str]) -> Optional[Any]:
    """
    Best-effort extraction of a JSON value from untrusted free text.

    Strategies, in order:
        1. Strip code fences and parse directly
        2. Parse the slice from the first '[' to the last ']'
        3. Parse the slice from the first '{' to the last '}'
        4. Scan for balanced objects and return them as a list

    Returns:
        The parsed value, or None on total failure
    """
    if not text or not text.strip():
        return None

    cleaned = strip_code_fences(text)

    parsed = _try_load(cleaned)
    if parsed is not None:
        return parsed

    for open_char, close_char in (("[", "]"), ("{", "}")):
        fragment = _slice_between(cleaned, open_char, close_char)
        if fragment is not None:
            parsed = _try_load(fragment)
            if parsed is not None:
                return parsed

    objects = scan_objects(cleaned)
    if objects:
        return objects

    logger.debug(f"Could not parse JSON from model output: {cleaned[:100]!r}")
    return None


def parse_json_object(text: Optional[str]) -> Optional[dict]:
    """
    Like parse_json_loose(), but only a dict counts.

    A reply such as "ranked: [2, 1] {...}" parses to a list first, so the
    object strategies are retried on their own before giving up.
    """
    parsed = parse_json_loose(text)
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict):
        return parsed[0]
    if not text:
        return None

    cleaned = strip_code_fences(text)
    fragment = _slice_between(cleaned, "{", "}")
    if fragment is not None:
        obj = _try_load(fragment)
        if isinstance(obj, dict):
            return obj
    objects = scan_objects(cleaned)
    return objects[0] if objects else None


def parse_json_array(text: Optional[str]) -> Optional[list]:
    """Like parse_json_loose(), but only a list counts."""
    parsed = parse_json_loose(text)
    return parsed if isinstance(parsed, list) else None
