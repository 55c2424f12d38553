"""
Lenient JSON extraction from free-form model output.

Model responses are plain text. Structured content is recovered client-side
with an ordered set of strategies, the last of which repairs responses cut
off by the service's output token limit. When nothing can be recovered the
caller gets an ``Unstructured`` value carrying the raw text instead of an
exception.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from .llm_constants import MAX_REPAIR_ATTEMPTS

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_OPEN_FENCE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*)$")
_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class Structured:
    """A response whose body parsed into a JSON object or array."""
    data: Union[dict, list]


@dataclass(frozen=True)
class Unstructured:
    """A response with no recoverable JSON; consumers present it as prose."""
    raw_text: str


ParsedContent = Union[Structured, Unstructured]

# Marks a failed parse; None is the valid result of parsing "null"
_NOT_PARSED = object()


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except (ValueError, TypeError):
        return _NOT_PARSED


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _first_opener(text: str) -> int:
    positions = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    return min(positions) if positions else -1


def _delimited_substring(text: str) -> Optional[Any]:
    """Parse from the first opening brace/bracket to its last matching closer."""
    start = _first_opener(text)
    if start == -1:
        return None
    end = text.rfind(_CLOSERS[text[start]])
    if end > start:
        value = _loads(text[start:end + 1])
        if _is_container(value):
            return value
    # Trailing text may itself contain braces; decode one value and stop
    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except ValueError:
        return None
    return value if _is_container(value) else None


def close_open_brackets(fragment: str) -> Optional[str]:
    """
    Append the closers needed to balance a truncated JSON fragment.

    Args:
        fragment: JSON text that starts with ``{`` or ``[``

    Returns:
        The balanced text, or None when the fragment ends inside a string
        or has mismatched brackets
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for char in fragment:
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
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
    if in_string:
        return None
    trimmed = fragment.rstrip().rstrip(",").rstrip()
    return trimmed + "".join(reversed(stack))


def _repair_truncated(text: str) -> Optional[Any]:
    """
    Recover the longest parseable prefix of a truncated response.

    Slices up to and including the last ``}`` or ``]`` and parses that
    prefix, first as is and then with its still-open brackets closed.
    Earlier closers are tried when the last one does not yield JSON.
    """
    start = _first_opener(text)
    if start == -1:
        return None
    body = text[start:]
    closer_positions = [i for i, char in enumerate(body) if char in "}]"]
    for end in reversed(closer_positions[-MAX_REPAIR_ATTEMPTS:]):
        prefix = body[:end + 1]
        value = _loads(prefix)
        if _is_container(value):
            return value
        balanced = close_open_brackets(prefix)
        if balanced is not None:
            value = _loads(balanced)
            if _is_container(value):
                return value
    return None


def extract_json(text: Optional[str]) -> Optional[Any]:
    """
    Extract a JSON value from raw model output.

    The whole text is returned as parsed when it is valid JSON of any kind.
    The recovery strategies only accept an object or array.

    Strategies, in order:
    1. direct parse of the whole text
    2. contents of a fenced code block (```json ... ``` or ``` ... ```)
    3. first brace/bracket-delimited substring
    4. truncation repair of the text after its first opener

    Args:
        text: Raw response text

    Returns:
        The parsed value, or None when no strategy succeeds
    """
    if not text or not text.strip():
        return None
    stripped = text.strip()

    value = _loads(stripped)
    if value is not _NOT_PARSED:
        return value

    candidates = [match.group(1) for match in _FENCED_BLOCK.finditer(stripped)]
    if not candidates:
        open_fence = _OPEN_FENCE.search(stripped)
        if open_fence:
            candidates.append(open_fence.group(1))
    for candidate in candidates:
        value = _loads(candidate.strip())
        if _is_container(value):
            return value
    # A fenced body wins over stray braces elsewhere in the text
    scopes = [candidate for candidate in candidates if _first_opener(candidate) != -1]
    scopes.append(stripped)

    for scope in scopes:
        value = _delimited_substring(scope)
        if value is not None:
            return value

    for scope in scopes:
        value = _repair_truncated(scope)
        if value is not None:
            logger.debug("Recovered JSON from a truncated response")
            return value

    return None


def parse_payload(text: Optional[str]) -> ParsedContent:
    """Classify raw model output as ``Structured`` or ``Unstructured``."""
    value = extract_json(text)
    if not _is_container(value):
        return Unstructured(raw_text=text or "")
    return Structured(data=value)


def sanitize_partial_payload(value: Any) -> Any:
    """Recursively drop None entries from dicts and lists."""
    if isinstance(value, dict):
        return {
            key: sanitize_partial_payload(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, list):
        return [sanitize_partial_payload(item) for item in value if item is not None]
    return value
