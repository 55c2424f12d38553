"""
Text helpers shared by the analysis stations.
"""

import json
import re
from typing import Any, List, Optional

from .llm_constants import PLACEHOLDER_NA, PLACEHOLDER_UNDETERMINED


def to_text(value: Any) -> str:
    """
    Coerce an arbitrary model-returned value into display text.

    Args:
        value: String, number, list, mapping or None

    Returns:
        A string; empty for None
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "\n".join(to_text(item) for item in value if item is not None)
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def safe_sub(text: Optional[str], limit: int) -> str:
    """Truncate text to at most ``limit`` characters."""
    if not text:
        return ""
    return text[:limit]


def undetermined(language: str = "ar") -> str:
    """Placeholder for a field the service did not populate."""
    return PLACEHOLDER_UNDETERMINED.get(language, PLACEHOLDER_UNDETERMINED["en"])


def text_or_placeholder(value: Any, placeholder: str = PLACEHOLDER_NA) -> str:
    """Return ``value`` as text, or the placeholder when it is empty."""
    text = to_text(value).strip()
    return text if text else placeholder


def string_list(value: Any) -> List[str]:
    """
    Normalize a model-returned value into a list of non-empty strings.

    Accepts a list (items are coerced to text), or a single string which
    is split on newlines with list bullets removed.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [to_text(item).strip() for item in value]
    else:
        items = [
            re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip()
            for line in to_text(value).splitlines()
        ]
    return [item for item in items if item]


_MARKDOWN_PATTERNS = [
    (re.compile(r"```[a-zA-Z]*\n?"), ""),
    (re.compile(r"`([^`]*)`"), r"\1"),
    (re.compile(r"^[ \t]{0,3}#{1,6}[ \t]*", re.MULTILINE), ""),
    (re.compile(r"^[ \t]{0,3}>[ \t]?", re.MULTILINE), ""),
    (re.compile(r"^[ \t]*[-*+•][ \t]+", re.MULTILINE), ""),
    (re.compile(r"^[ \t]*\d+[.)][ \t]+", re.MULTILINE), ""),
    (re.compile(r"\*\*\*(.+?)\*\*\*", re.DOTALL), r"\1"),
    (re.compile(r"\*\*(.+?)\*\*", re.DOTALL), r"\1"),
    (re.compile(r"__(.+?)__", re.DOTALL), r"\1"),
    (re.compile(r"(?<!\w)\*(?!\s)(.+?)(?<!\s)\*(?!\w)"), r"\1"),
    (re.compile(r"(?<!\w)_(?!\s)(.+?)(?<!\s)_(?!\w)"), r"\1"),
    (re.compile(r"^[ \t]*(?:-{3,}|\*{3,}|_{3,})[ \t]*$", re.MULTILINE), ""),
]


def strip_markdown(text: str) -> str:
    """
    Remove markdown emphasis, heading, list, quote and code markup.

    Line breaks are preserved; runs of three or more blank lines are
    collapsed to one blank line.

    Args:
        text: Text possibly containing markdown

    Returns:
        Plain text
    """
    if not text:
        return ""
    cleaned = text
    for pattern, replacement in _MARKDOWN_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()
