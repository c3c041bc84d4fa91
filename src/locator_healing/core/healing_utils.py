"""Utility functions shared by resolution and healing."""

import re
from typing import Optional

from .models.healing_models import ErrorKind, HealingContext, QueryLanguage

_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")

SANITIZE_MAX_LENGTH = 50


def sanitize(text: str) -> str:
    """Normalize text for selectors and cache keys.

    Lowercases, strips non-word characters (hyphens survive), collapses
    whitespace runs to ``_`` and truncates to 50 characters.
    """
    cleaned = _NON_WORD.sub("", str(text).lower())
    cleaned = _WHITESPACE.sub("_", cleaned)
    return cleaned[:SANITIZE_MAX_LENGTH]


def css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def xpath_literal(value: str) -> str:
    """Quote a value as an XPath 1.0 string literal.

    XPath 1.0 has no escape syntax, so values holding both quote kinds are
    built with ``concat()``.
    """
    value = str(value)
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    pieces = []
    for index, part in enumerate(parts):
        if part:
            pieces.append(f'"{part}"')
        if index < len(parts) - 1:
            pieces.append("'\"'")
    return f"concat({', '.join(pieces)})"


def guess_query_language(selector: str) -> QueryLanguage:
    """Pick the query language for a selector of unknown origin.

    Only used where a selector arrives as bare text (AI answers, registry
    files); strategies generated here carry their language from their kind.
    """
    stripped = selector.strip()
    if stripped.startswith(("/", "(", "./")):
        return QueryLanguage.XPATH
    return QueryLanguage.CSS


def is_balanced(selector: str) -> bool:
    """Check that brackets, parentheses and quotes in a selector are balanced."""
    pairs = {")": "(", "]": "[", "}": "{"}
    stack = []
    quote: Optional[str] = None
    escaped = False

    for char in selector:
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char in "([{":
            stack.append(char)
        elif char in pairs:
            if not stack or stack.pop() != pairs[char]:
                return False

    return quote is None and not stack


def create_healing_context(
    step_text: str,
    page_name: str,
    error_message: str,
    error_kind: ErrorKind = ErrorKind.UNKNOWN,
    attempt_count: int = 1,
    failed_element_ref: Optional[str] = None
) -> HealingContext:
    """Create a HealingContext, normalizing empty references to None.

    Args:
        step_text: Text of the failing step
        page_name: Logical page the step runs against
        error_message: Message of the original failure
        error_kind: Classified error kind
        attempt_count: 1-based attempt number that failed
        failed_element_ref: Registry entry name the step was using, if known

    Returns:
        HealingContext: Populated healing context
    """
    return HealingContext(
        step_text=step_text or "",
        page_name=page_name or "",
        error_message=error_message or "",
        error_kind=error_kind,
        attempt_count=max(1, int(attempt_count)),
        failed_element_ref=failed_element_ref or None
    )
