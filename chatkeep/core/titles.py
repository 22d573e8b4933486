"""
Session title derivation from the first user message.
"""

from __future__ import annotations

import re

MAX_TITLE_LENGTH = 50
TRUNCATE_AT = 47
MIN_WORD_BREAK = 20
ELLIPSIS = "..."

_WHITESPACE = re.compile(r"\s+")


def generate_title(content: str) -> str | None:
    """
    Derive a short title from message text.

    Whitespace runs collapse to single spaces. Text longer than 50 characters
    is cut to 47 and, if a space sits past offset 20, cut back to that word
    boundary before the ellipsis is added.

    Returns:
        The title, or None if the text is blank
    """
    cleaned = _WHITESPACE.sub(" ", content).strip()
    if not cleaned:
        return None
    if len(cleaned) <= MAX_TITLE_LENGTH:
        return cleaned

    truncated = cleaned[:TRUNCATE_AT]
    last_space = truncated.rfind(" ")
    if last_space > MIN_WORD_BREAK:
        return truncated[:last_space] + ELLIPSIS
    return truncated + ELLIPSIS
