"""Text utilities for previews and log output."""

import re
from typing import Optional

# Characters that make a clean place to cut a preview
BREAK_CHARS = {" ", "\n", "\t", ",", ".", "!", "?", ";", ":", "-", "。", "，", "、"}


def safe_truncate(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate text, preferring a word boundary near the cut.

    Args:
        text: Text to truncate
        max_chars: Maximum characters (excluding suffix)
        suffix: Suffix to append if truncated (default "...")

    Returns:
        Truncated text with suffix if needed
    """
    if not text or len(text) <= max_chars:
        return text

    truncated = text[:max_chars]

    # Nearest break point within the last 20 characters
    for i in range(1, min(20, max_chars - 1) + 1):
        if truncated[-i] in BREAK_CHARS:
            truncated = truncated[:-(i - 1)].rstrip() if i > 1 else truncated.rstrip()
            break

    return truncated + suffix


def normalize_for_display(text: str, max_length: Optional[int] = None) -> str:
    """Collapse whitespace and drop control characters for one-line display."""
    if not text:
        return ""

    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    text = re.sub(r"\s+", " ", text).strip()

    if max_length:
        text = safe_truncate(text, max_length)

    return text
