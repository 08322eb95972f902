"""Input truncation for the summarisation request.

The remote model is billed and bounded by tokens; characters are used as a
proxy at roughly 4 characters per token.
"""

from __future__ import annotations

CHARS_PER_TOKEN = 4
DEFAULT_MAX_CHARS = 1024 * CHARS_PER_TOKEN


def truncate_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Cut ``text`` to at most ``max_chars`` characters.

    Prefers ending at the last ``.`` inside the budget (the period is kept).
    Falls back to a hard cut at ``max_chars`` when the budget contains no
    period, or only one at position 0.
    """
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    last_period = truncated.rfind(".")
    if last_period > 0:
        return truncated[: last_period + 1]
    return truncated
