"""Text truncation, timestamp, and identifier helpers for localmind."""

from __future__ import annotations

import re
import time
import uuid
from datetime import datetime, timezone

PATTERN_CITATION = re.compile(r"\[(\d+)\]")


def truncate_text(text: str, max_chars: int) -> str:
    """Truncate text to max_chars, breaking at word boundary.

    Args:
        text: Text to truncate
        max_chars: Maximum characters allowed

    Returns:
        Truncated text with "..." suffix if truncated
    """
    if len(text) <= max_chars:
        return text
    truncated = text[:max_chars].rsplit(" ", 1)[0].rstrip(".,;:")
    return f"{truncated}..."


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    return f"{prefix}-{now_ms()}-{uuid.uuid4().hex[:9]}"


def current_datetime_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_timestamp(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def extract_citations(text: str) -> list[int]:
    """Return the distinct citation numbers `[n]` in order of first appearance."""
    seen: list[int] = []
    for match in PATTERN_CITATION.finditer(text or ""):
        number = int(match.group(1))
        if number not in seen:
            seen.append(number)
    return seen


__all__ = [
    "PATTERN_CITATION",
    "current_datetime_utc",
    "extract_citations",
    "format_timestamp",
    "new_id",
    "now_ms",
    "truncate_text",
]
