"""Rule-based query classification for smart web search triggering.

The classifier scans an ordered table of (category, pattern) rules and returns
the category of the first rule that matches. The order is the tie-breaker: a
query mentioning both a creative verb and a recency keyword resolves to
whichever rule comes first, every time.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Pattern


class QueryType(str, Enum):
    """Intent categories, declared in match priority order."""

    EXPLICIT_SEARCH = "explicit_search"  # "search for", "look up", "find"
    REAL_TIME_DATA = "real_time_data"  # weather, stocks, sports scores
    VERY_RECENT_EVENT = "very_recent_event"  # "today", "yesterday", "breaking"
    CURRENT_EVENT = "current_event"  # "recent", "latest", "new" (past week)
    GENERAL_CURRENT = "general_current"  # "current", "now" (past month/year)
    CREATIVE = "creative"  # "write", "create", "imagine"
    CONCEPTUAL = "conceptual"  # "how does", "why is", "explain"
    CONVERSATIONAL = "conversational"  # greetings, self-referential
    FACTUAL = "factual"  # everything else

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


DEFAULT_QUERY_TYPE = QueryType.FACTUAL


def _rule(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


CLASSIFICATION_RULES: tuple[tuple[QueryType, Pattern[str]], ...] = (
    (QueryType.EXPLICIT_SEARCH, _rule(r"\b(search|look\s*up|find|google)\s+(for|about|information)?\b")),
    (QueryType.REAL_TIME_DATA, _rule(r"\b(weather|temperature|forecast|stock\s*price|score|game\s*result)\b")),
    (
        QueryType.VERY_RECENT_EVENT,
        _rule(r"\b(today|yesterday|tonight|this\s*morning|breaking|just\s*announced)\b"),
    ),
    (QueryType.CURRENT_EVENT, _rule(r"\b(latest|recent|new|this\s*week|currently)\b")),
    (
        QueryType.GENERAL_CURRENT,
        _rule(rf"\b(current|now|nowadays|{datetime.now(timezone.utc).year})\b"),
    ),
    (QueryType.CREATIVE, _rule(r"\b(write|create|generate|compose|draft|brainstorm|imagine)\b")),
    (
        QueryType.CONCEPTUAL,
        _rule(r"\b(how\s+does|how\s+do|what\s+is|why\s+is|why\s+do|explain|define|difference\s+between)\b"),
    ),
    (
        QueryType.CONVERSATIONAL,
        _rule(r"\b(hello|hi|hey|what\s+can\s+you|who\s+are\s+you|help\s+me|thank|thanks)\b"),
    ),
)

FORCE_SEARCH_TYPES = frozenset(
    {
        QueryType.EXPLICIT_SEARCH,
        QueryType.REAL_TIME_DATA,
        QueryType.VERY_RECENT_EVENT,
    }
)

# CURRENT_EVENT and GENERAL_CURRENT are in neither set; the caller decides.
DISABLE_SEARCH_TYPES = frozenset(
    {
        QueryType.CONCEPTUAL,
        QueryType.CREATIVE,
        QueryType.CONVERSATIONAL,
        QueryType.FACTUAL,
    }
)

_DESCRIPTIONS: dict[QueryType, str] = {
    QueryType.EXPLICIT_SEARCH: "Explicit search request",
    QueryType.REAL_TIME_DATA: "Real-time data query",
    QueryType.VERY_RECENT_EVENT: "Very recent event (24-48 hours)",
    QueryType.CURRENT_EVENT: "Current event (past week)",
    QueryType.GENERAL_CURRENT: "General current information",
    QueryType.FACTUAL: "Factual question",
    QueryType.CONCEPTUAL: "Conceptual question",
    QueryType.CREATIVE: "Creative task",
    QueryType.CONVERSATIONAL: "Conversational",
}


def classify(text: str) -> QueryType:
    """Classify raw user text into a QueryType.

    Args:
        text: User message as typed

    Returns:
        Category of the first matching rule, or FACTUAL when none match
    """
    for query_type, pattern in CLASSIFICATION_RULES:
        if pattern.search(text or ""):
            return query_type
    return DEFAULT_QUERY_TYPE


def should_force_search(query_type: QueryType) -> bool:
    """Whether the category definitely needs current web information."""
    return query_type in FORCE_SEARCH_TYPES


def should_disable_search(query_type: QueryType) -> bool:
    """Whether the category definitely does not need web search."""
    return query_type in DISABLE_SEARCH_TYPES


def describe(query_type: QueryType) -> str:
    return _DESCRIPTIONS[query_type]


class QueryClassifier:
    """Injectable facade over the module-level classification functions."""

    def classify(self, text: str) -> QueryType:
        return classify(text)

    def should_force_search(self, query_type: QueryType) -> bool:
        return should_force_search(query_type)

    def should_disable_search(self, query_type: QueryType) -> bool:
        return should_disable_search(query_type)

    def describe(self, query_type: QueryType) -> str:
        return describe(query_type)


__all__ = [
    "CLASSIFICATION_RULES",
    "DEFAULT_QUERY_TYPE",
    "DISABLE_SEARCH_TYPES",
    "FORCE_SEARCH_TYPES",
    "QueryClassifier",
    "QueryType",
    "classify",
    "describe",
    "should_disable_search",
    "should_force_search",
]
