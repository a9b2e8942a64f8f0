"""Rough context-window usage estimate for the active model."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from .constants import CHARS_PER_TOKEN_ESTIMATE, CONTEXT_WARNING_THRESHOLD
from .models import Message
from .model_utils import get_context_limit


@dataclass(frozen=True)
class ContextUsage:
    tokens: int
    limit: int
    percent_used: float
    is_near_limit: bool


def estimate_tokens(text: str) -> int:
    """About four characters per token for English text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)


class ContextBudgetMonitor:
    """Compare the estimated size of a conversation with the model's window."""

    def __init__(self, threshold: float = CONTEXT_WARNING_THRESHOLD) -> None:
        self.threshold = threshold

    @staticmethod
    def get_context_limit(model_name: str) -> int:
        return get_context_limit(model_name)

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return estimate_tokens(text)

    def check(
        self,
        messages: Iterable[Message],
        model_name: str,
        additional_text: str = "",
        threshold: float | None = None,
    ) -> ContextUsage:
        limit = get_context_limit(model_name)
        tokens = sum(estimate_tokens(message.content) for message in messages)
        tokens += estimate_tokens(additional_text)
        percent_used = tokens / limit
        cutoff = self.threshold if threshold is None else threshold
        return ContextUsage(
            tokens=tokens,
            limit=limit,
            percent_used=percent_used,
            is_near_limit=percent_used >= cutoff,
        )

    @staticmethod
    def warning_message(usage: ContextUsage) -> str:
        return (
            f"Conversation is using about {usage.percent_used:.0%} of the model's context window "
            f"({usage.tokens}/{usage.limit} tokens). Start a new conversation to keep answers accurate."
        )


__all__ = ["ContextBudgetMonitor", "ContextUsage", "estimate_tokens"]
