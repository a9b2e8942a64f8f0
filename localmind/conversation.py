"""Conversation storage and statistics.

Persistence to disk is left to the embedding application; the engine only
needs the `ConversationStore` protocol, and the in-memory store below is the
default implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List

from .constants import DEFAULT_CONVERSATION_TITLE, TITLE_MAX_CHARS, Role
from .models import Conversation


@dataclass
class ConversationStats:
    """Statistics about a conversation."""

    messages: int
    user_messages: int
    assistant_messages: int
    search_turns: int
    chars: int
    oldest_timestamp: datetime | None
    newest_timestamp: datetime | None


def new_conversation(model: str) -> Conversation:
    return Conversation(title=DEFAULT_CONVERSATION_TITLE, model=model)


def title_from_message(content: str) -> str:
    """Title derived from the first user message: its first 50 characters."""
    title = content.strip()[:TITLE_MAX_CHARS].strip()
    return title or DEFAULT_CONVERSATION_TITLE


def conversation_stats(conversation: Conversation) -> ConversationStats:
    messages = conversation.messages
    timestamps = [datetime.fromtimestamp(m.timestamp / 1000, tz=timezone.utc) for m in messages]
    return ConversationStats(
        messages=len(messages),
        user_messages=sum(1 for m in messages if m.role == Role.USER),
        assistant_messages=sum(1 for m in messages if m.role == Role.ASSISTANT),
        search_turns=sum(1 for m in messages if m.role == Role.ASSISTANT and m.search_results),
        chars=sum(len(m.content) for m in messages),
        oldest_timestamp=min(timestamps) if timestamps else None,
        newest_timestamp=max(timestamps) if timestamps else None,
    )


class InMemoryConversationStore:
    """Process-local store keyed by conversation id, keeping insertion order."""

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}

    def save(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation
        logging.debug("Saved conversation %s (%d messages)", conversation.id, len(conversation.messages))

    def load(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def load_all(self) -> List[Conversation]:
        return list(self._conversations.values())

    def delete(self, conversation_id: str) -> None:
        if self._conversations.pop(conversation_id, None) is not None:
            logging.debug("Deleted conversation %s", conversation_id)

    def clear_all(self) -> None:
        self._conversations.clear()

    def __len__(self) -> int:
        return len(self._conversations)


__all__ = [
    "ConversationStats",
    "InMemoryConversationStore",
    "conversation_stats",
    "new_conversation",
    "title_from_message",
]
