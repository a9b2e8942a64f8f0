"""Conversation export as JSON or Markdown transcripts."""

from __future__ import annotations

from typing import Literal

from .constants import Role
from .models import Conversation
from .text_utils import format_timestamp, now_ms

ExportFormat = Literal["json", "markdown"]


def to_json(conversation: Conversation) -> str:
    """Full record, camelCase keys, two-space indent."""
    return conversation.model_dump_json(by_alias=True, indent=2)


def from_json(text: str) -> Conversation:
    return Conversation.model_validate_json(text)


def to_markdown(conversation: Conversation) -> str:
    """Readable transcript of user and assistant messages only."""
    parts = [
        f"# {conversation.title}\n\n",
        f"**Created:** {format_timestamp(conversation.created_at)}\n",
        f"**Model:** {conversation.model}\n\n",
        "---\n\n",
    ]
    for message in conversation.messages:
        if message.role == Role.USER:
            parts.append(f"## User\n\n{message.content}\n\n")
        elif message.role == Role.ASSISTANT:
            parts.append(f"## Assistant\n\n{message.content}\n\n")
            for idx, result in enumerate(message.search_results or (), start=1):
                parts.append(f"[{idx}] [{result.title}]({result.url})\n")
            if message.search_results:
                parts.append("\n")
    return "".join(parts)


def export_conversation(conversation: Conversation, fmt: ExportFormat) -> str:
    if fmt == "json":
        return to_json(conversation)
    if fmt == "markdown":
        return to_markdown(conversation)
    raise ValueError(f"Unsupported export format: {fmt}")


def export_filename(conversation: Conversation, fmt: ExportFormat) -> str:
    extension = "json" if fmt == "json" else "md"
    return f"conversation-{conversation.id}-{now_ms()}.{extension}"


__all__ = [
    "ExportFormat",
    "export_conversation",
    "export_filename",
    "from_json",
    "to_json",
    "to_markdown",
]
