"""Conversation data model.

Messages and conversations are frozen Pydantic records. Streaming updates go
through `model_copy(update=...)`, so every observer holding an older instance
keeps seeing a consistent snapshot while the engine swaps in the new one.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_CONVERSATION_TITLE, MessageStatus, Role
from .text_utils import new_id, now_ms

_FROZEN = ConfigDict(frozen=True, populate_by_name=True, use_enum_values=True)


class SearchResult(BaseModel):
    """A single web search hit attached to the assistant message that used it."""

    model_config = _FROZEN

    title: str
    snippet: str = ""
    url: str


class ToolFunction(BaseModel):
    model_config = _FROZEN

    name: str
    arguments: str | dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseModel):
    """A model-initiated request to invoke a named function."""

    model_config = _FROZEN

    id: str | None = None
    type: Literal["function"] = "function"
    function: ToolFunction

    def parsed_arguments(self) -> dict[str, Any]:
        """Return the call arguments as a dict.

        Arguments may arrive JSON-encoded or already structured. Malformed
        JSON, or JSON that is not an object, yields an empty dict.
        """
        raw = self.function.arguments
        if isinstance(raw, dict):
            return dict(raw)
        if not raw or not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logging.warning("Malformed arguments for tool '%s': %r", self.function.name, raw[:200])
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ToolExecutionResult(BaseModel):
    """Outcome of a tool execution, fed back to the model as a tool message."""

    success: bool
    data: Any = None
    error: str | None = None

    def as_tool_content(self) -> str:
        """Content of the `role: tool` message built from this result."""
        if self.success and self.data is not None:
            if isinstance(self.data, dict) and self.data.get("formatted"):
                return str(self.data["formatted"])
            return json.dumps(self.data, default=str)
        if self.error:
            return self.error
        return json.dumps(self.data, default=str)


class Message(BaseModel):
    model_config = _FROZEN

    id: str = Field(default_factory=lambda: new_id("msg"))
    role: Role
    content: str = ""
    timestamp: int = Field(default_factory=now_ms)
    status: MessageStatus = MessageStatus.NONE
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    search_results: tuple[SearchResult, ...] | None = Field(default=None, alias="searchResults")
    last_search_query: str | None = Field(default=None, alias="lastSearchQuery")

    def to_api(self) -> dict[str, Any]:
        """Wire representation for the chat endpoint."""
        payload: dict[str, Any] = {"role": str(self.role), "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_api() for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_name:
            payload["tool_name"] = self.tool_name
        return payload


class Conversation(BaseModel):
    model_config = _FROZEN

    id: str = Field(default_factory=lambda: new_id("conv"))
    title: str = DEFAULT_CONVERSATION_TITLE
    messages: tuple[Message, ...] = ()
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    model: str = ""

    def touched(self, **updates: Any) -> "Conversation":
        """Copy with `updates` applied and `updated_at` advanced, never backwards."""
        updates["updated_at"] = max(self.updated_at, now_ms())
        return self.model_copy(update=updates)

    def with_messages(self, *messages: Message) -> "Conversation":
        return self.touched(messages=self.messages + tuple(messages))

    def replace_last_message(self, message: Message) -> "Conversation":
        if not self.messages:
            raise ValueError("Conversation has no message to replace")
        return self.touched(messages=self.messages[:-1] + (message,))

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None


__all__ = [
    "Conversation",
    "Message",
    "SearchResult",
    "ToolCall",
    "ToolExecutionResult",
    "ToolFunction",
]
