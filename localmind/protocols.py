"""Protocol definitions for dependency injection and type hints.

This module defines Protocol classes for the engine's collaborators, so tests
and alternative implementations can be injected without tight coupling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, List, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from .cancellation import CancellationToken
    from .models import Conversation, SearchResult
    from .transport import ChatResponse, StreamOutcome


@dataclass(frozen=True)
class SearchResponse:
    """Normalized answer of a web search capability."""

    query: str
    results: List["SearchResult"] = field(default_factory=list)
    timestamp: int = 0
    error: str | None = None


class SearchProvider(Protocol):
    """Protocol for web search capabilities (in-process bridge or HTTP proxy)."""

    async def search(self, query: str, max_results: int) -> SearchResponse:
        """Search the web.

        Args:
            query: Search query string
            max_results: Upper bound on returned results

        Returns:
            SearchResponse with normalized, truncated results
        """
        ...

    async def aclose(self) -> None:
        """Release resources."""
        ...


class ChatTransport(Protocol):
    """Protocol for the model-server chat transport."""

    async def chat(
        self,
        model: str,
        messages: List[dict[str, Any]],
        *,
        cancel_token: "CancellationToken | None" = None,
        tools: List[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
    ) -> "ChatResponse":
        """Non-streaming, tool-aware request."""
        ...

    async def stream_chat(
        self,
        model: str,
        messages: List[dict[str, Any]],
        on_chunk: Callable[[str], None],
        *,
        cancel_token: "CancellationToken | None" = None,
        tools: List[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> "StreamOutcome":
        """Streaming request delivering content chunks to `on_chunk`."""
        ...

    async def is_available(self) -> bool:
        ...

    async def list_models(self) -> List[dict[str, Any]]:
        ...

    async def warm_up(self, model: str) -> bool:
        ...


class ConversationStore(Protocol):
    """Protocol for conversation persistence (local storage lives outside the engine)."""

    def save(self, conversation: "Conversation") -> None:
        ...

    def load(self, conversation_id: str) -> "Conversation | None":
        ...

    def load_all(self) -> List["Conversation"]:
        ...

    def delete(self, conversation_id: str) -> None:
        ...


__all__ = [
    "ChatTransport",
    "ConversationStore",
    "SearchProvider",
    "SearchResponse",
]
