"""localmind - streaming chat with a local Ollama server and web search tools.

This package drives multi-turn conversations with a locally hosted model,
lets tool-capable models call a web search tool in a bounded loop, streams
answers incrementally and records per-turn diagnostics.
"""

from .config import ChatSettings, EngineConfig
from .engine import ConversationEngine, TurnEvent, TurnEventKind, TurnResult
from .exceptions import (
    ConfigurationError,
    InputValidationError,
    LocalMindError,
    ModelNotFoundError,
    ToolIterationError,
    TransportError,
    TurnInProgressError,
)
from .models import Conversation, Message, SearchResult
from .query_classifier import QueryClassifier, QueryType

__version__ = "1.0.0"

__all__ = [
    # Core classes
    "ConversationEngine",
    "EngineConfig",
    "ChatSettings",
    "TurnEvent",
    "TurnEventKind",
    "TurnResult",
    "QueryClassifier",
    "QueryType",
    # Data model
    "Conversation",
    "Message",
    "SearchResult",
    # Exceptions
    "LocalMindError",
    "ConfigurationError",
    "InputValidationError",
    "TurnInProgressError",
    "TransportError",
    "ModelNotFoundError",
    "ToolIterationError",
]
