"""Centralized constants for localmind.

This module contains the enumerations and magic numbers used throughout the
codebase, so limits and defaults live in one place.
"""

from __future__ import annotations

from enum import Enum


class SearchMode(str, Enum):
    """How a turn decides whether the web search tool is offered to the model.

    Inherits from str to work as dict keys and in string comparisons.
    """

    OFF = "off"
    SMART = "smart"
    AUTO = "auto"

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


class Role(str, Enum):
    """Chat message roles understood by the model server."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


class MessageStatus(str, Enum):
    """Transient UI status of the assistant placeholder."""

    NONE = "none"
    THINKING = "thinking"
    SEARCHING = "searching"

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


class ModelStatus(str, Enum):
    """Derived availability of the active model."""

    OFFLINE = "offline"
    LOADING = "loading"
    READY = "ready"

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


class DebugErrorType(str, Enum):
    """Error classification recorded in debug logs."""

    SEARCH_FAILED = "search_failed"
    MODEL_ERROR = "model_error"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


# Tool loop
DEFAULT_MAX_TOOL_ITERATIONS = 5  # Decision round trips allowed per turn
WEB_SEARCH_TOOL_NAME = "web_search"

# Search results
MIN_SEARCH_RESULTS = 1
MAX_SEARCH_RESULTS = 10
DEFAULT_SEARCH_RESULTS = 8  # Enough results for good citation coverage
BRIDGE_SNIPPET_CHARS = 2000  # Snippet budget for the in-process ddgs bridge
PROXY_SNIPPET_CHARS = 400  # Snippet budget for the HTTP proxy (~100 tokens)

# Retry behavior
RETRY_INITIAL_DELAY = 0.5  # First delay between search attempts (seconds)
RETRY_JITTER_MAX = 0.2  # Maximum random jitter for retry delay (seconds)
RETRY_BACKOFF_MULTIPLIER = 1.75  # Exponential backoff multiplier
RETRY_MAX_DELAY = 3.0  # Maximum delay between retries (seconds)
THREAD_POOL_HEADROOM = 2  # Extra search threads beyond max concurrent searches

# Context budget
CHARS_PER_TOKEN_ESTIMATE = 4  # Rough estimate of characters per LLM token
CONTEXT_WARNING_THRESHOLD = 0.8  # Warn at 80% of the model's context window
DEFAULT_CONTEXT_LIMIT = 4096  # Fallback window for unknown models

# Debug recorder
DEBUG_LOG_CAPACITY = 100  # Keep the last 100 turn logs

# Conversations
TITLE_MAX_CHARS = 50  # Title derived from the first user message
DEFAULT_CONVERSATION_TITLE = "New Conversation"

# Ollama defaults
DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"
DEFAULT_MODEL = "llama3.2:latest"
DEFAULT_WEB_SEARCH_URL = "https://ollama.com/api/web_search"
WARM_UP_PROMPT = "Hi"

# Timeouts
DEFAULT_REQUEST_TIMEOUT = 300.0  # Long generations stream for minutes
DEFAULT_PROBE_TIMEOUT = 2.0  # Availability probe against /api/tags
DEFAULT_SEARCH_TIMEOUT = 10.0  # Per search request (seconds)

__all__ = [
    # Enums
    "SearchMode",
    "Role",
    "MessageStatus",
    "ModelStatus",
    "DebugErrorType",
    # Numeric constants
    "DEFAULT_MAX_TOOL_ITERATIONS",
    "WEB_SEARCH_TOOL_NAME",
    "MIN_SEARCH_RESULTS",
    "MAX_SEARCH_RESULTS",
    "DEFAULT_SEARCH_RESULTS",
    "BRIDGE_SNIPPET_CHARS",
    "PROXY_SNIPPET_CHARS",
    "RETRY_INITIAL_DELAY",
    "RETRY_JITTER_MAX",
    "RETRY_BACKOFF_MULTIPLIER",
    "RETRY_MAX_DELAY",
    "THREAD_POOL_HEADROOM",
    "CHARS_PER_TOKEN_ESTIMATE",
    "CONTEXT_WARNING_THRESHOLD",
    "DEFAULT_CONTEXT_LIMIT",
    "DEBUG_LOG_CAPACITY",
    "TITLE_MAX_CHARS",
    "DEFAULT_CONVERSATION_TITLE",
    "DEFAULT_OLLAMA_URL",
    "DEFAULT_MODEL",
    "DEFAULT_WEB_SEARCH_URL",
    "WARM_UP_PROMPT",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_PROBE_TIMEOUT",
    "DEFAULT_SEARCH_TIMEOUT",
]
