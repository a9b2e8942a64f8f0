"""Configuration using Pydantic for improved validation and error messages."""

from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from .constants import (
    CONTEXT_WARNING_THRESHOLD,
    DEFAULT_MAX_TOOL_ITERATIONS,
    DEFAULT_MODEL,
    DEFAULT_OLLAMA_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SEARCH_RESULTS,
    DEFAULT_SEARCH_TIMEOUT,
    DEFAULT_WEB_SEARCH_URL,
    MAX_SEARCH_RESULTS,
    MIN_SEARCH_RESULTS,
    SearchMode,
)
from .exceptions import ConfigurationError

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


class _ValidatedModel(BaseModel):
    """Base model that converts Pydantic ValidationError into ConfigurationError."""

    def _format_validation_error(self, e: ValidationError, data: dict) -> str:
        """Format Pydantic ValidationError into user-friendly message.

        Args:
            e: Pydantic ValidationError
            data: Input data dict

        Returns:
            Formatted error message string
        """
        errors = e.errors()
        if not errors:
            return f"Configuration validation failed: {e}"

        first_error = errors[0]
        field_name = str(first_error["loc"][0]) if first_error["loc"] else "unknown"
        error_type = first_error["type"]
        value = data.get(field_name)
        ctx = first_error.get("ctx", {})

        # Fields constrained on both sides are reported as a range
        field_info = type(self).model_fields.get(field_name)
        min_val = None
        max_val = None
        has_gt_constraint = False
        has_lt_constraint = False

        if field_info is not None:
            for constraint in field_info.metadata:
                if getattr(constraint, "ge", None) is not None:
                    min_val = constraint.ge
                elif getattr(constraint, "gt", None) is not None:
                    min_val = constraint.gt
                    has_gt_constraint = True
                if getattr(constraint, "le", None) is not None:
                    max_val = constraint.le
                elif getattr(constraint, "lt", None) is not None:
                    max_val = constraint.lt
                    has_lt_constraint = True

        if min_val is not None and max_val is not None and error_type.startswith(("greater", "less")):
            left_bracket = "(" if has_gt_constraint else "["
            right_bracket = ")" if has_lt_constraint else "]"
            return f"{field_name} must be in {left_bracket}{min_val}, {max_val}{right_bracket}, got {value}"

        if "greater_than_equal" in error_type:
            return f"{field_name} must be >= {ctx.get('ge')}, got {value}"
        elif "less_than_equal" in error_type:
            return f"{field_name} must be <= {ctx.get('le')}, got {value}"
        elif "greater_than" in error_type:
            return f"{field_name} must be > {ctx.get('gt')}, got {value}"
        elif "less_than" in error_type:
            return f"{field_name} must be < {ctx.get('lt')}, got {value}"
        elif "literal_error" in error_type or "enum" in error_type:
            return f"{field_name} must be {ctx.get('expected')}, got {value}"
        elif "extra_forbidden" in error_type:
            return f"Unknown configuration field: {field_name}"
        else:
            msg = first_error.get("msg", str(e))
            return f"Invalid configuration: {msg}"

    def __init__(self, **data: Any) -> None:
        """Initialize with validation error conversion."""
        try:
            super().__init__(**data)
        except ValidationError as e:
            msg = self._format_validation_error(e, data)
            raise ConfigurationError(msg) from e


class ChatSettings(_ValidatedModel):
    """Per-turn chat settings.

    Read-only input to a turn: the engine never mutates it, and changes go
    through `ConversationEngine.update_settings`, which builds a new object.
    """

    search_mode: SearchMode = Field(default=SearchMode.SMART, description="Web search gating mode")
    max_search_results: int = Field(
        default=DEFAULT_SEARCH_RESULTS,
        ge=MIN_SEARCH_RESULTS,
        le=MAX_SEARCH_RESULTS,
        description="Default max_results for the web search tool",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=2048, ge=1, description="Max tokens to predict")
    top_p: float = Field(default=0.9, ge=0.0, le=1.0, description="Nucleus sampling threshold")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="User-supplied system prompt")
    debug_mode: bool = Field(default=False, description="Record per-turn debug logs")

    model_config = {
        "frozen": True,
        "extra": "forbid",
        "use_enum_values": True,
    }

    def model_options(self) -> dict[str, Any]:
        """Sampling options forwarded verbatim to the model server."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_predict": self.max_tokens,
        }


class EngineConfig(_ValidatedModel):
    """Configuration for the engine, its collaborators and the terminal front end.

    All parameters have sensible defaults and can be overridden via CLI
    arguments or environment variables.
    """

    # Model server
    ollama_host: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_URL),
        description="Base URL of the Ollama server",
    )
    model: str = Field(
        default_factory=lambda: os.getenv("LOCALMIND_MODEL", DEFAULT_MODEL),
        description="Chat model name",
    )
    api_key: str | None = Field(
        default_factory=lambda: os.getenv("OLLAMA_API_KEY") or None,
        description="Bearer credential forwarded to the server and the search proxy",
    )
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0, description="Chat request timeout")

    # Tool loop
    max_tool_iterations: int = Field(
        default=DEFAULT_MAX_TOOL_ITERATIONS, ge=1, description="Maximum tool decision round trips per turn"
    )

    # Search capability
    search_backend: Literal["bridge", "proxy"] = Field(default="bridge", description="Web search transport")
    search_proxy_url: str = Field(default=DEFAULT_WEB_SEARCH_URL, description="Web search proxy endpoint")
    ddg_region: str = Field(default="us-en", description="DuckDuckGo region")
    ddg_safesearch: Literal["off", "moderate", "strict"] = Field(
        default="moderate", description="DuckDuckGo SafeSearch level"
    )
    ddg_backend: str = Field(default="auto", description="DuckDuckGo backend")
    search_retries: int = Field(default=3, ge=1, description="Max search attempts")
    max_concurrent_searches: int = Field(default=2, ge=1, description="Max parallel searches")

    # Context budget
    context_warning_threshold: float = Field(
        default=CONTEXT_WARNING_THRESHOLD, gt=0.0, le=1.0, description="Context usage warning threshold"
    )

    # Chat settings (forwarded into ChatSettings)
    search_mode: SearchMode = Field(default=SearchMode.SMART, description="Web search gating mode")
    max_search_results: int = Field(
        default=DEFAULT_SEARCH_RESULTS, ge=MIN_SEARCH_RESULTS, le=MAX_SEARCH_RESULTS, description="Search results"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=2048, ge=1, description="Max tokens to predict")
    top_p: float = Field(default=0.9, ge=0.0, le=1.0, description="Nucleus sampling threshold")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt")
    debug_mode: bool = Field(default=False, description="Record per-turn debug logs")
    search_timeout: float = Field(default=DEFAULT_SEARCH_TIMEOUT, gt=0, description="Search timeout in seconds")

    # Logging configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")
    log_console: bool = Field(default=True, description="Enable console logging")

    # CLI question
    question: str | None = Field(default=None, description="Initial question from CLI")

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
        "use_enum_values": True,
    }

    def chat_settings(self) -> ChatSettings:
        """Build the frozen per-turn settings from this configuration."""
        return ChatSettings(
            search_mode=self.search_mode,
            max_search_results=self.max_search_results,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            system_prompt=self.system_prompt,
            debug_mode=self.debug_mode,
        )


__all__ = ["ChatSettings", "EngineConfig", "DEFAULT_SYSTEM_PROMPT"]
