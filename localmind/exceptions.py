"""Custom exceptions for localmind.

This module defines a hierarchy of exceptions for the different failure
categories of a chat turn, so callers can tell recoverable conditions apart
from errors that must end the turn.
"""

from __future__ import annotations


# ============================================================================
# Base Exception
# ============================================================================


class LocalMindError(Exception):
    """Base exception for all localmind errors.

    All custom exceptions in this project inherit from this base class so a
    single except clause can catch any project-specific error.
    """


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(LocalMindError):
    """Raised when configuration or settings values are invalid.

    Examples:
        - max_search_results outside [1, 10]
        - Unknown search mode
        - Unknown configuration field
    """


class InputValidationError(LocalMindError):
    """Raised when user input cannot start a turn (e.g. empty message)."""


class TurnInProgressError(LocalMindError):
    """Raised when a turn is submitted while another one is still streaming."""


# ============================================================================
# Transport Errors
# ============================================================================


class TransportError(LocalMindError):
    """Raised when the model server answers with a non-2xx status or an
    undecodable body, or cannot be reached at all.

    Transport errors are fatal for the turn and never retried automatically.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelNotFoundError(TransportError):
    """Raised when the server reports that the requested model is not installed."""


# ============================================================================
# Tool Loop Errors
# ============================================================================


class ToolIterationError(LocalMindError):
    """Raised when the model keeps requesting tools past the iteration cap.

    Fatal for the turn; the conversation is left intact so the user can retry.
    """

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Maximum tool iterations reached ({max_iterations})")
        self.max_iterations = max_iterations


# ============================================================================
# Exports
# ============================================================================


__all__ = [
    # Base
    "LocalMindError",
    # Configuration & Validation
    "ConfigurationError",
    "InputValidationError",
    "TurnInProgressError",
    # Transport
    "TransportError",
    "ModelNotFoundError",
    # Tools
    "ToolIterationError",
]
