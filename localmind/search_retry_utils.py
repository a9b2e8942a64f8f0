"""Failure classification for the ddgs search bridge.

Each ddgs failure maps onto a debug error category and a retry decision. The
summary text of a failure is phrased so that `debug_recorder.classify_error`
puts it back into the same category once it reaches the turn's debug log.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from ddgs.exceptions import DDGSException, RatelimitException, TimeoutException

from .constants import RETRY_BACKOFF_MULTIPLIER, RETRY_JITTER_MAX, RETRY_MAX_DELAY, DebugErrorType

_OUTCOME = {
    DebugErrorType.TIMEOUT: "timed out",
    DebugErrorType.RATE_LIMIT: "was rate limited (too many requests)",
    DebugErrorType.NETWORK: "hit a network error",
    DebugErrorType.SEARCH_FAILED: "failed",
}


@dataclass(frozen=True)
class SearchFailure:
    error_type: DebugErrorType
    retryable: bool

    def summary(self, attempts: int) -> str:
        """User-facing error text once the bridge gives up."""
        noun = "attempt" if attempts == 1 else "attempts"
        return f"Web search {_OUTCOME[self.error_type]} after {attempts} {noun}"


def classify_search_failure(exc: BaseException) -> SearchFailure:
    """Map a ddgs or network exception onto a debug category.

    Timeouts, rate limits, other ddgs errors and network errors are retried;
    anything else points at a bug or a payload change and stops the loop.
    """
    if isinstance(exc, TimeoutException):
        return SearchFailure(DebugErrorType.TIMEOUT, True)
    if isinstance(exc, RatelimitException):
        return SearchFailure(DebugErrorType.RATE_LIMIT, True)
    if isinstance(exc, DDGSException):
        return SearchFailure(DebugErrorType.SEARCH_FAILED, True)
    if isinstance(exc, (ConnectionError, OSError)):
        return SearchFailure(DebugErrorType.NETWORK, True)
    return SearchFailure(DebugErrorType.SEARCH_FAILED, False)


def next_backoff(delay: float) -> float:
    return min(delay * RETRY_BACKOFF_MULTIPLIER, RETRY_MAX_DELAY)


def jittered(delay: float) -> float:
    return delay + random.random() * RETRY_JITTER_MAX


__all__ = ["SearchFailure", "classify_search_failure", "next_backoff", "jittered"]
