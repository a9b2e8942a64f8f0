"""Per-turn diagnostic telemetry.

One SearchLog per turn, kept in a bounded ring buffer (newest first). The
recorder only observes: every method ignores unknown log ids and nothing
here can fail a turn.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import DEBUG_LOG_CAPACITY, DebugErrorType, SearchMode
from .models import SearchResult
from .text_utils import extract_citations, new_id, now_ms

_CAMEL = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, use_enum_values=True, protected_namespaces=()
)
_DAY_MS = 24 * 60 * 60 * 1000


class SearchLog(BaseModel):
    """Diagnostics for a single turn, filled in as the turn progresses."""

    model_config = _CAMEL

    id: str = Field(default_factory=lambda: new_id("log"))
    timestamp: int = Field(default_factory=now_ms)
    query: str
    search_mode: SearchMode
    forced_search: bool = False
    model_name: str

    search_triggered: bool = False
    search_query: str | None = None
    search_duration: float | None = None
    search_result_count: int | None = None
    search_results: List[SearchResult] | None = None

    model_response: str | None = None
    response_duration: float | None = None
    citations_used: List[int] | None = None

    error: str | None = None
    error_type: DebugErrorType | None = None

    total_duration: float | None = None
    token_count: int | None = None


class DebugStats(BaseModel):
    model_config = _CAMEL

    total_queries: int = 0
    search_queries: int = 0
    successful_searches: int = 0
    failed_searches: int = 0
    average_search_duration: int = 0
    average_response_duration: int = 0
    total_tokens_used: int = 0


def classify_error(message: str) -> DebugErrorType:
    """Map an error message onto the coarse categories shown in debug logs."""
    msg = (message or "").lower()
    if "timeout" in msg or "timed out" in msg:
        return DebugErrorType.TIMEOUT
    if "429" in msg or "rate limit" in msg or "too many requests" in msg:
        return DebugErrorType.RATE_LIMIT
    if any(ind in msg for ind in ("network", "connection", "connect", "unreachable", "refused")):
        return DebugErrorType.NETWORK
    if "search" in msg:
        return DebugErrorType.SEARCH_FAILED
    return DebugErrorType.MODEL_ERROR


class DebugRecorder:
    def __init__(self, capacity: int = DEBUG_LOG_CAPACITY) -> None:
        self._logs: deque[SearchLog] = deque(maxlen=capacity)

    def _find(self, log_id: str) -> SearchLog | None:
        for log in self._logs:
            if log.id == log_id:
                return log
        logging.debug("Debug log %s not found (evicted or cleared)", log_id)
        return None

    def start_log(self, query: str, search_mode: SearchMode | str, forced_search: bool, model_name: str) -> str:
        log = SearchLog(query=query, search_mode=search_mode, forced_search=forced_search, model_name=model_name)
        self._logs.appendleft(log)
        return log.id

    def log_search_start(self, log_id: str, search_query: str) -> None:
        log = self._find(log_id)
        if log is not None:
            log.search_triggered = True
            log.search_query = search_query

    def log_search_complete(self, log_id: str, results: Iterable[SearchResult], duration_ms: float) -> None:
        log = self._find(log_id)
        if log is not None:
            log.search_results = list(results)
            log.search_result_count = len(log.search_results)
            log.search_duration = duration_ms

    def log_search_error(self, log_id: str, error: str, error_type: DebugErrorType | str) -> None:
        log = self._find(log_id)
        if log is not None:
            log.error = error
            log.error_type = DebugErrorType(error_type)

    def log_model_response(
        self, log_id: str, response: str, duration_ms: float, token_count: int | None = None
    ) -> None:
        log = self._find(log_id)
        if log is None:
            return
        log.model_response = response
        log.response_duration = duration_ms
        log.token_count = token_count
        log.total_duration = (log.search_duration or 0) + duration_ms
        citations = extract_citations(response)
        if citations:
            log.citations_used = citations

    def get_logs(self) -> List[SearchLog]:
        return list(self._logs)

    def get_filtered_logs(
        self,
        *,
        search_only: bool = False,
        errors_only: bool = False,
        model_name: str | None = None,
        since: int | None = None,
    ) -> List[SearchLog]:
        filtered = list(self._logs)
        if search_only:
            filtered = [log for log in filtered if log.search_triggered]
        if errors_only:
            filtered = [log for log in filtered if log.error]
        if model_name:
            filtered = [log for log in filtered if log.model_name == model_name]
        if since is not None:
            filtered = [log for log in filtered if log.timestamp >= since]
        return filtered

    def get_stats(self) -> DebugStats:
        logs = list(self._logs)
        search_logs = [log for log in logs if log.search_triggered]
        avg_search = (
            sum(log.search_duration or 0 for log in search_logs) / len(search_logs) if search_logs else 0
        )
        avg_response = sum(log.response_duration or 0 for log in logs) / len(logs) if logs else 0
        return DebugStats(
            total_queries=len(logs),
            search_queries=len(search_logs),
            successful_searches=sum(1 for log in search_logs if log.search_results),
            failed_searches=sum(1 for log in search_logs if log.error),
            average_search_duration=round(avg_search),
            average_response_duration=round(avg_response),
            total_tokens_used=sum(log.token_count or 0 for log in logs),
        )

    def export_json(self) -> str:
        """Stats plus every log, camelCase keys, newest log first."""
        payload = {
            "exported": datetime.now(timezone.utc).isoformat(),
            "version": "1.0",
            "stats": self.get_stats().model_dump(by_alias=True),
            "logs": [log.model_dump(mode="json", by_alias=True, exclude_none=True) for log in self._logs],
        }
        return json.dumps(payload, indent=2)

    def export_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(
            [
                "Timestamp",
                "Query",
                "Model",
                "Search Mode",
                "Forced",
                "Search Triggered",
                "Search Query",
                "Result Count",
                "Search Duration (ms)",
                "Response Duration (ms)",
                "Total Duration (ms)",
                "Citations",
                "Error",
            ]
        )
        for log in self._logs:
            writer.writerow(
                [
                    datetime.fromtimestamp(log.timestamp / 1000, tz=timezone.utc).isoformat(),
                    log.query,
                    log.model_name,
                    log.search_mode,
                    "Yes" if log.forced_search else "No",
                    "Yes" if log.search_triggered else "No",
                    log.search_query or "",
                    log.search_result_count or 0,
                    round(log.search_duration or 0),
                    round(log.response_duration or 0),
                    round(log.total_duration or 0),
                    ",".join(str(n) for n in log.citations_used or []),
                    log.error or "",
                ]
            )
        return buffer.getvalue().rstrip("\n")

    def clear(self) -> None:
        self._logs.clear()

    def clear_older_than(self, days: float) -> int:
        """Drop logs older than `days`; returns how many were removed."""
        cutoff = now_ms() - days * _DAY_MS
        kept = [log for log in self._logs if log.timestamp >= cutoff]
        removed = len(self._logs) - len(kept)
        self._logs = deque(kept, maxlen=self._logs.maxlen)
        return removed

    def __len__(self) -> int:
        return len(self._logs)


__all__ = ["DebugRecorder", "DebugStats", "SearchLog", "classify_error"]
