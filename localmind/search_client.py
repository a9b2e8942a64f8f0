"""In-process web search bridge backed by DDGS.

DDGS is synchronous, so each search runs in a bounded thread pool and the
event loop awaits it; a semaphore keeps the number of in-flight searches at
the configured limit.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable, List, Tuple

from ddgs import DDGS

from .constants import BRIDGE_SNIPPET_CHARS, RETRY_INITIAL_DELAY, THREAD_POOL_HEADROOM
from .models import SearchResult
from .protocols import SearchResponse
from .search_retry_utils import SearchFailure, classify_search_failure, jittered, next_backoff
from .text_utils import now_ms, truncate_text

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from .config import EngineConfig


def normalize_search_result(raw_result: dict[str, Any], max_chars: int = BRIDGE_SNIPPET_CHARS) -> SearchResult | None:
    """Map a raw DDGS hit onto a SearchResult, or None when it has no usable URL."""
    title = str(raw_result.get("title") or "").strip()
    snippet = str(
        raw_result.get("body")
        or raw_result.get("snippet")
        or raw_result.get("description")
        or raw_result.get("content")
        or ""
    ).strip()
    link = str(raw_result.get("href") or raw_result.get("url") or "").strip()
    if not link or not (title or snippet):
        return None
    snippet = truncate_text(snippet, max_chars) if snippet else title
    return SearchResult(title=title or link, snippet=snippet, url=link)


def _close_client(client: Any) -> None:
    close_fn = getattr(client, "close", None)
    if callable(close_fn):
        try:
            close_fn()
        except Exception as exc:
            logging.debug("DDGS client close failed: %s", exc)


class SearchClient:
    """Wrap DDGS calls with retry/backoff and result normalization.

    Can be used as an async context manager to ensure the thread pool is shut down:
        async with SearchClient(cfg) as client:
            response = await client.search("query", 5)
    """

    def __init__(
        self,
        cfg: "EngineConfig",
        *,
        notify_retry: Callable[[int, int, float, Exception], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self._notify_retry = notify_retry
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(
            max_workers=cfg.max_concurrent_searches + THREAD_POOL_HEADROOM, thread_name_prefix="ddgs"
        )
        self._semaphore = asyncio.Semaphore(cfg.max_concurrent_searches)

    async def __aenter__(self) -> "SearchClient":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    async def search(self, query: str, max_results: int) -> SearchResponse:
        async with self._semaphore:
            loop = asyncio.get_running_loop()
            results, error = await loop.run_in_executor(self._executor, self._fetch_sync, query, max_results)
        return SearchResponse(query=query, results=results, timestamp=now_ms(), error=error)

    def _fetch_sync(self, query: str, max_results: int) -> Tuple[List[SearchResult], str | None]:
        """Fetch search results with retry logic.

        Creates a fresh DDGS client for each attempt to avoid connection reuse issues.

        Args:
            query: Search query string
            max_results: Maximum results to request

        Returns:
            Normalized results and None, or an empty list and the failure
            summary once every attempt has failed
        """
        delay = RETRY_INITIAL_DELAY
        retries = self.cfg.search_retries
        failure: SearchFailure | None = None
        attempt = 0
        for attempt in range(1, retries + 1):
            client = None
            try:
                client = DDGS(timeout=int(self.cfg.search_timeout))
                raw_results = client.text(
                    query,
                    region=self.cfg.ddg_region,
                    safesearch=self.cfg.ddg_safesearch,
                    backend=self.cfg.ddg_backend,
                    max_results=max_results,
                )
                results: List[SearchResult] = []
                for entry in raw_results or []:
                    normalized = normalize_search_result(entry)
                    if normalized:
                        results.append(normalized)
                return results[:max_results], None
            except Exception as exc:
                failure = classify_search_failure(exc)
                if not failure.retryable:
                    logging.error(
                        "Unexpected search error for '%s' (attempt %s/%s): %s",
                        query,
                        attempt,
                        retries,
                        exc,
                        exc_info=True,
                    )
                    break
                logging.warning(
                    "Search attempt %s/%s for '%s' failed (%s): %s", attempt, retries, query, failure.error_type, exc
                )
                reason = exc
            finally:
                _close_client(client)

            if attempt < retries:
                if self._notify_retry is not None:
                    self._notify_retry(attempt, retries, delay, reason)
                self._sleep(jittered(delay))
                delay = next_backoff(delay)

        logging.warning("Search failed after %s attempts for '%s'.", attempt, query)
        summary = failure.summary(attempt) if failure else "Web search failed"
        return [], summary

    async def aclose(self) -> None:
        self._executor.shutdown(wait=False)


__all__ = ["SearchClient", "normalize_search_result"]
