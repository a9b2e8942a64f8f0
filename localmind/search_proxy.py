"""Web search over an HTTP proxy (Ollama's hosted web search API by default)."""

from __future__ import annotations

import logging
from typing import Any, List

import httpx

from .constants import MAX_SEARCH_RESULTS, MIN_SEARCH_RESULTS, PROXY_SNIPPET_CHARS
from .models import SearchResult
from .protocols import SearchResponse
from .text_utils import now_ms


def _status_error(status_code: int) -> str:
    if status_code == 429:
        return "Web search was rate limited (too many requests)"
    if status_code in (408, 504):
        return "Web search timed out"
    return f"Web search failed with HTTP {status_code}"


class SearchProxyClient:
    """POST `{query, max_results}` to a search endpoint and normalize the answer.

    Failures never raise: a non-2xx status or a network error is logged and
    yields an empty result list whose `error` says what went wrong.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    async def search(self, query: str, max_results: int) -> SearchResponse:
        limit = min(max(MIN_SEARCH_RESULTS, int(max_results or 5)), MAX_SEARCH_RESULTS)
        try:
            response = await self._client.post(
                self.url, json={"query": query, "max_results": limit}, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logging.error("Web search proxy request failed for '%s': %s", query, exc)
            error = "Web search timed out" if isinstance(exc, httpx.TimeoutException) else "Web search hit a network error"
            return SearchResponse(query=query, results=[], timestamp=now_ms(), error=error)

        if response.is_error:
            logging.warning("Web search proxy response not OK: %s", response.status_code)
            return SearchResponse(
                query=query, results=[], timestamp=now_ms(), error=_status_error(response.status_code)
            )

        try:
            payload = response.json()
        except ValueError as exc:
            logging.warning("Web search proxy returned invalid JSON: %s", exc)
            payload = {}
        results = self._normalize(payload.get("results") if isinstance(payload, dict) else None, limit)
        logging.info("Web search proxy returned %d results for '%s'", len(results), query)
        return SearchResponse(query=query, results=results, timestamp=now_ms())

    @staticmethod
    def _normalize(raw_results: Any, limit: int) -> List[SearchResult]:
        if not isinstance(raw_results, list):
            return []
        results: List[SearchResult] = []
        for raw in raw_results[:limit]:
            if not isinstance(raw, dict) or not raw.get("url") or not raw.get("title"):
                continue
            snippet = str(raw.get("snippet") or raw.get("description") or raw.get("content") or "")
            if len(snippet) > PROXY_SNIPPET_CHARS:
                snippet = snippet[:PROXY_SNIPPET_CHARS].strip() + "..."
            results.append(SearchResult(title=str(raw["title"]), snippet=snippet or str(raw["title"]), url=str(raw["url"])))
        return results

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["SearchProxyClient"]
