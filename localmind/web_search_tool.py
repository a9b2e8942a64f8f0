"""The `web_search` tool offered to the model."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from .constants import DEFAULT_SEARCH_RESULTS, MAX_SEARCH_RESULTS, MIN_SEARCH_RESULTS, WEB_SEARCH_TOOL_NAME
from .models import SearchResult, ToolExecutionResult
from .protocols import SearchProvider
from .tools import BaseTool


def clamp_max_results(value: Any, default: int = DEFAULT_SEARCH_RESULTS) -> int:
    """Coerce `value` into [1, 10]; missing or non-numeric values use `default`."""
    if value is None or isinstance(value, bool):
        number = default
    else:
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            number = default
    return min(max(MIN_SEARCH_RESULTS, number), MAX_SEARCH_RESULTS)


def format_results_for_llm(results: List[SearchResult]) -> str:
    """Numbered result block the model cites inline as [1], [2], ..."""
    lines = ["", "=== Web Search Results ===", ""]
    for idx, result in enumerate(results, start=1):
        lines.append(f"[{idx}] {result.title}")
        lines.append(result.snippet)
        lines.append(f"Source: {result.url}")
        lines.append("")
    count = len(results)
    lines.append(f"=== End of {count} Results ===")
    lines.append("")
    lines.append(
        "Use the above information to provide a comprehensive answer. "
        "Cite sources inline using [1], [2], etc. after relevant facts. "
        f"Only cite sources [1]-[{count}] that actually exist above."
    )
    return "\n".join(lines) + "\n"


class WebSearchTool(BaseTool):
    name = WEB_SEARCH_TOOL_NAME
    description = (
        "Search the web ONLY when you need information about: (1) Real-time data that changes "
        "minute-to-minute (weather, stocks, sports scores), (2) Events from the past 48 hours, "
        "(3) Explicit user requests to search. DO NOT use for general knowledge, historical facts, "
        "conceptual explanations, or creative tasks."
    )
    parameters: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query to look up on the web",
            },
            "max_results": {
                "type": "number",
                "description": "Maximum number of search results to return (default: 8, max: 10)",
            },
        },
        "required": ["query"],
    }

    def __init__(self, provider: SearchProvider, *, default_max_results: int = DEFAULT_SEARCH_RESULTS) -> None:
        self.provider = provider
        self.default_max_results = clamp_max_results(default_max_results)

    async def execute(self, args: Dict[str, Any]) -> ToolExecutionResult:
        error = self.validate_args(args)
        if error:
            return ToolExecutionResult(success=False, error=error)

        query = str(args["query"]).strip()
        if not query:
            return ToolExecutionResult(success=False, error="Missing required parameter: query")
        max_results = clamp_max_results(args.get("max_results"), self.default_max_results)

        logging.info("Searching for: '%s' (max %d results)", query, max_results)
        try:
            response = await self.provider.search(query, max_results)
        except Exception as exc:
            logging.error("Web search failed: %s", exc)
            return ToolExecutionResult(success=False, error=str(exc) or "Failed to perform web search")

        results = list(response.results)[:max_results]
        if not results and response.error:
            return ToolExecutionResult(success=False, error=response.error)
        if not results:
            return ToolExecutionResult(
                success=True,
                data={"query": query, "results": [], "message": "No search results found"},
            )
        return ToolExecutionResult(
            success=True,
            data={
                "query": query,
                "results": [result.model_dump() for result in results],
                "formatted": format_results_for_llm(results),
                "count": len(results),
            },
        )


__all__ = ["WebSearchTool", "clamp_max_results", "format_results_for_llm"]
