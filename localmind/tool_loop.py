"""Iterative tool-calling loop.

Each turn runs Deciding -> Executing -> ... -> Finalizing:

- Deciding: a non-streaming request with the tool schemas attached.
- Executing: every requested call runs in order through the registry and its
  result is appended to the running history as a `tool` message.
- Finalizing: once the model stops asking for tools, the same history is
  streamed again without schemas to produce the user-visible answer.

The number of Deciding calls is capped; exceeding it fails the turn.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from .cancellation import CancellationToken
from .constants import DEFAULT_MAX_TOOL_ITERATIONS, WEB_SEARCH_TOOL_NAME, Role
from .exceptions import ToolIterationError
from .models import SearchResult, ToolCall, ToolExecutionResult
from .protocols import ChatTransport
from .tools import ToolRegistry


@dataclass
class ToolLoopOutcome:
    content: str = ""
    search_results: List[SearchResult] = field(default_factory=list)
    iterations: int = 0
    cancelled: bool = False
    history: List[Dict[str, Any]] = field(default_factory=list)
    last_search_query: str | None = None
    stats: Dict[str, Any] = field(default_factory=dict)


def search_results_from(result: ToolExecutionResult) -> List[SearchResult]:
    """Recover SearchResult records from a successful web_search result."""
    if not result.success or not isinstance(result.data, dict):
        return []
    found: List[SearchResult] = []
    for raw in result.data.get("results") or []:
        try:
            found.append(raw if isinstance(raw, SearchResult) else SearchResult.model_validate(raw))
        except ValueError:
            logging.debug("Skipping unparseable search result: %r", raw)
    return found


class ToolLoopController:
    """Drive model-requested tool calls until the model answers in plain text."""

    def __init__(
        self,
        transport: ChatTransport,
        registry: ToolRegistry,
        max_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.transport = transport
        self.registry = registry
        self.max_iterations = max_iterations

    async def run(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        *,
        on_chunk: Callable[[str], None],
        cancel_token: CancellationToken | None = None,
        options: Dict[str, Any] | None = None,
        on_tool_call: Callable[[str, Dict[str, Any]], None] | None = None,
        on_tool_result: Callable[[str, ToolExecutionResult, float], None] | None = None,
    ) -> ToolLoopOutcome:
        """Run one turn's tool loop over `messages` (left untouched).

        Raises:
            ToolIterationError: the model still requested tools on the last allowed decision
            TransportError: propagated from the transport
        """
        token = cancel_token or CancellationToken()
        history: List[Dict[str, Any]] = list(messages)
        outcome = ToolLoopOutcome(history=history)
        tools = self.registry.get_tool_definitions()

        while True:
            if token.cancelled:
                outcome.cancelled = True
                return outcome
            if outcome.iterations >= self.max_iterations:
                logging.error("Tool loop exceeded %d iterations", self.max_iterations)
                raise ToolIterationError(self.max_iterations)

            outcome.iterations += 1
            logging.debug("Tool decision round %d/%d", outcome.iterations, self.max_iterations)
            decision = await self.transport.chat(
                model, history, cancel_token=token, tools=tools, options=options
            )
            if decision.cancelled:
                outcome.cancelled = True
                return outcome
            if not decision.tool_calls:
                break

            history.append(
                {
                    "role": str(Role.ASSISTANT),
                    "content": "",
                    "tool_calls": [call.to_api() for call in decision.tool_calls],
                }
            )
            for call in decision.tool_calls:
                if token.cancelled:
                    outcome.cancelled = True
                    return outcome
                await self._execute_call(call, history, outcome, on_tool_call, on_tool_result)

        logging.info("Model finished tool use after %d decision round(s); streaming answer", outcome.iterations)
        streamed = await self.transport.stream_chat(
            model, history, on_chunk, cancel_token=token, options=options
        )
        outcome.content = streamed.content
        outcome.cancelled = streamed.cancelled
        outcome.stats = streamed.stats
        return outcome

    async def _execute_call(
        self,
        call: ToolCall,
        history: List[Dict[str, Any]],
        outcome: ToolLoopOutcome,
        on_tool_call: Callable[[str, Dict[str, Any]], None] | None,
        on_tool_result: Callable[[str, ToolExecutionResult, float], None] | None,
    ) -> None:
        name = call.function.name
        args = call.parsed_arguments()
        if name == WEB_SEARCH_TOOL_NAME and args.get("query"):
            outcome.last_search_query = str(args["query"])
        if on_tool_call is not None:
            on_tool_call(name, args)

        started = time.monotonic()
        result = await self.registry.execute(name, args)
        duration_ms = (time.monotonic() - started) * 1000

        if name == WEB_SEARCH_TOOL_NAME:
            outcome.search_results.extend(search_results_from(result))
        if on_tool_result is not None:
            on_tool_result(name, result, duration_ms)

        tool_message: Dict[str, Any] = {
            "role": str(Role.TOOL),
            "content": result.as_tool_content(),
            "tool_name": name,
        }
        if call.id:
            tool_message["tool_call_id"] = call.id
        history.append(tool_message)


__all__ = ["ToolLoopController", "ToolLoopOutcome", "search_results_from"]
