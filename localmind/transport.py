"""Streaming HTTP transport for the Ollama chat API.

Streaming responses are newline-delimited JSON: one object per line, the last
carrying `done: true` plus timing statistics. Malformed lines are logged and
skipped so one bad frame never kills an otherwise healthy answer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List

import httpx

from .cancellation import CancellationToken, OperationCancelled
from .constants import DEFAULT_PROBE_TIMEOUT, DEFAULT_REQUEST_TIMEOUT, WARM_UP_PROMPT
from .exceptions import ModelNotFoundError, TransportError
from .models import ToolCall

_STAT_FIELDS = (
    "total_duration",
    "load_duration",
    "prompt_eval_count",
    "prompt_eval_duration",
    "eval_count",
    "eval_duration",
    "done_reason",
)


@dataclass
class StreamOutcome:
    """Result of a streaming call: everything delivered to `on_chunk`, joined."""

    content: str = ""
    done: bool = False
    cancelled: bool = False
    stats: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    """Result of a non-streaming call."""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    done: bool = False
    cancelled: bool = False
    stats: Dict[str, Any] = field(default_factory=dict)
    message: Dict[str, Any] = field(default_factory=dict)


def decode_frame(line: str) -> Dict[str, Any] | None:
    """Decode one NDJSON line; None for blank, malformed or non-object lines."""
    text = line.strip()
    if not text:
        return None
    try:
        frame = json.loads(text)
    except json.JSONDecodeError:
        logging.warning("Skipping malformed stream frame: %r", text[:200])
        return None
    if not isinstance(frame, dict):
        logging.warning("Skipping non-object stream frame: %r", text[:200])
        return None
    return frame


def parse_tool_calls(message: Dict[str, Any]) -> List[ToolCall]:
    """Build ToolCall records from a response message, dropping unusable entries."""
    calls: List[ToolCall] = []
    for raw in message.get("tool_calls") or []:
        try:
            calls.append(ToolCall.model_validate(raw))
        except ValueError as exc:
            logging.warning("Ignoring malformed tool call %r: %s", raw, exc)
    return calls


def _extract_stats(frame: Dict[str, Any]) -> Dict[str, Any]:
    return {key: frame[key] for key in _STAT_FIELDS if key in frame}


async def _next_line(lines: AsyncIterator[str]) -> str | None:
    try:
        return await lines.__anext__()
    except StopAsyncIteration:
        return None


class StreamingChatTransport:
    """Talks to `POST /api/chat` (streaming and not) plus the small probe endpoints.

    Can be used as an async context manager to ensure the HTTP client is closed:
        async with StreamingChatTransport(url) as transport:
            await transport.stream_chat(model, messages, print)
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def __aenter__(self) -> "StreamingChatTransport":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    def _payload(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        stream: bool,
        tools: List[Dict[str, Any]] | None,
        options: Dict[str, Any] | None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
        if tools:
            payload["tools"] = tools
        if options:
            payload["options"] = options
        return payload

    @staticmethod
    def _error_from(response: httpx.Response, model: str) -> TransportError:
        detail = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            detail = str(body["error"])
        else:
            detail = response.text.strip()
        status = response.status_code
        if status == 404 and "not found" in detail.lower():
            return ModelNotFoundError(
                f"Model '{model}' not found. Run 'ollama pull {model}' and retry.", status_code=status
            )
        message = f"HTTP error! status: {status}"
        if detail:
            message = f"{message} - {detail}"
        return TransportError(message, status_code=status)

    async def stream_chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        on_chunk: Callable[[str], None],
        *,
        cancel_token: CancellationToken | None = None,
        tools: List[Dict[str, Any]] | None = None,
        options: Dict[str, Any] | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> StreamOutcome:
        """Stream a chat completion, delivering each content fragment in order.

        Args:
            model: Model name
            messages: Wire-format history, system prompt first
            on_chunk: Called once per non-empty content fragment
            cancel_token: Abandons the request when fired
            tools: Function schemas, if the model may call tools
            options: Sampling options (temperature, top_p, num_predict)
            on_complete: Called exactly once when the stream ends or is cancelled

        Returns:
            StreamOutcome with the accumulated content

        Raises:
            TransportError: non-2xx status or connection failure
        """
        token = cancel_token or CancellationToken()
        outcome = StreamOutcome()
        parts: List[str] = []
        completed = False

        def complete() -> None:
            nonlocal completed
            if not completed:
                completed = True
                if on_complete is not None:
                    on_complete()

        request = self._client.build_request(
            "POST",
            f"{self.base_url}/api/chat",
            json=self._payload(model, messages, True, tools, options),
            headers=self._headers,
        )
        try:
            response = await token.guard(self._client.send(request, stream=True))
            try:
                if response.is_error:
                    await response.aread()
                    raise self._error_from(response, model)
                lines = response.aiter_lines()
                while True:
                    line = await token.guard(_next_line(lines))
                    if line is None:
                        break
                    frame = decode_frame(line)
                    if frame is None:
                        continue
                    if frame.get("error"):
                        raise TransportError(str(frame["error"]))
                    content = (frame.get("message") or {}).get("content") or ""
                    if content:
                        parts.append(content)
                        on_chunk(content)
                    if frame.get("done"):
                        outcome.done = True
                        outcome.stats = _extract_stats(frame)
                        break
            finally:
                await response.aclose()
        except OperationCancelled:
            logging.info("Chat stream cancelled after %d chunks", len(parts))
            outcome.cancelled = True
        except httpx.HTTPError as exc:
            raise TransportError(f"Chat request failed: {exc}") from exc

        outcome.content = "".join(parts)
        complete()
        return outcome

    async def chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        *,
        cancel_token: CancellationToken | None = None,
        tools: List[Dict[str, Any]] | None = None,
        options: Dict[str, Any] | None = None,
    ) -> ChatResponse:
        """Single non-streaming request; the reply may carry `tool_calls`.

        Raises:
            TransportError: non-2xx status, connection failure or undecodable body
        """
        token = cancel_token or CancellationToken()
        try:
            response = await token.guard(
                self._client.post(
                    f"{self.base_url}/api/chat",
                    json=self._payload(model, messages, False, tools, options),
                    headers=self._headers,
                )
            )
        except OperationCancelled:
            logging.info("Chat request cancelled")
            return ChatResponse(cancelled=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"Chat request failed: {exc}") from exc

        if response.is_error:
            raise self._error_from(response, model)
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from chat endpoint: {exc}") from exc
        if not isinstance(body, dict):
            raise TransportError("Invalid response from chat endpoint: expected a JSON object")

        message = body.get("message") or {}
        return ChatResponse(
            content=str(message.get("content") or ""),
            tool_calls=parse_tool_calls(message),
            done=bool(body.get("done", True)),
            stats=_extract_stats(body),
            message=message,
        )

    async def is_available(self) -> bool:
        try:
            response = await self._client.get(f"{self.base_url}/api/tags", timeout=DEFAULT_PROBE_TIMEOUT)
        except httpx.HTTPError as exc:
            logging.debug("Ollama availability probe failed: %s", exc)
            return False
        return response.is_success

    async def list_models(self) -> List[Dict[str, Any]]:
        try:
            response = await self._client.get(f"{self.base_url}/api/tags", timeout=DEFAULT_PROBE_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logging.error("Error listing models: %s", exc)
            return []
        models = data.get("models") if isinstance(data, dict) else None
        return list(models or [])

    async def warm_up(self, model: str) -> bool:
        """Load `model` into memory with a tiny prompt so the first turn starts fast."""
        try:
            response = await self._client.post(
                f"{self.base_url}/api/generate",
                json={"model": model, "prompt": WARM_UP_PROMPT, "stream": False},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            logging.error("Error warming up model '%s': %s", model, exc)
            return False
        if response.is_error:
            logging.error("Error warming up model '%s': HTTP %s", model, response.status_code)
            return False
        logging.info("Model '%s' warmed up", model)
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "ChatResponse",
    "StreamOutcome",
    "StreamingChatTransport",
    "decode_frame",
    "parse_tool_calls",
]
