"""Conversation engine: the top-level orchestrator for chat turns.

A turn takes one user utterance through search policy, either the plain
streaming path or the tool loop, and incremental updates of the assistant
placeholder. Collaborators are injected so several independent engines can
coexist and tests can script every network call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal

from .cancellation import CancellationToken, OperationCancelled
from .config import ChatSettings, EngineConfig
from .constants import WEB_SEARCH_TOOL_NAME, MessageStatus, ModelStatus, Role, SearchMode
from .context_budget import ContextBudgetMonitor, ContextUsage
from .conversation import InMemoryConversationStore, new_conversation, title_from_message
from .debug_recorder import DebugRecorder, classify_error
from .exceptions import InputValidationError, ModelNotFoundError, TurnInProgressError
from .export import ExportFormat, export_conversation, export_filename
from .model_utils import handle_missing_model, supports_tools, tool_support_message
from .models import Conversation, Message, ToolExecutionResult
from .prompts import build_system_prompt
from .protocols import ChatTransport, ConversationStore, SearchProvider
from .query_classifier import QueryClassifier, QueryType
from .search_client import SearchClient
from .search_proxy import SearchProxyClient
from .tool_loop import ToolLoopController, search_results_from
from .tools import ToolRegistry
from .transport import StreamingChatTransport
from .web_search_tool import WebSearchTool


class TurnEventKind(str, Enum):
    MESSAGE_UPDATED = "message_updated"
    CHUNK = "chunk"
    TOOL_CALL = "tool_call"
    WARNING = "warning"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        """Return the string value."""
        return self.value


@dataclass
class TurnEvent:
    """Incremental notification sent to subscribers while a turn runs."""

    kind: TurnEventKind
    conversation_id: str
    message: Message | None = None
    text: str | None = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnResult:
    conversation: Conversation
    message: Message
    state: Literal["completed", "failed"]
    cancelled: bool = False
    used_tools: bool = False
    query_type: QueryType | None = None
    warnings: List[str] = field(default_factory=list)
    error: str | None = None


TurnListener = Callable[[TurnEvent], None]


def build_search_provider(cfg: EngineConfig) -> SearchProvider:
    """Search capability selected by `cfg.search_backend`."""
    if cfg.search_backend == "proxy":
        return SearchProxyClient(cfg.search_proxy_url, api_key=cfg.api_key, timeout=cfg.search_timeout)
    return SearchClient(cfg)


class ConversationEngine:
    """Drives chat turns against a model server, with optional web search tools.

    Holds the authoritative conversation state; every update replaces the
    current `Conversation` with a new frozen copy. At most one turn runs at a
    time, and `cancel()` ends it early as a normal completion.
    """

    def __init__(
        self,
        cfg: EngineConfig,
        *,
        transport: ChatTransport | None = None,
        registry: ToolRegistry | None = None,
        search_provider: SearchProvider | None = None,
        classifier: QueryClassifier | None = None,
        store: ConversationStore | None = None,
        debug_recorder: DebugRecorder | None = None,
        context_monitor: ContextBudgetMonitor | None = None,
        settings: ChatSettings | None = None,
    ) -> None:
        self.cfg = cfg
        self.settings = settings or cfg.chat_settings()
        self._owned: List[Any] = []

        if transport is None:
            transport = StreamingChatTransport(cfg.ollama_host, api_key=cfg.api_key, timeout=cfg.request_timeout)
            self._owned.append(transport)
        self.transport = transport

        if registry is None:
            if search_provider is None:
                search_provider = build_search_provider(cfg)
                self._owned.append(search_provider)
            registry = ToolRegistry()
            registry.register(WebSearchTool(search_provider, default_max_results=self.settings.max_search_results))
        self.registry = registry

        self.classifier = classifier or QueryClassifier()
        self.store = store or InMemoryConversationStore()
        self.debug_recorder = debug_recorder or DebugRecorder()
        self.context_monitor = context_monitor or ContextBudgetMonitor(cfg.context_warning_threshold)
        self.tool_loop = ToolLoopController(self.transport, self.registry, cfg.max_tool_iterations)

        self.model: str = cfg.model
        self.current_conversation: Conversation | None = None
        self.conversations: List[Conversation] = []
        self.available_models: List[Dict[str, Any]] = []
        self.ollama_available = False
        self.model_loaded = False
        self.is_loading_model = False
        self.error: str | None = None

        self._active_token: CancellationToken | None = None
        self._listeners: List[TurnListener] = []

    async def __aenter__(self) -> "ConversationEngine":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for resource in self._owned:
            try:
                await resource.aclose()
            except Exception as exc:
                logging.debug("Resource close failed: %s", exc)
        self._owned.clear()

    # ------------------------------------------------------------------
    # Status and lifecycle
    # ------------------------------------------------------------------

    @property
    def is_streaming(self) -> bool:
        return self._active_token is not None

    @property
    def model_status(self) -> ModelStatus:
        if not self.ollama_available:
            return ModelStatus.OFFLINE
        if self.is_loading_model or not self.model_loaded:
            return ModelStatus.LOADING
        return ModelStatus.READY

    async def initialize(self, *, warm_up: bool = True) -> bool:
        """Probe the server, list models, load stored conversations and warm up the model.

        Returns:
            False when the server is unreachable (the engine error is set)
        """
        self.error = None
        self.ollama_available = await self.transport.is_available()
        if not self.ollama_available:
            self._set_error("Ollama is not running. Please start Ollama and retry.")
            return False

        self.available_models = await self.transport.list_models()
        if self.available_models and not self.model:
            self.model = str(self.available_models[0].get("name", ""))
        self.conversations = sorted(self.store.load_all(), key=lambda c: c.updated_at, reverse=True)

        if warm_up and self.model:
            await self._warm_up(self.model)
        return True

    async def _warm_up(self, model: str, cancel_token: CancellationToken | None = None) -> bool:
        self.is_loading_model = True
        try:
            pending = self.transport.warm_up(model)
            loaded = await (cancel_token.guard(pending) if cancel_token is not None else pending)
        finally:
            self.is_loading_model = False
        self.model_loaded = loaded
        return loaded

    async def select_model(self, model: str) -> bool:
        """Switch the active model and load it into memory."""
        self.model = model
        self.model_loaded = False
        logging.info("Switching model to %s", model)
        loaded = await self._warm_up(model)
        if not loaded:
            self._set_error("Failed to load model")
        if not supports_tools(model):
            logging.warning(tool_support_message(model))
        return loaded

    def model_names(self) -> List[str]:
        return [str(m.get("name")) for m in self.available_models if m.get("name")]

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: TurnListener) -> Callable[[], None]:
        """Register `listener` for turn events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: TurnEventKind, *, text: str | None = None, **data: Any) -> None:
        conversation = self.current_conversation
        if conversation is None:
            return
        event = TurnEvent(
            kind=kind,
            conversation_id=conversation.id,
            message=conversation.last_message,
            text=text,
            data=data,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logging.exception("Turn listener failed on %s event", kind)

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _set_error(self, message: str) -> str:
        self.error = message
        return message

    def clear_error(self) -> None:
        self.error = None

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _set_conversation(self, conversation: Conversation, *, persist: bool = False) -> None:
        self.current_conversation = conversation
        if persist:
            self.store.save(conversation)
            self._update_projection(conversation)

    def _update_projection(self, conversation: Conversation) -> None:
        for idx, existing in enumerate(self.conversations):
            if existing.id == conversation.id:
                self.conversations[idx] = conversation
                return
        self.conversations.insert(0, conversation)

    def new_conversation(self) -> Conversation:
        conversation = new_conversation(self.model)
        self.current_conversation = conversation
        self.conversations.insert(0, conversation)
        self.store.save(conversation)
        return conversation

    def load_conversation(self, conversation_id: str) -> Conversation | None:
        if self.is_streaming:
            raise TurnInProgressError("Cannot switch conversations while a response is streaming")
        conversation = self.store.load(conversation_id)
        if conversation is not None:
            self.current_conversation = conversation
        return conversation

    def delete_conversation(self, conversation_id: str) -> None:
        if self.is_streaming and self.current_conversation and self.current_conversation.id == conversation_id:
            raise TurnInProgressError("Cannot delete a conversation while a response is streaming")
        self.store.delete(conversation_id)
        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        if self.current_conversation is not None and self.current_conversation.id == conversation_id:
            self.current_conversation = None

    def export_conversation(self, conversation_id: str, fmt: ExportFormat = "json") -> tuple[str, str] | None:
        """Return `(filename, content)` for a stored conversation, or None when unknown."""
        conversation = self.store.load(conversation_id)
        if conversation is None:
            return None
        return export_filename(conversation, fmt), export_conversation(conversation, fmt)

    def context_usage(self) -> ContextUsage | None:
        if self.current_conversation is None:
            return None
        return self.context_monitor.check(self.current_conversation.messages, self.model)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> ChatSettings:
        """Replace the chat settings with a validated copy.

        Raises:
            ConfigurationError: a changed value is out of range or unknown
        """
        merged = {**self.settings.model_dump(), **changes}
        self.settings = ChatSettings(**merged)
        tool = self.registry.get_tool(WEB_SEARCH_TOOL_NAME)
        if isinstance(tool, WebSearchTool):
            tool.default_max_results = self.settings.max_search_results
        return self.settings

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def cancel(self) -> bool:
        """Stop the in-flight turn; it still completes with its partial content."""
        if self._active_token is None:
            return False
        logging.info("Cancelling active turn")
        self._active_token.cancel()
        return True

    def _decide_tools(
        self, query_type: QueryType, settings: ChatSettings, force_search: bool
    ) -> tuple[bool, str | None]:
        """Return (use_tools, capability_warning) for this turn."""
        capable = supports_tools(self.model) and len(self.registry) > 0
        mode = SearchMode(settings.search_mode)

        if force_search:
            wanted = True
            reason = "forced by user"
        elif mode == SearchMode.OFF:
            return False, None
        elif mode == SearchMode.AUTO:
            logging.info("Search mode auto: tools %s", "enabled" if capable else "unavailable for this model")
            return capable, None
        else:
            wanted = not self.classifier.should_disable_search(query_type)
            reason = f"query classified as {query_type}"

        if wanted and not capable:
            warning = tool_support_message(self.model)
            logging.warning("Web search requested (%s) but unavailable: %s", reason, warning)
            return False, warning
        logging.info("Web search tools %s (%s)", "enabled" if wanted else "disabled", reason)
        return wanted, None

    def _api_messages(self, prior: tuple[Message, ...], user_message: Message, system_prompt: str) -> List[Dict[str, Any]]:
        history: List[Dict[str, Any]] = [{"role": str(Role.SYSTEM), "content": system_prompt}]
        for message in prior:
            if message.role in (Role.USER, Role.ASSISTANT) and message.content:
                history.append({"role": str(message.role), "content": message.content})
        history.append(user_message.to_api())
        return history

    def _update_placeholder(self, **updates: Any) -> Message:
        conversation = self.current_conversation
        assert conversation is not None and conversation.last_message is not None
        message = conversation.last_message.model_copy(update=updates)
        self.current_conversation = conversation.replace_last_message(message)
        return message

    async def send_message(self, text: str, *, force_search: bool = False) -> TurnResult:
        """Run one chat turn.

        Args:
            text: The user's message
            force_search: Offer the web search tool regardless of the search mode

        Returns:
            TurnResult; transport failures and tool-loop exhaustion come back as
            `state="failed"` rather than raising

        Raises:
            InputValidationError: empty or whitespace-only message
            TurnInProgressError: another turn is still running
        """
        content = (text or "").strip()
        if not content:
            raise InputValidationError("Message cannot be empty")
        if self._active_token is not None:
            raise TurnInProgressError("A response is already being generated")

        token = CancellationToken()
        self._active_token = token
        try:
            return await self._run_turn(content, force_search, token)
        finally:
            self._active_token = None

    async def _run_turn(self, content: str, force_search: bool, token: CancellationToken) -> TurnResult:
        settings = self.settings
        self.clear_error()

        if self.ollama_available and not self.model_loaded:
            try:
                if not await self._warm_up(self.model, token):
                    logging.warning("Warm-up of model '%s' failed; sending the turn anyway", self.model)
            except OperationCancelled:
                logging.info("Turn cancelled while model '%s' was loading", self.model)

        if self.current_conversation is None:
            self.new_conversation()
        conversation = self.current_conversation
        assert conversation is not None
        prior = conversation.messages

        query_type = self.classifier.classify(content)
        use_tools, capability_warning = self._decide_tools(query_type, settings, force_search)
        warnings: List[str] = [capability_warning] if capability_warning else []

        user_message = Message(role=Role.USER, content=content)
        placeholder = Message(role=Role.ASSISTANT, content="", status=MessageStatus.THINKING)
        title = title_from_message(content) if not prior else conversation.title
        self._set_conversation(
            conversation.touched(title=title, model=self.model, messages=prior + (user_message, placeholder)),
            persist=True,
        )
        self._emit(TurnEventKind.MESSAGE_UPDATED)
        if capability_warning:
            self._emit(TurnEventKind.WARNING, text=capability_warning)

        log_id: str | None = None
        if settings.debug_mode:
            log_id = self.debug_recorder.start_log(content, settings.search_mode, force_search, self.model)

        api_messages = self._api_messages(prior, user_message, build_system_prompt(settings, use_tools))
        options = settings.model_options()
        started = time.monotonic()

        def on_chunk(chunk: str) -> None:
            current = self.current_conversation.last_message if self.current_conversation else None
            existing = current.content if current else ""
            self._update_placeholder(content=existing + chunk, status=MessageStatus.NONE)
            self._emit(TurnEventKind.CHUNK, text=chunk)

        def on_tool_call(name: str, args: Dict[str, Any]) -> None:
            if name == WEB_SEARCH_TOOL_NAME:
                query = str(args.get("query") or "")
                self._update_placeholder(status=MessageStatus.SEARCHING, last_search_query=query or None)
                if log_id:
                    self.debug_recorder.log_search_start(log_id, query)
            self._emit(TurnEventKind.TOOL_CALL, name=name, args=args)

        def on_tool_result(name: str, result: ToolExecutionResult, duration_ms: float) -> None:
            if name != WEB_SEARCH_TOOL_NAME:
                return
            results = search_results_from(result)
            current = self.current_conversation.last_message if self.current_conversation else None
            attached = tuple(current.search_results or ()) if current else ()
            self._update_placeholder(
                status=MessageStatus.THINKING,
                search_results=(attached + tuple(results)) or None,
            )
            if log_id:
                if result.success:
                    self.debug_recorder.log_search_complete(log_id, results, duration_ms)
                else:
                    error = result.error or "Search failed"
                    self.debug_recorder.log_search_error(log_id, error, classify_error(f"search {error}"))
            self._emit(TurnEventKind.MESSAGE_UPDATED)

        try:
            if use_tools:
                outcome = await self.tool_loop.run(
                    self.model,
                    api_messages,
                    on_chunk=on_chunk,
                    cancel_token=token,
                    options=options,
                    on_tool_call=on_tool_call,
                    on_tool_result=on_tool_result,
                )
                cancelled, stats = outcome.cancelled, outcome.stats
            else:
                streamed = await self.transport.stream_chat(
                    self.model, api_messages, on_chunk, cancel_token=token, options=options
                )
                cancelled, stats = streamed.cancelled, streamed.stats
        except Exception as exc:
            return self._fail_turn(exc, log_id, started, query_type, use_tools, warnings)

        final = self._update_placeholder(status=MessageStatus.NONE)
        conversation = self.current_conversation
        assert conversation is not None
        self._set_conversation(conversation.touched(), persist=True)
        duration_ms = (time.monotonic() - started) * 1000

        if log_id:
            self.debug_recorder.log_model_response(log_id, final.content, duration_ms, stats.get("eval_count"))

        usage = self.context_monitor.check(self.current_conversation.messages, self.model)
        if usage.is_near_limit:
            warning = self.context_monitor.warning_message(usage)
            logging.warning(warning)
            warnings.append(warning)
            self._emit(TurnEventKind.WARNING, text=warning, usage=usage)

        if cancelled:
            logging.info("Turn cancelled with %d characters streamed", len(final.content))
        self._emit(TurnEventKind.COMPLETED, cancelled=cancelled)
        return TurnResult(
            conversation=self.current_conversation,
            message=final,
            state="completed",
            cancelled=cancelled,
            used_tools=use_tools,
            query_type=query_type,
            warnings=warnings,
        )

    def _fail_turn(
        self,
        exc: Exception,
        log_id: str | None,
        started: float,
        query_type: QueryType,
        use_tools: bool,
        warnings: List[str],
    ) -> TurnResult:
        if isinstance(exc, ModelNotFoundError):
            message = handle_missing_model(None, self.model)
        else:
            message = str(exc) or exc.__class__.__name__
            logging.error("Turn failed: %s", message)
        self._set_error(f"Error: {message}")

        final = self._update_placeholder(status=MessageStatus.NONE)
        conversation = self.current_conversation
        assert conversation is not None
        self._set_conversation(conversation.touched(), persist=True)

        if log_id:
            self.debug_recorder.log_search_error(log_id, message, classify_error(message))
            self.debug_recorder.log_model_response(log_id, final.content, (time.monotonic() - started) * 1000)
        self._emit(TurnEventKind.FAILED, text=message)
        return TurnResult(
            conversation=self.current_conversation,
            message=final,
            state="failed",
            used_tools=use_tools,
            query_type=query_type,
            warnings=warnings,
            error=message,
        )


__all__ = [
    "ConversationEngine",
    "TurnEvent",
    "TurnEventKind",
    "TurnListener",
    "TurnResult",
    "build_search_provider",
]
