from __future__ import annotations

import asyncio
import json

import pytest

from localmind.config import EngineConfig
from localmind.constants import MessageStatus, ModelStatus, Role
from localmind.engine import ConversationEngine, TurnEventKind
from localmind.exceptions import (
    ConfigurationError,
    InputValidationError,
    ModelNotFoundError,
    TransportError,
    TurnInProgressError,
)
from localmind.prompts import STANDARD_SYSTEM_PROMPT
from localmind.query_classifier import QueryType
from tests.engine_test_utils import (
    FakeSearchProvider,
    ScriptedTransport,
    final_decision,
    sample_results,
    tool_call_response,
)

TOOL_MODEL = "llama3.2:latest"
PLAIN_MODEL = "gemma3:4b"


def _engine(transport, *, provider=None, model=TOOL_MODEL, **overrides) -> ConversationEngine:
    cfg = EngineConfig(model=model, **overrides)
    return ConversationEngine(cfg, transport=transport, search_provider=provider or FakeSearchProvider(sample_results(2)))


def _search_turn_transport(chunks=("Sunny [1].",)) -> ScriptedTransport:
    return ScriptedTransport(
        decisions=[tool_call_response(("web_search", {"query": "Oslo weather"}), call_id="c"), final_decision()],
        stream_chunks=list(chunks),
    )


@pytest.mark.asyncio
async def test_plain_turn_streams_into_placeholder():
    transport = ScriptedTransport(stream_chunks=["Hel", "lo!"])
    engine = _engine(transport, search_mode="off")
    events = []
    engine.subscribe(events.append)

    result = await engine.send_message("  hello there  ")

    assert result.state == "completed"
    assert result.cancelled is False
    assert result.used_tools is False
    assert result.query_type == QueryType.CONVERSATIONAL
    assert result.message.content == "Hello!"
    assert result.message.status == MessageStatus.NONE
    conversation = engine.current_conversation
    assert conversation.title == "hello there"
    assert [m.role for m in conversation.messages] == [Role.USER, Role.ASSISTANT]
    assert conversation.messages[0].content == "hello there"
    assert transport.chat_calls == []
    sent = transport.stream_calls[0]["messages"]
    assert sent == [
        {"role": "system", "content": STANDARD_SYSTEM_PROMPT},
        {"role": "user", "content": "hello there"},
    ]
    assert transport.stream_calls[0]["options"] == {"temperature": 0.7, "top_p": 0.9, "num_predict": 2048}

    kinds = [event.kind for event in events]
    assert kinds[0] == TurnEventKind.MESSAGE_UPDATED
    assert kinds.count(TurnEventKind.CHUNK) == 2
    assert kinds[-1] == TurnEventKind.COMPLETED
    assert [e.text for e in events if e.kind == TurnEventKind.CHUNK] == ["Hel", "lo!"]
    assert engine.is_streaming is False


@pytest.mark.asyncio
async def test_turn_is_persisted_to_store():
    transport = ScriptedTransport(stream_chunks=["Answer"])
    engine = _engine(transport, search_mode="off")
    result = await engine.send_message("hi")
    stored = engine.store.load(result.conversation.id)
    assert stored is not None
    assert stored.messages[-1].content == "Answer"
    assert engine.conversations[0].id == result.conversation.id


@pytest.mark.asyncio
async def test_second_turn_sends_prior_history_and_keeps_title():
    transport = ScriptedTransport(stream_chunks=["Hi"])
    engine = _engine(transport, search_mode="off")
    await engine.send_message("hello there")
    await engine.send_message("and another thing")

    sent = transport.stream_calls[1]["messages"]
    assert [m["role"] for m in sent] == ["system", "user", "assistant", "user"]
    assert sent[2]["content"] == "Hi"
    assert engine.current_conversation.title == "hello there"
    assert len(engine.current_conversation.messages) == 4


@pytest.mark.asyncio
async def test_smart_mode_skips_tools_for_conceptual_queries():
    transport = ScriptedTransport(stream_chunks=["A transistor..."])
    engine = _engine(transport, search_mode="smart")
    result = await engine.send_message("Explain how a transistor works")
    assert result.query_type == QueryType.CONCEPTUAL
    assert result.used_tools is False
    assert transport.chat_calls == []


@pytest.mark.asyncio
async def test_smart_mode_search_turn_attaches_results():
    provider = FakeSearchProvider(sample_results(2))
    transport = _search_turn_transport()
    engine = _engine(transport, provider=provider, search_mode="smart")
    events = []
    engine.subscribe(events.append)

    result = await engine.send_message("What's the weather in Oslo?")

    assert result.used_tools is True
    assert result.query_type == QueryType.REAL_TIME_DATA
    assert provider.queries == [("Oslo weather", 8)]
    message = result.message
    assert message.content == "Sunny [1]."
    assert message.status == MessageStatus.NONE
    assert message.last_search_query == "Oslo weather"
    assert [r.url for r in message.search_results] == ["https://example.com/1", "https://example.com/2"]

    system_prompt = transport.chat_calls[0]["messages"][0]["content"]
    assert "web search capabilities" in system_prompt
    tool_events = [e for e in events if e.kind == TurnEventKind.TOOL_CALL]
    assert tool_events[0].data == {"name": "web_search", "args": {"query": "Oslo weather"}}
    assert tool_events[0].message.status == MessageStatus.SEARCHING


@pytest.mark.asyncio
async def test_smart_mode_treats_borderline_queries_as_search_enabled():
    transport = ScriptedTransport(decisions=[final_decision()], stream_chunks=["ok"])
    engine = _engine(transport, search_mode="smart")
    result = await engine.send_message("What are the latest iPhone features?")
    assert result.query_type == QueryType.CURRENT_EVENT
    assert result.used_tools is True
    assert len(transport.chat_calls) == 1


@pytest.mark.asyncio
async def test_auto_mode_without_tool_support_is_silent():
    transport = ScriptedTransport(stream_chunks=["ok"])
    engine = _engine(transport, model=PLAIN_MODEL, search_mode="auto")
    result = await engine.send_message("What's the weather in Oslo?")
    assert result.used_tools is False
    assert result.warnings == []


@pytest.mark.asyncio
async def test_forced_search_on_unsupported_model_downgrades_with_warning():
    transport = ScriptedTransport(stream_chunks=["ok"])
    engine = _engine(transport, model=PLAIN_MODEL, search_mode="off")
    events = []
    engine.subscribe(events.append)

    result = await engine.send_message("anything", force_search=True)

    assert result.state == "completed"
    assert result.used_tools is False
    assert len(result.warnings) == 1
    assert "doesn't support tool calling" in result.warnings[0]
    assert any(e.kind == TurnEventKind.WARNING for e in events)
    assert transport.chat_calls == []


@pytest.mark.asyncio
async def test_forced_search_overrides_off_mode():
    transport = _search_turn_transport()
    engine = _engine(transport, search_mode="off")
    result = await engine.send_message("Tell me a story", force_search=True)
    assert result.used_tools is True
    assert len(transport.chat_calls) == 2


@pytest.mark.asyncio
async def test_empty_message_is_rejected():
    engine = _engine(ScriptedTransport())
    with pytest.raises(InputValidationError):
        await engine.send_message("   ")
    assert engine.current_conversation is None


class BlockingTransport(ScriptedTransport):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def stream_chat(self, model, messages, on_chunk, **kwargs):
        self.started.set()
        await self.release.wait()
        return await super().stream_chat(model, messages, on_chunk, **kwargs)


@pytest.mark.asyncio
async def test_second_turn_while_streaming_is_rejected():
    transport = BlockingTransport(stream_chunks=["done"])
    engine = _engine(transport, search_mode="off")

    task = asyncio.create_task(engine.send_message("first"))
    await transport.started.wait()
    assert engine.is_streaming is True
    with pytest.raises(TurnInProgressError):
        await engine.send_message("second")
    with pytest.raises(TurnInProgressError):
        engine.load_conversation(engine.current_conversation.id)

    transport.release.set()
    result = await task
    assert result.message.content == "done"
    assert engine.is_streaming is False


@pytest.mark.asyncio
async def test_cancel_keeps_partial_content_and_completes():
    transport = ScriptedTransport(stream_chunks=["one ", "two ", "three"])
    engine = _engine(transport, search_mode="off")
    transport.on_stream_chunk = lambda _chunk: engine.cancel()

    result = await engine.send_message("count for me")

    assert result.state == "completed"
    assert result.cancelled is True
    assert result.message.content == "one "
    assert result.message.status == MessageStatus.NONE
    assert engine.error is None
    assert engine.cancel() is False


@pytest.mark.asyncio
async def test_off_mode_never_offers_tools_even_for_real_time_queries():
    transport = ScriptedTransport(
        decisions=[tool_call_response(("web_search", {"query": "tokyo weather"}))],
        stream_chunks=["I can't check live weather."],
    )
    provider = FakeSearchProvider(sample_results(2))
    engine = _engine(transport, provider=provider, search_mode="off")

    result = await engine.send_message("What's the weather in Tokyo?")

    assert result.query_type == QueryType.REAL_TIME_DATA
    assert result.used_tools is False
    assert transport.chat_calls == []
    assert provider.queries == []
    assert transport.stream_calls[0]["tools"] is None
    assert result.message.search_results is None


class CancelWhileDecidingTransport(ScriptedTransport):
    engine = None

    async def chat(self, model, messages, **kwargs):
        self.engine.cancel()
        return await super().chat(model, messages, **kwargs)


@pytest.mark.asyncio
async def test_cancel_while_deciding_completes_with_empty_answer():
    transport = CancelWhileDecidingTransport(
        decisions=[tool_call_response(("web_search", {"query": "Oslo weather"}))],
        stream_chunks=["never streamed"],
    )
    provider = FakeSearchProvider(sample_results(2))
    engine = _engine(transport, provider=provider, search_mode="smart")
    transport.engine = engine

    result = await engine.send_message("What's the weather in Oslo?")

    assert result.state == "completed"
    assert result.cancelled is True
    assert result.used_tools is True
    assert result.message.content == ""
    assert result.message.status == MessageStatus.NONE
    assert len(transport.chat_calls) == 1
    assert transport.stream_calls == []
    assert provider.queries == []
    assert engine.error is None


class SlowWarmUpTransport(ScriptedTransport):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.loading = asyncio.Event()
        self.abandoned = False

    async def warm_up(self, model):
        self.loading.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.abandoned = True
            raise
        return True


@pytest.mark.asyncio
async def test_cancel_during_warm_up_ends_turn_without_waiting():
    transport = SlowWarmUpTransport(stream_chunks=["never streamed"])
    engine = _engine(transport, search_mode="off")
    engine.ollama_available = True

    task = asyncio.create_task(engine.send_message("hi"))
    await transport.loading.wait()
    assert engine.model_status == ModelStatus.LOADING
    assert engine.cancel() is True
    result = await asyncio.wait_for(task, timeout=1)

    assert result.state == "completed"
    assert result.cancelled is True
    assert result.message.content == ""
    assert transport.abandoned is True
    assert engine.model_loaded is False
    assert engine.is_loading_model is False


@pytest.mark.asyncio
async def test_transport_failure_keeps_partial_placeholder():
    transport = ScriptedTransport(stream_chunks=["partial", "never"])
    engine = _engine(transport, search_mode="off")

    def explode(_chunk):
        raise TransportError("HTTP error! status: 500 - boom")

    transport.on_stream_chunk = explode
    events = []
    engine.subscribe(events.append)

    result = await engine.send_message("hello")

    assert result.state == "failed"
    assert result.error == "HTTP error! status: 500 - boom"
    assert engine.error == "Error: HTTP error! status: 500 - boom"
    assert result.message.content == "partial"
    assert result.message.status == MessageStatus.NONE
    assert len(engine.current_conversation.messages) == 2
    assert events[-1].kind == TurnEventKind.FAILED
    assert engine.is_streaming is False
    # Next turn is accepted and clears the error
    transport.on_stream_chunk = None
    await engine.send_message("retry")
    assert engine.error is None


@pytest.mark.asyncio
async def test_missing_model_error_suggests_pull():
    transport = ScriptedTransport(stream_error=ModelNotFoundError("not found", status_code=404))
    engine = _engine(transport, model="ghost:1b", search_mode="off")
    result = await engine.send_message("hi")
    assert result.state == "failed"
    assert "ollama pull ghost:1b" in result.error


@pytest.mark.asyncio
async def test_tool_iteration_cap_fails_turn():
    transport = ScriptedTransport(
        decisions=[tool_call_response(("web_search", {"query": "loop"}))],
        repeat_last_decision=True,
    )
    engine = _engine(transport, search_mode="smart", max_tool_iterations=2)
    result = await engine.send_message("search for loops")
    assert result.state == "failed"
    assert result.error == "Maximum tool iterations reached (2)"
    assert len(transport.chat_calls) == 2
    assert transport.stream_calls == []


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_turn():
    transport = ScriptedTransport(stream_chunks=["fine"])
    engine = _engine(transport, search_mode="off")

    def bad_listener(_event):
        raise RuntimeError("listener bug")

    received = []
    engine.subscribe(bad_listener)
    unsubscribe = engine.subscribe(received.append)
    result = await engine.send_message("hi")
    assert result.state == "completed"
    assert received

    unsubscribe()
    count = len(received)
    await engine.send_message("again")
    assert len(received) == count


@pytest.mark.asyncio
async def test_debug_mode_records_turn():
    transport = _search_turn_transport()
    engine = _engine(transport, search_mode="smart", debug_mode=True)
    await engine.send_message("What's the weather in Oslo?")

    logs = engine.debug_recorder.get_logs()
    assert len(logs) == 1
    log = logs[0]
    assert log.query == "What's the weather in Oslo?"
    assert log.model_name == TOOL_MODEL
    assert log.search_triggered is True
    assert log.search_query == "Oslo weather"
    assert log.search_result_count == 2
    assert log.model_response == "Sunny [1]."
    assert log.citations_used == [1]
    assert log.token_count == 1


@pytest.mark.asyncio
async def test_debug_mode_classifies_failed_search():
    transport = _search_turn_transport(chunks=("I could not search.",))
    provider = FakeSearchProvider(failure="Web search timed out after 3 attempts")
    engine = _engine(transport, provider=provider, search_mode="smart", debug_mode=True)

    result = await engine.send_message("What's the weather in Oslo?")

    assert result.state == "completed"
    assert result.message.search_results is None
    log = engine.debug_recorder.get_logs()[0]
    assert log.search_triggered is True
    assert log.error == "Web search timed out after 3 attempts"
    assert log.error_type == "timeout"
    tool_message = transport.stream_calls[0]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert tool_message["content"] == "Web search timed out after 3 attempts"


@pytest.mark.asyncio
async def test_debug_mode_off_records_nothing():
    transport = ScriptedTransport(stream_chunks=["x"])
    engine = _engine(transport, search_mode="off")
    await engine.send_message("hi")
    assert len(engine.debug_recorder) == 0


@pytest.mark.asyncio
async def test_context_warning_added_when_near_limit():
    transport = ScriptedTransport(stream_chunks=["a long enough answer"])
    engine = _engine(transport, model=PLAIN_MODEL, search_mode="off", context_warning_threshold=0.0001)
    result = await engine.send_message("hello there")
    assert result.state == "completed"
    assert any("context window" in w for w in result.warnings)
    usage = engine.context_usage()
    assert usage is not None and usage.is_near_limit


@pytest.mark.asyncio
async def test_custom_system_prompt_is_appended_with_tools():
    transport = ScriptedTransport(decisions=[final_decision()], stream_chunks=["ok"])
    engine = _engine(transport, search_mode="smart", system_prompt="Answer like a pirate.")
    await engine.send_message("search for treasure maps")
    system = transport.chat_calls[0]["messages"][0]["content"]
    assert system.endswith("ADDITIONAL INSTRUCTIONS:\nAnswer like a pirate.")


@pytest.mark.asyncio
async def test_custom_system_prompt_replaces_standard_without_tools():
    transport = ScriptedTransport(stream_chunks=["ok"])
    engine = _engine(transport, search_mode="off", system_prompt="Be terse.")
    await engine.send_message("hi")
    assert transport.stream_calls[0]["messages"][0] == {"role": "system", "content": "Be terse."}


@pytest.mark.asyncio
async def test_warm_up_runs_before_turn_when_model_not_loaded():
    transport = ScriptedTransport(stream_chunks=["ok"])
    engine = _engine(transport, search_mode="off")
    engine.ollama_available = True
    await engine.send_message("hi")
    assert transport.warmed == [TOOL_MODEL]
    assert engine.model_status == ModelStatus.READY
    await engine.send_message("again")
    assert transport.warmed == [TOOL_MODEL]


@pytest.mark.asyncio
async def test_initialize_when_server_offline():
    engine = _engine(ScriptedTransport(available=False))
    assert await engine.initialize() is False
    assert engine.model_status == ModelStatus.OFFLINE
    assert "Ollama is not running" in engine.error


@pytest.mark.asyncio
async def test_initialize_lists_models_and_warms_up():
    transport = ScriptedTransport(models=[{"name": "llama3.2:latest"}, {"name": "qwen3:8b"}])
    engine = _engine(transport)
    assert engine.model_status == ModelStatus.OFFLINE
    assert await engine.initialize() is True
    assert engine.model_names() == ["llama3.2:latest", "qwen3:8b"]
    assert transport.warmed == [TOOL_MODEL]
    assert engine.model_status == ModelStatus.READY


@pytest.mark.asyncio
async def test_select_model_failure_sets_error():
    transport = ScriptedTransport(warm_up_ok=False)
    engine = _engine(transport)
    engine.ollama_available = True
    assert await engine.select_model("qwen3:8b") is False
    assert engine.model == "qwen3:8b"
    assert engine.error == "Failed to load model"
    assert engine.model_status == ModelStatus.LOADING


def test_update_settings_validates_and_syncs_tool():
    engine = _engine(ScriptedTransport())
    settings = engine.update_settings(max_search_results=3, search_mode="off")
    assert settings.max_search_results == 3
    assert engine.registry.get_tool("web_search").default_max_results == 3
    with pytest.raises(ConfigurationError):
        engine.update_settings(max_search_results=11)
    with pytest.raises(ConfigurationError):
        engine.update_settings(unknown_field=True)
    with pytest.raises(ConfigurationError):
        engine.update_settings(search_timeout=5)
    assert engine.settings.max_search_results == 3


@pytest.mark.asyncio
async def test_conversation_management_and_export():
    transport = ScriptedTransport(stream_chunks=["Answer"])
    engine = _engine(transport, search_mode="off")
    result = await engine.send_message("first question")
    conv_id = result.conversation.id

    exported = engine.export_conversation(conv_id, "json")
    assert exported is not None
    filename, content = exported
    assert filename.startswith(f"conversation-{conv_id}-") and filename.endswith(".json")
    assert json.loads(content)["id"] == conv_id
    assert engine.export_conversation("missing") is None

    other = engine.new_conversation()
    assert engine.current_conversation.id == other.id
    assert engine.load_conversation(conv_id).id == conv_id
    assert engine.current_conversation.id == conv_id

    engine.delete_conversation(conv_id)
    assert engine.current_conversation is None
    assert engine.store.load(conv_id) is None
    assert [c.id for c in engine.conversations] == [other.id]


@pytest.mark.asyncio
async def test_aclose_only_closes_owned_resources():
    transport = ScriptedTransport()
    provider = FakeSearchProvider()
    async with ConversationEngine(EngineConfig(), transport=transport, search_provider=provider):
        pass
    assert transport.closed is False
    assert provider.closed is False
