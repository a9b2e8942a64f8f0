from __future__ import annotations

import json

import pytest

from localmind.constants import MessageStatus, Role
from localmind.models import Conversation, Message, ToolCall, ToolExecutionResult, ToolFunction


@pytest.mark.parametrize(
    "arguments, expected",
    [
        ({"query": "x"}, {"query": "x"}),
        ('{"query": "y", "max_results": 3}', {"query": "y", "max_results": 3}),
        ("", {}),
        ("{broken", {}),
        ("[1, 2]", {}),
    ],
)
def test_parsed_arguments(arguments, expected):
    call = ToolCall(function=ToolFunction(name="web_search", arguments=arguments))
    assert call.parsed_arguments() == expected


def test_tool_call_to_api_omits_missing_id():
    call = ToolCall(function=ToolFunction(name="web_search", arguments={"query": "x"}))
    assert call.to_api() == {"type": "function", "function": {"name": "web_search", "arguments": {"query": "x"}}}
    with_id = ToolCall(id="call_1", function=ToolFunction(name="web_search"))
    assert with_id.to_api()["id"] == "call_1"


def test_tool_result_content():
    formatted = ToolExecutionResult(success=True, data={"formatted": "=== block ===", "count": 1})
    assert formatted.as_tool_content() == "=== block ==="
    plain = ToolExecutionResult(success=True, data={"answer": 42})
    assert json.loads(plain.as_tool_content()) == {"answer": 42}
    failed = ToolExecutionResult(success=False, error="boom")
    assert failed.as_tool_content() == "boom"


def test_message_to_api_includes_tool_fields_only_when_set():
    user = Message(role=Role.USER, content="hi")
    assert user.to_api() == {"role": "user", "content": "hi"}
    tool = Message(role=Role.TOOL, content="result", tool_call_id="c1", tool_name="web_search")
    assert tool.to_api() == {"role": "tool", "content": "result", "tool_call_id": "c1", "tool_name": "web_search"}


def test_message_defaults_and_immutability():
    message = Message(role=Role.ASSISTANT)
    assert message.content == ""
    assert message.status == MessageStatus.NONE
    assert message.id.startswith("msg-")
    with pytest.raises(Exception):
        message.content = "changed"
    updated = message.model_copy(update={"content": "new"})
    assert updated.content == "new"
    assert message.content == ""


def test_conversation_updates_are_copies():
    conversation = Conversation(model="m", updated_at=0)
    first = Message(role=Role.USER, content="q")
    grown = conversation.with_messages(first)
    assert conversation.messages == ()
    assert grown.messages == (first,)
    assert grown.updated_at >= conversation.updated_at
    assert grown.last_message == first

    replacement = Message(role=Role.USER, content="q2")
    replaced = grown.replace_last_message(replacement)
    assert replaced.messages == (replacement,)
    with pytest.raises(ValueError):
        conversation.replace_last_message(replacement)
    assert conversation.last_message is None
