from __future__ import annotations

import logging

import pytest

from localmind.model_utils import (
    base_model_name,
    get_context_limit,
    handle_missing_model,
    recommended_models,
    supports_tools,
    tool_support_message,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("llama3.2:latest", True),
        ("Llama3.1:8b", True),
        ("qwen3-coder:30b", True),
        ("mistral-nemo:12b", True),
        ("gpt-oss:20b", True),
        ("gemma3:4b", False),
        ("phi3:mini", False),
        ("", False),
    ],
)
def test_supports_tools(name, expected):
    assert supports_tools(name) is expected


def test_base_model_name_strips_tag_and_case():
    assert base_model_name("  Qwen3:8B ") == "qwen3"
    assert base_model_name("") == ""


def test_tool_support_message():
    assert tool_support_message("llama3.2") == '"llama3.2" supports tool calling'
    message = tool_support_message("gemma3:4b")
    assert message.startswith("\"gemma3:4b\" doesn't support tool calling. Try: ")
    for name in recommended_models():
        assert name in message


@pytest.mark.parametrize(
    "name, limit",
    [
        ("llama3.2:3b", 128000),
        ("qwen2.5:7b", 32768),
        ("deepseek-r1:7b", 65536),
        ("phi4", 16384),
        ("gemma3:4b", 8192),
        ("unknown-model", 4096),
        ("", 4096),
    ],
)
def test_get_context_limit(name, limit):
    assert get_context_limit(name) == limit


def test_handle_missing_model_marks_and_logs(caplog):
    marked = []
    with caplog.at_level(logging.ERROR):
        msg = handle_missing_model(marked.append, "ghost")
    assert msg == "Model 'ghost' not found. Run 'ollama pull ghost' and retry."
    assert marked == [msg]
    assert "ollama pull ghost" in caplog.text


def test_handle_missing_model_tolerates_failing_marker():
    def broken(_msg):
        raise RuntimeError("nope")

    assert "ollama pull x" in handle_missing_model(broken, "x")
    assert "ollama pull y" in handle_missing_model(None, "y")
