import argparse
import logging

import pytest

from localmind import cli
from localmind.constants import SearchMode


def test_build_arg_parser_defaults_and_flags():
    parser = cli.build_arg_parser()
    ns = parser.parse_args(
        ["--search-mode", "off", "-m", "qwen3:8b", "--max-tool-iterations", "3", "--debug-mode", "--temp", "0.2"]
    )
    assert ns.search_mode == "off"
    assert ns.model == "qwen3:8b"
    assert ns.max_tool_iterations == 3
    assert ns.debug_mode is True
    assert ns.temperature == 0.2


def test_build_arg_parser_defaults_come_from_config(monkeypatch):
    monkeypatch.setenv("LOCALMIND_MODEL", "mistral-nemo:12b")
    ns = cli.build_arg_parser().parse_args([])
    assert ns.model == "mistral-nemo:12b"
    assert ns.search_mode == SearchMode.SMART
    assert ns.max_search_results == 8
    assert ns.log_console is True
    assert ns.question is None


def test_build_arg_parser_rejects_unknown_choice():
    with pytest.raises(SystemExit):
        cli.build_arg_parser().parse_args(["--search-backend", "carrier-pigeon"])


def test_configure_logging_nullhandler_when_no_console_or_file():
    cli.configure_logging("info", None, False, force=True)
    handlers = logging.getLogger().handlers
    assert handlers, "Handlers should be installed even when console and file are disabled"
    assert not any(isinstance(h, logging.StreamHandler) for h in handlers)


def test_configure_logging_writes_file(tmp_path):
    log_file = tmp_path / "chat.log"
    cli.configure_logging("debug", str(log_file), False, force=True)
    logging.getLogger("localmind.test").debug("hello file")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello file" in log_file.read_text()
    cli.configure_logging("warning", None, False, force=True)


def _namespace(**overrides):
    values = dict(log_level="INFO", log_file=None, log_console=False, question=None)
    values.update(overrides)
    return argparse.Namespace(**values)


class FakeEngine:
    instances = []
    available = True

    def __init__(self, cfg):
        self.cfg = cfg
        self.error = None
        self.closed = False
        FakeEngine.instances.append(self)

    async def initialize(self):
        if not FakeEngine.available:
            self.error = "Ollama is not running. Please start Ollama and retry."
            return False
        return True

    async def aclose(self):
        self.closed = True


class FakeApp:
    calls = {}
    answer = "answer"

    def __init__(self, engine):
        self.engine = engine

    async def answer_once(self, question):
        FakeApp.calls["question"] = question
        return FakeApp.answer

    async def run(self):
        FakeApp.calls["run"] = True


@pytest.fixture
def fake_runtime(monkeypatch):
    import localmind.main as main_mod

    FakeEngine.instances = []
    FakeEngine.available = True
    FakeApp.calls = {}
    FakeApp.answer = "answer"
    monkeypatch.setattr(main_mod, "ConversationEngine", FakeEngine)
    monkeypatch.setattr(main_mod, "ChatApp", FakeApp)
    return main_mod


def test_main_exits_with_2_on_invalid_config(fake_runtime):
    with pytest.raises(SystemExit) as excinfo:
        fake_runtime.main(_namespace(max_search_results=0))
    assert excinfo.value.code == 2
    assert FakeEngine.instances == []


def test_main_exits_with_1_when_server_unavailable(fake_runtime, capsys):
    FakeEngine.available = False
    with pytest.raises(SystemExit) as excinfo:
        fake_runtime.main(_namespace())
    assert excinfo.value.code == 1
    assert "Ollama is not running" in capsys.readouterr().err
    assert FakeEngine.instances[0].closed is True


def test_main_calls_answer_once_when_question(fake_runtime):
    with pytest.raises(SystemExit) as excinfo:
        fake_runtime.main(_namespace(question=" hello "))
    assert excinfo.value.code == 0
    assert FakeApp.calls == {"question": "hello"}


def test_main_reports_failed_answer(fake_runtime):
    FakeApp.answer = None
    with pytest.raises(SystemExit) as excinfo:
        fake_runtime.main(_namespace(question="hello"))
    assert excinfo.value.code == 1


def test_main_runs_interactive_loop_without_question(fake_runtime):
    with pytest.raises(SystemExit) as excinfo:
        fake_runtime.main(_namespace(model="qwen3:8b"))
    assert excinfo.value.code == 0
    assert FakeApp.calls == {"run": True}
    assert FakeEngine.instances[0].cfg.model == "qwen3:8b"
