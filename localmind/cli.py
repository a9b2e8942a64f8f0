from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING, cast

from . import config as _config

if TYPE_CHECKING:  # make the EngineConfig type available to type checkers
    from .config import EngineConfig


@dataclass
class ArgSpec:
    """Specification for a command-line argument."""

    name: str
    short: str | None = None
    arg_type: type | None = None
    default_attr: str | None = None
    action: Any = None  # Can be str or argparse.BooleanOptionalAction
    choices: list[str] | None = None
    help_text: str = ""


# Argument specifications in logical groups
_ARG_SPECS: list[ArgSpec] = [
    # Server and model
    ArgSpec("--ollama-host", "--oh", default_attr="ollama_host", help_text="Base URL of the Ollama server"),
    ArgSpec("--model", "-m", default_attr="model", help_text="Ollama chat model, e.g. llama3.2:latest"),
    ArgSpec(
        "--request-timeout",
        "--rto",
        arg_type=float,
        default_attr="request_timeout",
        help_text="Timeout (seconds) for chat requests",
    ),
    # Tool loop and search policy
    ArgSpec(
        "--search-mode",
        "--sm",
        default_attr="search_mode",
        choices=["off", "smart", "auto"],
        help_text="off: never search; smart: classify each message; auto: always offer search to tool-capable models",
    ),
    ArgSpec(
        "--max-tool-iterations",
        "--mti",
        arg_type=int,
        default_attr="max_tool_iterations",
        help_text="Maximum tool decision round trips per turn",
    ),
    ArgSpec(
        "--max-search-results",
        "--msr",
        arg_type=int,
        default_attr="max_search_results",
        help_text="Default number of results per web search (1-10)",
    ),
    # Search capability
    ArgSpec(
        "--search-backend",
        "--sb",
        default_attr="search_backend",
        choices=["bridge", "proxy"],
        help_text="bridge: search in-process with DDGS; proxy: POST to --search-proxy-url",
    ),
    ArgSpec(
        "--search-proxy-url", "--spu", default_attr="search_proxy_url", help_text="Web search proxy endpoint"
    ),
    ArgSpec("--ddg-region", "--dr", default_attr="ddg_region", help_text="DDGS region hint, e.g. us-en, uk-en, de-de"),
    ArgSpec(
        "--ddg-safesearch",
        "--dss",
        default_attr="ddg_safesearch",
        choices=["off", "moderate", "strict"],
        help_text="DDGS safesearch level",
    ),
    ArgSpec(
        "--ddg-backend",
        "--db",
        default_attr="ddg_backend",
        help_text="Comma-separated DDGS backends. Use 'auto' for provider mix or pick engines like duckduckgo, bing, brave.",
    ),
    ArgSpec(
        "--search-retries",
        "--sr",
        arg_type=int,
        default_attr="search_retries",
        help_text="Retry attempts for transient search errors",
    ),
    ArgSpec(
        "--search-timeout",
        "--st",
        arg_type=float,
        default_attr="search_timeout",
        help_text="Per-request timeout (seconds) for search calls",
    ),
    ArgSpec(
        "--max-concurrent-searches",
        "--mcs",
        arg_type=int,
        default_attr="max_concurrent_searches",
        help_text="Maximum searches running in parallel",
    ),
    # Sampling parameters
    ArgSpec("--temperature", "--temp", arg_type=float, default_attr="temperature", help_text="Sampling temperature"),
    ArgSpec("--top-p", "--tp", arg_type=float, default_attr="top_p", help_text="Nucleus sampling threshold"),
    ArgSpec("--max-tokens", "--mt", arg_type=int, default_attr="max_tokens", help_text="Max tokens to predict"),
    ArgSpec("--system-prompt", "--sp", default_attr="system_prompt", help_text="Custom system prompt"),
    # Diagnostics
    ArgSpec(
        "--debug-mode",
        "--dm",
        action=argparse.BooleanOptionalAction,
        default_attr="debug_mode",
        help_text="Record per-turn search diagnostics (see /debug)",
    ),
    ArgSpec(
        "--context-warning-threshold",
        "--cwt",
        arg_type=float,
        default_attr="context_warning_threshold",
        help_text="Warn when the conversation uses this fraction of the model's context window",
    ),
    # Logging
    ArgSpec("--log-level", "--ll", default_attr="log_level", help_text="Logging level: DEBUG, INFO, WARNING, ERROR"),
    ArgSpec("--log-file", "--lf", default_attr="log_file", help_text="Optional log file path"),
    ArgSpec(
        "--log-console",
        "--lc",
        action=argparse.BooleanOptionalAction,
        default_attr="log_console",
        help_text="Enable console logging (pass --no-log-console to silence log statements on stderr)",
    ),
    # One-shot mode
    ArgSpec("--question", "--q", default_attr="question", help_text="Run once with this question and exit"),
]


def _add_argument_from_spec(parser: argparse.ArgumentParser, spec: ArgSpec, defaults: "EngineConfig") -> None:
    names = [spec.name]
    if spec.short:
        names.append(spec.short)

    kwargs: dict[str, Any] = {"help": spec.help_text}

    if spec.default_attr:
        kwargs["default"] = getattr(defaults, spec.default_attr)

    if spec.arg_type:
        kwargs["type"] = spec.arg_type

    if spec.action:
        kwargs["action"] = spec.action

    if spec.choices:
        kwargs["choices"] = spec.choices

    parser.add_argument(*names, **kwargs)


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser from the argument table.

    Defaults come from a fresh EngineConfig, so environment overrides
    (OLLAMA_HOST, LOCALMIND_MODEL) show up as CLI defaults.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(description="Chat with a local Ollama model, with optional web search")
    defaults: "EngineConfig" = cast("type[EngineConfig]", _config.EngineConfig)()

    for spec in _ARG_SPECS:
        _add_argument_from_spec(parser, spec, defaults)

    return parser


def configure_logging(level: str, log_file: str | None, log_console: bool = True, *, force: bool = True) -> None:
    level_upper = (level or "INFO").upper()
    numeric = getattr(logging, level_upper, logging.INFO)
    handlers: list[logging.Handler] = []
    if log_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    if not handlers:
        # Respect --no-log-console even without a log file by discarding logs via NullHandler
        handlers.append(logging.NullHandler())
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=force,
    )


__all__ = ["ArgSpec", "build_arg_parser", "configure_logging"]
