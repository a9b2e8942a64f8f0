"""Command handling for interactive chat sessions.

Provides slash commands for conversation control, search policy and
diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .conversation import conversation_stats
from .exceptions import ConfigurationError
from .text_utils import format_timestamp

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .engine import ConversationEngine


@dataclass
class CommandResult:
    """Outcome of a slash command.

    `search_query` is set by /search: the caller runs it as a turn with
    web search forced on.
    """

    is_command: bool
    message: str | None = None
    should_exit: bool = False
    search_query: str | None = None


HELP_TEXT = (
    "\nAvailable Commands:\n"
    "  /quit, /exit, /q        - Exit\n"
    "  /new, /clear            - Start a new conversation\n"
    "  /search <text>          - Answer <text> with web search forced on\n"
    "  /mode [off|smart|auto]  - Show or change the web search mode\n"
    "  /stats, /info           - Show conversation statistics\n"
    "  /debug [on|off|clear]   - Show search diagnostics or toggle recording\n"
    "  /export [json|md]       - Write the conversation to a file\n"
    "  /help, /?               - Show this help message\n"
    "Press Ctrl-C while an answer streams to stop it."
)


class CommandHandler:
    """Handles slash commands in interactive sessions."""

    def __init__(self, engine: "ConversationEngine", *, export_dir: Path | None = None) -> None:
        self.engine = engine
        self.export_dir = export_dir or Path.cwd()

    def handle(self, user_input: str) -> CommandResult:
        """Handle a potential command.

        Args:
            user_input: Raw user input to check for commands

        Returns:
            CommandResult; `is_command` is False for ordinary chat input
        """
        text = user_input.strip()
        if not text.startswith("/"):
            return CommandResult(False)

        cmd, _, arg = text.partition(" ")
        cmd = cmd.lower()
        arg = arg.strip()

        if cmd in ("/quit", "/exit", "/q"):
            return CommandResult(True, "\nGoodbye!\n", should_exit=True)

        if cmd in ("/new", "/clear", "/reset"):
            self.engine.new_conversation()
            return CommandResult(True, "\nStarted a new conversation.")

        if cmd == "/search":
            if not arg:
                return CommandResult(True, "\nUsage: /search <text>")
            return CommandResult(True, search_query=arg)

        if cmd == "/mode":
            return CommandResult(True, self._mode(arg.lower()))

        if cmd in ("/stats", "/info"):
            return CommandResult(True, self._stats())

        if cmd == "/debug":
            return CommandResult(True, self._debug(arg.lower()))

        if cmd == "/export":
            return CommandResult(True, self._export(arg.lower() or "json"))

        if cmd in ("/help", "/?"):
            return CommandResult(True, HELP_TEXT)

        # Input starts with / but doesn't match any known command
        return CommandResult(True, f"\nUnknown command: {cmd}\nType /help to see available commands.")

    def _mode(self, mode: str) -> str:
        if not mode:
            return f"\nSearch mode: {self.engine.settings.search_mode}"
        try:
            settings = self.engine.update_settings(search_mode=mode)
        except ConfigurationError as exc:
            return f"\n{exc}"
        return f"\nSearch mode set to {settings.search_mode}."

    def _stats(self) -> str:
        conversation = self.engine.current_conversation
        lines = ["", f"Model: {self.engine.model} ({self.engine.model_status})"]
        lines.append(f"Search mode: {self.engine.settings.search_mode}")
        if conversation is None:
            lines.append("No active conversation.")
            return "\n".join(lines)

        stats = conversation_stats(conversation)
        lines.append(f"Conversation: {conversation.title}")
        lines.append(
            f"Messages: {stats.messages} ({stats.user_messages} user, {stats.assistant_messages} assistant)"
        )
        lines.append(f"Answers with web search: {stats.search_turns}")
        lines.append(f"Characters: {stats.chars:,}")
        lines.append(f"Started: {format_timestamp(conversation.created_at)}")
        usage = self.engine.context_usage()
        if usage is not None:
            lines.append(f"Context: ~{usage.tokens:,}/{usage.limit:,} tokens ({usage.percent_used:.0%})")
        return "\n".join(lines)

    def _debug(self, arg: str) -> str:
        recorder = self.engine.debug_recorder
        if arg in ("on", "off"):
            self.engine.update_settings(debug_mode=arg == "on")
            return f"\nDebug recording {'enabled' if arg == 'on' else 'disabled'}."
        if arg == "clear":
            recorder.clear()
            return "\nDebug logs cleared."
        if arg:
            return "\nUsage: /debug [on|off|clear]"

        stats = recorder.get_stats()
        lines = [
            "",
            f"Debug recording: {'on' if self.engine.settings.debug_mode else 'off'}",
            f"Queries: {stats.total_queries} ({stats.search_queries} with search)",
            f"Searches: {stats.successful_searches} successful, {stats.failed_searches} failed",
            f"Average search: {stats.average_search_duration} ms",
            f"Average response: {stats.average_response_duration} ms",
            f"Tokens generated: {stats.total_tokens_used}",
        ]
        for log in recorder.get_logs()[:5]:
            searched = f" -> searched '{log.search_query}'" if log.search_triggered else ""
            error = f" [error: {log.error}]" if log.error else ""
            lines.append(f"  {format_timestamp(log.timestamp)} {log.query[:40]!r}{searched}{error}")
        return "\n".join(lines)

    def _export(self, fmt: str) -> str:
        formats = {"json": "json", "md": "markdown", "markdown": "markdown"}
        if fmt not in formats:
            return "\nUsage: /export [json|md]"
        conversation = self.engine.current_conversation
        if conversation is None:
            return "\nNothing to export yet."
        exported = self.engine.export_conversation(conversation.id, formats[fmt])  # type: ignore[arg-type]
        if exported is None:
            return "\nNothing to export yet."
        filename, content = exported
        path = self.export_dir / filename
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            logging.error("Export failed: %s", exc)
            return f"\nExport failed: {exc}"
        return f"\nExported to {path}"


__all__ = ["CommandHandler", "CommandResult", "HELP_TEXT"]
