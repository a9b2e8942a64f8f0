"""Terminal front end: streams answers from the engine to a text stream."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import TextIO

from .commands import CommandHandler
from .engine import ConversationEngine, TurnEvent, TurnEventKind, TurnResult
from .input_handler import InputHandler
from .models import Message


class ChatApp:
    """Interactive and one-shot chat on top of a ConversationEngine.

    Streams chunks as they arrive, announces web searches, prints sources
    after each answer and maps Ctrl-C during a turn to `engine.cancel()`.
    """

    def __init__(
        self,
        engine: ConversationEngine,
        *,
        output_stream: TextIO | None = None,
        is_tty: bool | None = None,
        input_handler: InputHandler | None = None,
        command_handler: CommandHandler | None = None,
    ):
        self.engine = engine
        self._out: TextIO = output_stream or sys.stdout
        self._is_tty: bool = bool(is_tty if is_tty is not None else getattr(self._out, "isatty", lambda: False)())
        self.input_handler = input_handler or InputHandler(self._is_tty)
        self.command_handler = command_handler or CommandHandler(engine)
        self._unsubscribe = engine.subscribe(self._on_event)

    def _write(self, text: str) -> None:
        try:
            self._out.write(text)
            if hasattr(self._out, "flush"):
                self._out.flush()
        except OSError as exc:
            # Output stream errors (BrokenPipeError is an OSError subclass)
            logging.error("Output stream write failed: %s", exc)

    def _writeln(self, text: str = "") -> None:
        self._write(f"{text}\n")

    def _on_event(self, event: TurnEvent) -> None:
        if event.kind == TurnEventKind.CHUNK and event.text:
            self._write(event.text)
        elif event.kind == TurnEventKind.TOOL_CALL:
            query = (event.data.get("args") or {}).get("query")
            if query:
                self._writeln(f"[searching the web for '{query}'...]")
        elif event.kind == TurnEventKind.WARNING and event.text:
            self._writeln(f"\n[warning] {event.text}")

    def _print_welcome_banner(self) -> None:
        message = "\n".join(
            [
                f"localmind - chatting with {self.engine.model}.",
                "Enter submits your message. Type '/quit' to exit or '/help' for commands.",
            ]
        )
        if self._is_tty:
            self._writeln(f"\n\033[96m{message}\033[0m")
        else:
            self._writeln(message)

    def _print_sources(self, message: Message) -> None:
        if not message.search_results:
            return
        self._writeln("\nSources:")
        for idx, result in enumerate(message.search_results, start=1):
            self._writeln(f"  [{idx}] {result.title} - {result.url}")

    async def _run_turn(self, text: str, *, force_search: bool = False) -> TurnResult:
        loop = asyncio.get_running_loop()
        handler_installed = False
        try:
            loop.add_signal_handler(signal.SIGINT, self.engine.cancel)
            handler_installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            logging.debug("SIGINT handler unavailable; Ctrl-C will not cancel streaming")
        try:
            result = await self.engine.send_message(text, force_search=force_search)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)

        self._writeln()
        if result.cancelled:
            self._writeln("[stopped]")
        if result.state == "failed":
            self._writeln(self.engine.error or f"Error: {result.error}")
            self.engine.clear_error()
        else:
            self._print_sources(result.message)
        return result

    async def answer_once(self, question: str, *, force_search: bool = False) -> str | None:
        """Process a single question and return the answer, or None if the turn failed."""
        try:
            result = await self._run_turn(question, force_search=force_search)
        finally:
            await self.engine.aclose()
        if result.state == "failed":
            return None
        return result.message.content

    async def run(self) -> None:
        """Interactive loop: read a line, run a command or a turn, repeat."""
        self._print_welcome_banner()
        try:
            while True:
                try:
                    user_query = (await self.input_handler.read_user_query()).strip()
                except KeyboardInterrupt:
                    self._writeln("\nInterrupted. Type '/quit' to exit.")
                    continue
                except EOFError:
                    self._writeln("\nGoodbye!")
                    return
                if not user_query:
                    continue

                command = self.command_handler.handle(user_query)
                if command.is_command:
                    if command.message:
                        self._writeln(command.message)
                    if command.should_exit:
                        return
                    if command.search_query:
                        await self._run_turn(command.search_query, force_search=True)
                    continue

                await self._run_turn(user_query)
        finally:
            self._unsubscribe()
            await self.engine.aclose()


__all__ = ["ChatApp"]
