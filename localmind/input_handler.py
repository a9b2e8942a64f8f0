from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Tuple

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import InMemoryHistory


class InputHandler:
    """Encapsulates interactive prompt/session handling.

    Reads lines through a `prompt_toolkit` session so the event loop keeps
    running while the user types. Tests inject `input_fn` instead.
    """

    def __init__(
        self,
        is_tty: bool,
        prompt_session: PromptSession | None = None,
        input_fn: Callable[[str], Awaitable[str]] | None = None,
    ):
        self._is_tty = bool(is_tty)
        self._prompt_session = prompt_session
        self._input_fn = input_fn

    def prompt_messages(self) -> Tuple[Any, str]:
        """Return (formatted_prompt, plain_prompt) tuple for user input."""
        if self._is_tty:
            try:
                return ANSI("\n\033[92m> \033[0m"), "> "
            except Exception:
                logging.debug("ANSI formatting failed; falling back to plain prompt")
        return "> ", "> "

    def build_prompt_session(self) -> PromptSession:
        return PromptSession(history=InMemoryHistory(), multiline=False, wrap_lines=True)

    def ensure_prompt_session(self) -> PromptSession:
        if self._prompt_session is None:
            self._prompt_session = self.build_prompt_session()
        return self._prompt_session

    async def read_user_query(self) -> str:
        formatted_prompt, plain_prompt = self.prompt_messages()
        if self._input_fn is not None:
            return await self._input_fn(plain_prompt)
        session = self.ensure_prompt_session()
        return str(await session.prompt_async(formatted_prompt))


__all__ = ["InputHandler"]
