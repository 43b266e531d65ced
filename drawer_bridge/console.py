"""
Operator-facing capabilities used by the core.

The core never draws dialogs itself. It asks for secrets and reports
outcomes through these two protocols; the terminal implementations here
back the CLI, and the WebSocket bridge provides its own.
"""

import asyncio
import getpass
import sys
from typing import Protocol


class SecretPrompt(Protocol):
    async def prompt_secret(self, title: str, label: str) -> str | None:
        """Ask the operator for secret text. None means cancelled."""
        ...


class Notifier(Protocol):
    def show_error(self, title: str, message: str) -> None:
        ...

    def show_message(self, message: str) -> None:
        ...


class ConsolePrompt:
    """Reads secrets from the controlling terminal without echo."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stderr

    async def prompt_secret(self, title: str, label: str) -> str | None:
        return await asyncio.to_thread(self._ask, title, label)

    def _ask(self, title: str, label: str) -> str | None:
        print(f"== {title} ==", file=self._stream)
        try:
            return getpass.getpass(f"{label} ", stream=self._stream)
        except (EOFError, KeyboardInterrupt):
            print(file=self._stream)
            return None


class ConsoleNotifier:
    """Prints notices; errors go to stderr."""

    def __init__(self, out=None, err=None):
        self._out = out or sys.stdout
        self._err = err or sys.stderr

    def show_error(self, title: str, message: str) -> None:
        print(f"{title}: {message}", file=self._err)

    def show_message(self, message: str) -> None:
        print(message, file=self._out)
