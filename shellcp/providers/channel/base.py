"""Remote command channel interface."""

from __future__ import annotations

from typing import ContextManager, Protocol

from shellcp.models.channel import CommandResult


class RemoteShell(Protocol):
    def run(self, command: str, timeout_s: float | None = None) -> CommandResult:
        """Run ``command`` and wait for it to exit.

        ``timeout_s`` is advisory. Channels that cannot bound a single call
        enforce their own per-operation timeout instead, and either way a
        timeout surfaces as ``CommandTimeoutError``.
        """
        ...


class CommandChannel(Protocol):
    def shell(self) -> ContextManager[RemoteShell]:
        ...
