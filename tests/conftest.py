from __future__ import annotations

import base64
from contextlib import contextmanager
import re
import threading
from typing import Callable, Iterator, Optional, Union

import pytest

from shellcp.config import TransferSettings
from shellcp.models.capabilities import CapabilitySnapshot, WinRMConfig
from shellcp.models.channel import CommandResult

_QUOTED = r"'((?:[^']|'')*)'"
APPEND_RE = re.compile(
    r"\$p=" + _QUOTED + r"; \$o=(\d+); \$b=\[System\.Convert\]::FromBase64String\('([A-Za-z0-9+/=]*)'\)"
)
FINALIZE_RE = re.compile(r"\$t=" + _QUOTED + r"; \$d=" + _QUOTED + r"; \$n=(\d+);")
LIST_RE = re.compile(r"Get-ChildItem -LiteralPath " + _QUOTED)

Hook = Callable[[str, int], Union[None, Exception, CommandResult]]


_DOUBLED_QUOTE = re.compile("(['\u2018\u2019\u201a\u201b])\\1")


def _unquote(value: str) -> str:
    return _DOUBLED_QUOTE.sub(r"\1", value)


def ok(stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout, stderr=stderr, duration_ms=0)


def failed(exit_code: int = 1, stderr: str = "") -> CommandResult:
    return CommandResult(exit_code=exit_code, stdout="", stderr=stderr, duration_ms=0)


class FakeShell:
    def __init__(self, channel: FakeChannel) -> None:
        self._channel = channel
        self.closed = False

    def run(self, command: str, timeout_s: float | None = None) -> CommandResult:
        assert not self.closed, "command sent on a closed shell"
        return self._channel.handle(command)


class FakeChannel:
    """In-memory stand-in for a Windows host reached over WinRM.

    It understands the append, finalize and list scripts and answers any other
    command from ``responses``. ``hook(command, call_number)`` may return an
    exception to raise or a result to return instead of running the command.
    """

    def __init__(self, responses: Optional[dict[str, CommandResult]] = None) -> None:
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = set()
        self.listings: dict[str, str] = {}
        self.responses = dict(responses or {})
        self.commands: list[str] = []
        self.appends: list[tuple[str, int, bytes]] = []
        self.hook: Optional[Hook] = None
        self.after_hook: Optional[Hook] = None
        self.shells_opened = 0
        self.shells_closed = 0
        self.active_shells = 0
        self.peak_shells = 0
        self._lock = threading.Lock()

    @contextmanager
    def shell(self) -> Iterator[FakeShell]:
        with self._lock:
            self.shells_opened += 1
            self.active_shells += 1
            self.peak_shells = max(self.peak_shells, self.active_shells)
        shell = FakeShell(self)
        try:
            yield shell
        finally:
            shell.closed = True
            with self._lock:
                self.shells_closed += 1
                self.active_shells -= 1

    def handle(self, command: str) -> CommandResult:
        with self._lock:
            self.commands.append(command)
            call_number = len(self.commands)
        if self.hook is not None:
            outcome = self.hook(command, call_number)
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is not None:
                return outcome
        result = self._execute(command)
        if self.after_hook is not None:
            outcome = self.after_hook(command, call_number)
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is not None:
                return outcome
        return result

    def _execute(self, command: str) -> CommandResult:
        if command in self.responses:
            return self.responses[command]
        match = APPEND_RE.search(command)
        if match:
            path, offset = _unquote(match.group(1)), int(match.group(2))
            data = base64.b64decode(match.group(3))
            with self._lock:
                current = self.files.get(path, b"")
                if len(current) < offset:
                    return failed(3)
                self.files[path] = current[:offset] + data
                self.appends.append((path, offset, data))
            return ok()
        match = FINALIZE_RE.search(command)
        if match:
            temp, dest, size = _unquote(match.group(1)), _unquote(match.group(2)), int(match.group(3))
            with self._lock:
                if dest in self.dirs:
                    return failed(2)
                if temp not in self.files:
                    return failed(4)
                if len(self.files[temp]) != size:
                    return failed(3)
                self.files[dest] = self.files.pop(temp)
            return ok()
        match = LIST_RE.search(command)
        if match:
            path = _unquote(match.group(1))
            if path not in self.listings:
                return failed(1, f"Cannot find path '{path}' because it does not exist.")
            return ok(self.listings[path])
        return failed(1, f"'{command.split()[0]}' is not recognized")

    def chunk_appends(self, path: str) -> list[tuple[str, int, bytes]]:
        return [entry for entry in self.appends if entry[0] == path]


def make_capabilities(envelope_kb: int = 3, **winrm) -> CapabilitySnapshot:
    return CapabilitySnapshot(winrm=WinRMConfig(max_envelope_size_kb=envelope_kb, **winrm))


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def settings() -> TransferSettings:
    return TransferSettings(
        max_command_chars=None,
        retry_delay_s=0.0,
        max_operations_per_shell=0,
        debug=False,
    )
