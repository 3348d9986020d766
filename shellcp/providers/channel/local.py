"""Local channel implementation, for running on the target host itself."""

from __future__ import annotations

from contextlib import contextmanager
import os
import subprocess
import time
from typing import Iterator

from shellcp.errors import ChannelConnectionError, ChannelError, CommandTimeoutError
from shellcp.models.channel import CommandResult
from shellcp.providers.channel.base import RemoteShell


class _LocalShell(RemoteShell):
    def __init__(self, cwd: str | None, env: dict[str, str]) -> None:
        self._cwd = cwd
        self._env = env

    def run(self, command: str, timeout_s: float | None = None) -> CommandResult:
        start = time.monotonic()
        try:
            process = subprocess.run(
                command,
                shell=True,
                cwd=self._cwd,
                env=self._env,
                capture_output=True,
                text=True,
                timeout=timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(
                f"Command timed out after {timeout_s}s", operation="run"
            ) from exc
        except OSError as exc:
            raise ChannelError(f"Cannot start command: {exc}", operation="run") from exc
        duration_ms = int((time.monotonic() - start) * 1000)
        return CommandResult(
            exit_code=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
            duration_ms=duration_ms,
        )


class LocalChannel:
    def __init__(self, cwd: str | None = None, env: dict[str, str] | None = None) -> None:
        self._cwd = cwd
        self._env = self._merge_env(env)

    @contextmanager
    def shell(self) -> Iterator[RemoteShell]:
        if self._cwd is not None and not os.path.isdir(self._cwd):
            raise ChannelConnectionError(
                "Working directory does not exist", operation="shell", path=self._cwd
            )
        yield _LocalShell(self._cwd, self._env)

    def _merge_env(self, env: dict[str, str] | None) -> dict[str, str]:
        merged = os.environ.copy()
        if env:
            merged.update(env)
        return merged
