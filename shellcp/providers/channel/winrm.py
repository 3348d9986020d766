"""WinRM channel backed by pywinrm."""

from __future__ import annotations

from contextlib import contextmanager
import importlib
import importlib.util
import logging
import time
from typing import Any, Iterator

from shellcp.config import ChannelSettings, endpoint_url
from shellcp.errors import ChannelConnectionError, ChannelError, CommandTimeoutError
from shellcp.models.channel import CommandResult
from shellcp.providers.channel.base import RemoteShell

logger = logging.getLogger(__name__)

# UTF-8 console code page for every shell we open.
_CODEPAGE = 65001


def _require(module: str) -> Any:
    if importlib.util.find_spec(module) is None:
        raise RuntimeError("pywinrm must be installed to use the WinRM channel.")
    return importlib.import_module(module)


class _WinRMShell(RemoteShell):
    def __init__(self, protocol: Any, shell_id: str, endpoint: str) -> None:
        self._protocol = protocol
        self._shell_id = shell_id
        self._endpoint = endpoint

    def run(self, command: str, timeout_s: float | None = None) -> CommandResult:
        # pywinrm has no per-call timeout. timeout_s is not used; every call is
        # bounded by ChannelSettings.operation_timeout_s and the read timeout
        # derived from it.
        exceptions = _require("winrm.exceptions")
        requests = _require("requests")
        start = time.monotonic()
        try:
            command_id = self._protocol.run_command(self._shell_id, command)
            try:
                stdout, stderr, exit_code = self._protocol.get_command_output(
                    self._shell_id, command_id
                )
            finally:
                self._protocol.cleanup_command(self._shell_id, command_id)
        except (exceptions.WinRMOperationTimeoutError, requests.exceptions.Timeout) as exc:
            raise CommandTimeoutError(
                f"WinRM command timed out: {exc}", operation="run", path=self._endpoint
            ) from exc
        except exceptions.WinRMTransportError as exc:
            code = exc.code if isinstance(exc.code, int) else 0
            raise ChannelError(
                f"WinRM transport error {code}: {exc.message}",
                transient=code >= 500,
                operation="run",
                path=self._endpoint,
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ChannelConnectionError(
                f"Lost connection to WinRM endpoint: {exc}",
                operation="run",
                path=self._endpoint,
            ) from exc
        except exceptions.WinRMError as exc:
            raise ChannelError(
                f"WinRM error: {exc}", operation="run", path=self._endpoint
            ) from exc
        return CommandResult(
            exit_code=exit_code,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_ms=int((time.monotonic() - start) * 1000),
        )


class WinRMChannel:
    def __init__(self, settings: ChannelSettings) -> None:
        winrm = _require("winrm")
        self._settings = settings
        self._endpoint = endpoint_url(settings)
        options: dict[str, Any] = {
            "endpoint": self._endpoint,
            "transport": settings.transport,
            "username": settings.username,
            "password": settings.password,
            "server_cert_validation": "ignore" if settings.insecure else "validate",
            "operation_timeout_sec": int(settings.operation_timeout_s),
            # requests uses one timeout for connect and read; it has to
            # outlast the WS-Man operation timeout.
            "read_timeout_sec": int(
                max(settings.connect_timeout_s, settings.operation_timeout_s + 10)
            ),
        }
        if settings.ca_trust_path:
            options["ca_trust_path"] = settings.ca_trust_path
        self._protocol = winrm.Protocol(**options)

    @contextmanager
    def shell(self) -> Iterator[RemoteShell]:
        exceptions = _require("winrm.exceptions")
        requests = _require("requests")
        try:
            shell_id = self._protocol.open_shell(codepage=_CODEPAGE)
        except (
            exceptions.InvalidCredentialsError,
            exceptions.AuthenticationError,
            exceptions.WinRMTransportError,
            requests.exceptions.RequestException,
        ) as exc:
            raise ChannelConnectionError(
                f"Cannot open WinRM shell: {exc}", operation="shell", path=self._endpoint
            ) from exc
        try:
            yield _WinRMShell(self._protocol, shell_id, self._endpoint)
        finally:
            try:
                self._protocol.close_shell(shell_id)
            except (exceptions.WinRMError, exceptions.WinRMTransportError,
                    requests.exceptions.RequestException) as exc:
                logger.warning("Failed to close WinRM shell %s: %s", shell_id, exc)
