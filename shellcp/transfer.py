"""Chunked file upload over a command-only channel.

A source stream is cut into chunks sized from the server's envelope limit.
Each chunk is base64-encoded into one PowerShell command that writes it at its
byte offset in a temporary sibling of the destination. When every chunk has
landed, one last command checks the temp file size and renames it over the
destination.
"""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
import logging
import threading
import time
from typing import BinaryIO, Callable, Optional

from shellcp import scripts
from shellcp.config import TransferSettings
from shellcp.errors import (
    ChannelConnectionError,
    ChannelError,
    ConfigurationError,
    PermanentTransferError,
    TransferCancelled,
    TransferConnectionError,
    TransferError,
    TransientTransferError,
)
from shellcp.models.capabilities import CapabilitySnapshot
from shellcp.models.channel import CommandResult
from shellcp.models.files import TransferStats
from shellcp.providers.channel.base import CommandChannel, RemoteShell

logger = logging.getLogger(__name__)

_PERMANENT_EXIT_CODES = {
    scripts.EXIT_IS_DIRECTORY: "destination is a directory",
    scripts.EXIT_OFFSET_MISMATCH: "remote temp file does not match the bytes sent",
    scripts.EXIT_MISSING_TEMP: "remote temp file is missing",
}

_TRANSIENT_MARKERS = (
    "being used by another process",
    "timed out",
    "timeout",
    "insufficient system resources",
    "temporarily",
)


def chunk_size(envelope_budget: int, max_command_chars: Optional[int] = None) -> int:
    """Largest raw chunk whose encoded command fits the budget."""

    budget = envelope_budget
    if max_command_chars is not None:
        budget = min(budget, max_command_chars)
    size = (budget - scripts.COMMAND_OVERHEAD) * scripts.RAW_BYTES // scripts.ENCODED_CHARS
    if size <= 0:
        raise ConfigurationError(
            f"Envelope budget of {budget} bytes leaves no room for data "
            f"(overhead is {scripts.COMMAND_OVERHEAD} bytes)",
            operation="transfer",
        )
    return size


def is_transient(result: CommandResult) -> bool:
    if result.exit_code in _PERMANENT_EXIT_CODES:
        return False
    stderr = result.stderr.lower()
    return any(marker in stderr for marker in _TRANSIENT_MARKERS)


def _describe(result: CommandResult) -> str:
    reason = _PERMANENT_EXIT_CODES.get(result.exit_code)
    if reason is None:
        reason = result.stderr.strip() or result.stdout.strip() or "no output"
    return f"exit code {result.exit_code}: {reason}"


class _RecyclingShell:
    """Hands out one shell at a time, replacing it every ``max_operations`` commands."""

    def __init__(self, channel: CommandChannel, max_operations: int) -> None:
        self._channel = channel
        self._max_operations = max_operations
        self._stack = ExitStack()
        self._shell: Optional[RemoteShell] = None
        self._operations = 0

    def run(self, command: str, timeout_s: Optional[float]) -> CommandResult:
        if self._shell is None or (
            self._max_operations and self._operations >= self._max_operations
        ):
            self.reset()
            self._shell = self._stack.enter_context(self._channel.shell())
        self._operations += 1
        return self._shell.run(command, timeout_s=timeout_s)

    def reset(self) -> None:
        self._stack.close()
        self._stack = ExitStack()
        self._shell = None
        self._operations = 0

    def __enter__(self) -> _RecyclingShell:
        return self

    def __exit__(self, *exc_info) -> None:
        self.reset()


@dataclass
class TransferSession:
    channel: CommandChannel
    destination: str
    chunk_size: int
    settings: TransferSettings
    timeout_s: Optional[float] = None
    sequence: int = 0
    offset: int = 0

    @property
    def temp_path(self) -> str:
        return self.destination + scripts.TEMP_SUFFIX

    def error(self, cls: type[TransferError], message: str, attempts: int = 1) -> TransferError:
        return cls(
            message,
            attempts=attempts,
            temp_path=self.temp_path,
            operation="transfer",
            path=self.destination,
        )

    def execute(
        self,
        shell: _RecyclingShell,
        command: str,
        what: str,
        sleep: Callable[[float], None],
    ) -> CommandResult:
        """Run ``command``, retrying transient failures with backoff."""

        limit = self.settings.max_command_chars
        if limit is not None and len(command) > limit:
            raise self.error(
                PermanentTransferError,
                f"{what} needs a {len(command)}-character command, "
                f"over the {limit}-character limit",
                attempts=0,
            )
        delay = self.settings.retry_delay_s
        attempt = 0
        while True:
            attempt += 1
            try:
                result = shell.run(command, self.timeout_s)
            except ChannelError as exc:
                transient = exc.transient
                reason = str(exc)
            else:
                if result.ok:
                    return result
                transient = is_transient(result)
                reason = _describe(result)
            if not transient:
                raise self.error(PermanentTransferError, f"{what} failed: {reason}", attempt)
            if attempt >= self.settings.max_attempts:
                raise self.error(
                    TransientTransferError,
                    f"{what} failed after {attempt} attempts: {reason}",
                    attempt,
                )
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                what,
                attempt,
                self.settings.max_attempts,
                delay,
                reason,
            )
            shell.reset()
            sleep(delay)
            delay *= self.settings.retry_backoff


def _check_cancel(session: TransferSession, cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise session.error(TransferCancelled, "Transfer cancelled")


def _upload(
    session: TransferSession,
    source: BinaryIO,
    cancel: Optional[threading.Event],
    sleep: Callable[[float], None],
) -> None:
    destination = session.destination
    with _RecyclingShell(session.channel, session.settings.max_operations_per_shell) as shell:
        while True:
            _check_cancel(session, cancel)
            data = source.read(session.chunk_size)
            if not data:
                break
            session.sequence += 1
            session.execute(
                shell,
                scripts.append_chunk(session.temp_path, session.offset, data),
                f"chunk {session.sequence} of {destination}",
                sleep,
            )
            session.offset += len(data)
            logger.debug(
                "Sent chunk %d (%d bytes, %d total)", session.sequence, len(data), session.offset
            )

        if session.sequence == 0:
            # Nothing was appended, so create the empty temp file explicitly.
            session.execute(
                shell,
                scripts.append_chunk(session.temp_path, 0, b""),
                f"create empty {destination}",
                sleep,
            )

        _check_cancel(session, cancel)
        session.execute(
            shell,
            scripts.finalize(session.temp_path, destination, session.offset),
            f"finalize {destination}",
            sleep,
        )


def transfer(
    channel: CommandChannel,
    capabilities: CapabilitySnapshot,
    destination: str,
    source: BinaryIO,
    *,
    settings: Optional[TransferSettings] = None,
    cancel: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> TransferStats:
    """Upload everything ``source`` yields to ``destination`` on the remote host.

    On failure the destination keeps its previous content; the temp file
    (``TransferError.temp_path``) may be left behind.
    """

    settings = settings or TransferSettings()
    session = TransferSession(
        channel=channel,
        destination=destination,
        chunk_size=chunk_size(capabilities.envelope_budget, settings.max_command_chars),
        settings=settings,
        timeout_s=settings.operation_timeout_s or capabilities.operation_timeout_s,
    )
    start = time.monotonic()
    try:
        scripts.ps_quote(session.temp_path)
    except ValueError as exc:
        raise session.error(PermanentTransferError, str(exc)) from exc

    logger.debug(
        "Uploading to %s via %s in chunks of %d bytes",
        destination,
        session.temp_path,
        session.chunk_size,
    )
    try:
        _upload(session, source, cancel, sleep)
    except ChannelConnectionError as exc:
        raise session.error(
            TransferConnectionError,
            f"Connection lost after {session.offset} bytes: {exc.message}",
        ) from exc

    stats = TransferStats(
        destination=destination,
        bytes_sent=session.offset,
        chunks=session.sequence,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
    logger.info(
        "Uploaded %d bytes in %d chunks to %s", stats.bytes_sent, stats.chunks, destination
    )
    return stats
