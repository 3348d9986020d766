"""Public entry point: copy local files and directories to a remote host."""

from __future__ import annotations

import logging
import os
import stat
import threading
import warnings
from typing import BinaryIO, Optional

from shellcp.archive import archive_directory
from shellcp.config import ChannelSettings, TransferSettings
from shellcp.errors import LocalFileError, ProbeError, ResourceLeakWarning, TransferError
from shellcp.listing import list_directory
from shellcp.models.capabilities import CapabilitySnapshot
from shellcp.models.files import FileItem, TransferStats
from shellcp.probe import probe
from shellcp.providers.channel.base import CommandChannel
from shellcp.providers.channel.winrm import WinRMChannel
from shellcp.transfer import transfer
from shellcp.walker import walk_directory

logger = logging.getLogger(__name__)


def win_path(path: str) -> str:
    return path.replace("/", "\\")


class Copier:
    """Copies files to one remote host through a command channel.

    Capabilities are probed on first use and reused for the lifetime of the
    copier. When probing fails and ``strict_probe`` is off, conservative
    defaults are used instead of aborting.
    """

    def __init__(
        self,
        channel: CommandChannel,
        settings: TransferSettings | None = None,
        capabilities: CapabilitySnapshot | None = None,
    ) -> None:
        self._channel = channel
        self._settings = settings or TransferSettings()
        self._capabilities = capabilities
        self._probe_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        channel_settings: ChannelSettings,
        transfer_settings: TransferSettings | None = None,
    ) -> Copier:
        return cls(WinRMChannel(channel_settings), transfer_settings)

    @property
    def settings(self) -> TransferSettings:
        return self._settings

    def capabilities(self) -> CapabilitySnapshot:
        with self._probe_lock:
            if self._capabilities is None:
                self._capabilities = self._probe()
            return self._capabilities

    def _probe(self) -> CapabilitySnapshot:
        try:
            snapshot = probe(self._channel, debug=self._settings.debug)
        except ProbeError as exc:
            if self._settings.strict_probe:
                raise
            logger.warning("Probe failed, using conservative defaults: %s", exc)
            snapshot = CapabilitySnapshot.conservative()
        return snapshot.with_envelope_default(self._settings.default_envelope_kb)

    def copy(
        self,
        local_path: str,
        remote_path: str,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Copy a file, or a directory, to ``remote_path``.

        Directories are sent as one zip archive unless ``archive_directories``
        is off, in which case each file is copied under ``remote_path``.
        """

        try:
            info = os.stat(local_path)
        except OSError as exc:
            raise LocalFileError(
                f"Couldn't stat file: {exc.strerror or exc}", operation="copy", path=local_path
            ) from exc

        if stat.S_ISREG(info.st_mode):
            try:
                handle = open(local_path, "rb")
            except OSError as exc:
                raise LocalFileError(
                    f"Couldn't read file: {exc.strerror or exc}",
                    operation="copy",
                    path=local_path,
                ) from exc
            with handle:
                self.write(remote_path, handle, cancel=cancel)
            return

        if not stat.S_ISDIR(info.st_mode):
            raise LocalFileError("Not a regular file or directory", operation="copy", path=local_path)

        if not self._settings.archive_directories:
            capabilities = self.capabilities()
            count = walk_directory(
                local_path,
                win_path(remote_path),
                lambda destination, stream: self._send(destination, stream, cancel),
                max_workers=capabilities.concurrency_limit(self._settings.max_parallel),
            )
            logger.info("Copied %d files to %s", count, remote_path)
            return

        archive_path = archive_directory(local_path)
        try:
            with open(archive_path, "rb") as handle:
                self.write(remote_path, handle, cancel=cancel)
        finally:
            try:
                os.remove(archive_path)
            except OSError as exc:
                warnings.warn(
                    f"Could not remove local archive {archive_path}: {exc}",
                    ResourceLeakWarning,
                    stacklevel=2,
                )

    def write(
        self,
        remote_path: str,
        stream: BinaryIO,
        cancel: Optional[threading.Event] = None,
    ) -> TransferStats:
        return self._send(win_path(remote_path), stream, cancel)

    def list(self, remote_path: str) -> list[FileItem]:
        return list_directory(self._channel, win_path(remote_path))

    def _send(
        self,
        destination: str,
        stream: BinaryIO,
        cancel: Optional[threading.Event],
    ) -> TransferStats:
        try:
            return transfer(
                self._channel,
                self.capabilities(),
                destination,
                stream,
                settings=self._settings,
                cancel=cancel,
            )
        except TransferError as exc:
            if exc.temp_path:
                warnings.warn(
                    f"Remote temp file may remain: {exc.temp_path}",
                    ResourceLeakWarning,
                    stacklevel=3,
                )
            raise
