"""Exception taxonomy for shellcp operations."""

from __future__ import annotations


class ShellcpError(Exception):
    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.path = path

    def __str__(self) -> str:
        context = " ".join(part for part in (self.operation, self.path) if part)
        if not context:
            return self.message
        return f"{self.message} [{context}]"


class ChannelConnectionError(ShellcpError):
    """The remote channel could not be established. Never retried."""


class ChannelError(ShellcpError):
    """A single remote command could not complete."""

    def __init__(self, message: str, *, transient: bool = False, **context) -> None:
        super().__init__(message, **context)
        self.transient = transient


class CommandTimeoutError(ChannelError):
    def __init__(self, message: str, **context) -> None:
        super().__init__(message, transient=True, **context)


class ConfigurationError(ShellcpError):
    pass


class ProbeError(ShellcpError):
    pass


class ListError(ShellcpError):
    pass


class LocalFileError(ShellcpError):
    pass


class ArchiveError(LocalFileError):
    pass


class TransferError(ShellcpError):
    transient = False

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        temp_path: str | None = None,
        **context,
    ) -> None:
        super().__init__(message, **context)
        self.attempts = attempts
        self.temp_path = temp_path


class TransientTransferError(TransferError):
    transient = True


class PermanentTransferError(TransferError):
    pass


class TransferCancelled(PermanentTransferError):
    pass


class TransferConnectionError(PermanentTransferError, ChannelConnectionError):
    """The channel dropped part way through a transfer."""


class ResourceLeakWarning(UserWarning):
    """A temporary artifact (local archive or remote temp file) was left behind."""
