"""Push files and directories to a Windows host over WinRM commands."""

from shellcp.archive import archive_directory
from shellcp.config import ChannelSettings, TransferSettings, load_settings
from shellcp.copier import Copier
from shellcp.errors import (
    ArchiveError,
    ChannelConnectionError,
    ChannelError,
    CommandTimeoutError,
    ConfigurationError,
    ListError,
    LocalFileError,
    PermanentTransferError,
    ProbeError,
    ResourceLeakWarning,
    ShellcpError,
    TransferCancelled,
    TransferConnectionError,
    TransferError,
    TransientTransferError,
)
from shellcp.listing import list_directory
from shellcp.models import CapabilitySnapshot, FileItem, TransferStats
from shellcp.probe import probe
from shellcp.transfer import chunk_size, transfer
from shellcp.walker import walk_directory

__all__ = [
    "ArchiveError",
    "CapabilitySnapshot",
    "ChannelConnectionError",
    "ChannelError",
    "ChannelSettings",
    "CommandTimeoutError",
    "ConfigurationError",
    "Copier",
    "FileItem",
    "ListError",
    "LocalFileError",
    "PermanentTransferError",
    "ProbeError",
    "ResourceLeakWarning",
    "ShellcpError",
    "TransferCancelled",
    "TransferConnectionError",
    "TransferError",
    "TransferSettings",
    "TransferStats",
    "TransientTransferError",
    "archive_directory",
    "chunk_size",
    "list_directory",
    "load_settings",
    "probe",
    "transfer",
    "walk_directory",
]
