"""Shared data models for shellcp."""

from shellcp.models.capabilities import (
    CapabilitySnapshot,
    PowerShellSettings,
    ServiceLimits,
    ShellLimits,
    WinRMConfig,
)
from shellcp.models.channel import CommandResult
from shellcp.models.files import FileItem, TransferStats

__all__ = [
    "CapabilitySnapshot",
    "CommandResult",
    "FileItem",
    "PowerShellSettings",
    "ServiceLimits",
    "ShellLimits",
    "TransferStats",
    "WinRMConfig",
]
