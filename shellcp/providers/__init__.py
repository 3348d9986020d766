"""Provider package for remote command channels."""

from shellcp.providers.channel import (
    CommandChannel,
    LocalChannel,
    RemoteShell,
    WinRMChannel,
)

__all__ = ["CommandChannel", "LocalChannel", "RemoteShell", "WinRMChannel"]
