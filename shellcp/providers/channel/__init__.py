"""Remote command channel implementations and interfaces."""

from shellcp.providers.channel.base import CommandChannel, RemoteShell
from shellcp.providers.channel.local import LocalChannel
from shellcp.providers.channel.winrm import WinRMChannel

__all__ = ["CommandChannel", "LocalChannel", "RemoteShell", "WinRMChannel"]
