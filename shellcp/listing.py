"""Read-only listing of a remote directory."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
from pathlib import PureWindowsPath
from typing import Optional

from shellcp import scripts
from shellcp.errors import ChannelError, ListError
from shellcp.models.files import FileItem
from shellcp.providers.channel.base import CommandChannel

logger = logging.getLogger(__name__)

# .NET round-trip format carries 7 fractional digits; datetime takes 6.
_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(text: str) -> Optional[datetime]:
    text = text.strip()
    if not text:
        return None
    text = _FRACTION.sub(r"\1", text)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_listing(output: str, parent: str) -> list[FileItem]:
    items: list[FileItem] = []
    for number, line in enumerate(output.splitlines(), start=1):
        if not line.strip():
            continue
        fields = line.split("\t", 4)
        if len(fields) != 5 or not fields[4] or fields[1] not in ("0", "1"):
            raise ListError(
                f"Malformed listing line {number}: {line!r}", operation="list", path=parent
            )
        mode, container, size, mtime, name = fields
        try:
            items.append(
                FileItem(
                    name=name,
                    path=str(PureWindowsPath(parent, name)),
                    size=int(size),
                    is_dir=container == "1",
                    mod_time=parse_timestamp(mtime),
                    mode=mode,
                )
            )
        except ValueError as exc:
            raise ListError(
                f"Malformed listing line {number}: {exc}", operation="list", path=parent
            ) from exc
    return items


def list_directory(channel: CommandChannel, path: str) -> list[FileItem]:
    try:
        command = scripts.list_directory(path)
    except ValueError as exc:
        raise ListError(str(exc), operation="list", path=path) from exc
    try:
        with channel.shell() as shell:
            result = shell.run(command)
    except ChannelError as exc:
        raise ListError(f"Couldn't list directory: {exc}", operation="list", path=path) from exc
    if not result.ok:
        reason = result.stderr.strip() or f"exit code {result.exit_code}"
        raise ListError(f"Couldn't list directory: {reason}", operation="list", path=path)
    items = parse_listing(result.stdout, path)
    logger.debug("Listed %d entries in %s", len(items), path)
    return items
