"""Pack a local directory tree into a single zip archive."""

from __future__ import annotations

import logging
import os
import tempfile
import warnings
import zipfile

from shellcp.errors import ArchiveError, ResourceLeakWarning

logger = logging.getLogger(__name__)


def _raise(error: OSError) -> None:
    raise error


def _discard(archive_path: str) -> None:
    try:
        os.remove(archive_path)
    except OSError as exc:
        warnings.warn(
            f"Could not remove partial archive {archive_path}: {exc}",
            ResourceLeakWarning,
            stacklevel=3,
        )


def archive_names(root: str) -> list[tuple[str, str]]:
    """Return ``(local path, archive name)`` pairs for every entry under ``root``.

    Names are rooted at the base name of ``root`` and use forward slashes;
    directory names end with ``/``.
    """

    root = os.path.abspath(root)
    base = os.path.basename(root)
    entries = [(root, base + "/")]
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, root)
        prefix = base if rel_dir == os.curdir else "/".join([base, *rel_dir.split(os.sep)])
        for name in dirnames:
            entries.append((os.path.join(dirpath, name), f"{prefix}/{name}/"))
        for name in sorted(filenames):
            entries.append((os.path.join(dirpath, name), f"{prefix}/{name}"))
    return entries


def archive_directory(root: str) -> str:
    """Zip ``root`` into a new temporary file and return its path.

    The caller owns the returned file and is responsible for deleting it.
    """

    if not os.path.isdir(root):
        raise ArchiveError("Not a directory", operation="archive", path=root)
    fd, archive_path = tempfile.mkstemp(prefix="shellcp-", suffix=".zip")
    os.close(fd)
    try:
        # Entries older than 1980 are clamped to the earliest zip timestamp.
        with zipfile.ZipFile(
            archive_path, "w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False
        ) as archive:
            for local_path, name in archive_names(root):
                archive.write(local_path, name)
    except (OSError, ValueError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        _discard(archive_path)
        raise ArchiveError(
            f"Error zipping directory: {exc}", operation="archive", path=root
        ) from exc
    logger.info("Temp compressed file: %s", archive_path)
    return archive_path
