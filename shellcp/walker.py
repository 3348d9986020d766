"""Copy a directory tree file by file, without archiving it first."""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
import logging
import os
from pathlib import Path, PureWindowsPath
from typing import BinaryIO, Callable, Iterator

from shellcp.errors import LocalFileError

logger = logging.getLogger(__name__)

# macOS Finder metadata; never worth copying to a Windows host.
IGNORED_NAMES = frozenset({".DS_Store"})

TransferFn = Callable[[str, BinaryIO], object]


def should_upload(path: Path) -> bool:
    return path.name not in IGNORED_NAMES and path.is_file()


def _raise(error: OSError) -> None:
    raise LocalFileError(
        f"Couldn't walk directory: {error.strerror or error}",
        operation="walk",
        path=error.filename,
    ) from error


def iter_upload_files(root: str, dest_root: str) -> Iterator[tuple[str, str]]:
    """Yield ``(local path, remote path)`` for every file that should be copied."""

    root_path = Path(root).absolute()
    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            local = Path(dirpath) / name
            if not should_upload(local):
                continue
            relative = local.relative_to(root_path)
            yield str(local), str(PureWindowsPath(dest_root).joinpath(*relative.parts))


def _copy_one(local: str, remote: str, transfer_fn: TransferFn) -> None:
    try:
        handle = open(local, "rb")
    except OSError as exc:
        raise LocalFileError(
            f"Couldn't read file: {exc.strerror or exc}", operation="walk", path=local
        ) from exc
    with handle:
        logger.debug("Copying %s to %s", local, remote)
        transfer_fn(remote, handle)


def walk_directory(
    root: str,
    dest_root: str,
    transfer_fn: TransferFn,
    *,
    max_workers: int = 1,
) -> int:
    """Send every file under ``root`` to the mirrored path under ``dest_root``.

    The first failure aborts the walk and is raised; files already sent stay
    on the remote host. Returns the number of files copied.
    """

    if not os.path.isdir(root):
        raise LocalFileError("Not a directory", operation="walk", path=root)
    if max_workers <= 1:
        count = 0
        for local, remote in iter_upload_files(root, dest_root):
            _copy_one(local, remote, transfer_fn)
            count += 1
        return count

    pending: list[Future] = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="shellcp") as pool:
        try:
            for local, remote in iter_upload_files(root, dest_root):
                pending.append(pool.submit(_copy_one, local, remote, transfer_fn))
            done, _ = wait(pending, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    raise error
        except BaseException:
            pool.shutdown(wait=True, cancel_futures=True)
            raise
    return len(pending)
