import threading
import time
from pathlib import Path

import pytest

from shellcp.errors import LocalFileError
from shellcp.walker import iter_upload_files, walk_directory


def make_tree(root: Path) -> None:
    (root / "css").mkdir(parents=True)
    (root / "js" / "vendor").mkdir(parents=True)
    (root / "index.html").write_text("<html/>")
    (root / "css" / "site.css").write_text("body {}")
    (root / "css" / ".DS_Store").write_bytes(b"junk")
    (root / ".DS_Store").write_bytes(b"junk")
    (root / "js" / "vendor" / "lib.js").write_text("lib()")


def test_plan_skips_hidden_metadata_and_mirrors_paths(tmp_path: Path):
    root = tmp_path / "www"
    make_tree(root)

    plan = list(iter_upload_files(str(root), "C:\\inetpub\\wwwroot"))

    assert [remote for _, remote in plan] == [
        "C:\\inetpub\\wwwroot\\index.html",
        "C:\\inetpub\\wwwroot\\css\\site.css",
        "C:\\inetpub\\wwwroot\\js\\vendor\\lib.js",
    ]
    assert [Path(local).name for local, _ in plan] == ["index.html", "site.css", "lib.js"]


def test_walk_sends_every_file_with_its_content(tmp_path: Path):
    root = tmp_path / "www"
    make_tree(root)
    received = {}

    def fake_transfer(destination, stream):
        assert not stream.closed
        received[destination] = stream.read()

    count = walk_directory(str(root), "D:\\site", fake_transfer)

    assert count == 3
    assert received == {
        "D:\\site\\index.html": b"<html/>",
        "D:\\site\\css\\site.css": b"body {}",
        "D:\\site\\js\\vendor\\lib.js": b"lib()",
    }


def test_streams_are_closed_after_each_transfer(tmp_path: Path):
    root = tmp_path / "www"
    make_tree(root)
    streams = []

    walk_directory(str(root), "D:\\site", lambda destination, stream: streams.append(stream))

    assert streams and all(stream.closed for stream in streams)


def test_first_failure_aborts_the_walk(tmp_path: Path):
    root = tmp_path / "www"
    make_tree(root)
    calls = []

    def failing_transfer(destination, stream):
        calls.append(destination)
        raise RuntimeError("remote refused")

    with pytest.raises(RuntimeError, match="remote refused"):
        walk_directory(str(root), "D:\\site", failing_transfer)

    assert calls == ["D:\\site\\index.html"]


def test_missing_root_is_a_local_file_error(tmp_path: Path):
    with pytest.raises(LocalFileError):
        walk_directory(str(tmp_path / "missing"), "D:\\site", lambda d, s: None)


def test_parallel_walk_is_bounded(tmp_path: Path):
    root = tmp_path / "many"
    root.mkdir()
    for index in range(12):
        (root / f"file{index:02d}.txt").write_text(str(index))
    lock = threading.Lock()
    active = 0
    peak = 0
    received = {}

    def slow_transfer(destination, stream):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        received[destination] = stream.read()
        with lock:
            active -= 1

    count = walk_directory(str(root), "D:\\many", slow_transfer, max_workers=3)

    assert count == 12
    assert len(received) == 12
    assert 1 <= peak <= 3


def test_parallel_walk_reraises_first_error(tmp_path: Path):
    root = tmp_path / "many"
    root.mkdir()
    for index in range(6):
        (root / f"file{index}.txt").write_text(str(index))

    def failing_transfer(destination, stream):
        if destination.endswith("file2.txt"):
            raise LocalFileError("boom", path=destination)

    with pytest.raises(LocalFileError, match="boom"):
        walk_directory(str(root), "D:\\many", failing_transfer, max_workers=2)
