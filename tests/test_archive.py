import os
import tempfile
import zipfile
from pathlib import Path

import pytest

from shellcp.archive import archive_directory, archive_names
from shellcp.errors import ArchiveError


def make_tree(root: Path) -> None:
    (root / "bin").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "bin" / "tool.exe").write_bytes(b"MZ" + bytes(range(256)) * 40)
    (root / "readme.txt").write_text("hello")
    (root / ".DS_Store").write_bytes(b"\x00\x00\x00\x01Bud1")


def test_archive_names_are_rooted_and_normalized(tmp_path: Path):
    root = tmp_path / "site"
    make_tree(root)

    names = [name for _, name in archive_names(str(root))]

    assert names == [
        "site/",
        "site/bin/",
        "site/empty/",
        "site/.DS_Store",
        "site/readme.txt",
        "site/bin/tool.exe",
    ]
    assert len(set(names)) == len(names)


def test_archive_contains_every_entry(tmp_path: Path):
    root = tmp_path / "site"
    make_tree(root)

    archive_path = archive_directory(str(root))
    try:
        with zipfile.ZipFile(archive_path) as archive:
            infos = {info.filename: info for info in archive.infolist()}
            assert set(infos) == {
                "site/",
                "site/bin/",
                "site/empty/",
                "site/.DS_Store",
                "site/readme.txt",
                "site/bin/tool.exe",
            }
            assert infos["site/bin/"].is_dir()
            assert infos["site/bin/"].file_size == 0
            assert infos["site/bin/tool.exe"].compress_type == zipfile.ZIP_DEFLATED
            assert archive.read("site/bin/tool.exe") == (root / "bin" / "tool.exe").read_bytes()
            assert archive.read("site/readme.txt") == b"hello"
    finally:
        os.remove(archive_path)


def test_each_archive_gets_a_unique_path(tmp_path: Path):
    root = tmp_path / "site"
    make_tree(root)

    first = archive_directory(str(root))
    second = archive_directory(str(root))
    try:
        assert first != second
        assert os.path.exists(first) and os.path.exists(second)
    finally:
        os.remove(first)
        os.remove(second)


def test_missing_root_is_an_archive_error(tmp_path: Path):
    with pytest.raises(ArchiveError):
        archive_directory(str(tmp_path / "missing"))


def test_unreadable_entry_fails_fast_without_leaving_archive(tmp_path: Path, monkeypatch):
    root = tmp_path / "site"
    make_tree(root)
    (root / "dangling").symlink_to(tmp_path / "nowhere")
    created = []
    real_mkstemp = tempfile.mkstemp

    def tracking_mkstemp(*args, **kwargs):
        fd, path = real_mkstemp(*args, **kwargs)
        created.append(path)
        return fd, path

    monkeypatch.setattr("shellcp.archive.tempfile.mkstemp", tracking_mkstemp)

    with pytest.raises(ArchiveError) as excinfo:
        archive_directory(str(root))

    assert excinfo.value.path == str(root)
    assert created and not os.path.exists(created[0])


def test_pre_1980_timestamps_are_clamped(tmp_path: Path):
    root = tmp_path / "site"
    make_tree(root)
    os.utime(root / "readme.txt", (0, 0))
    os.utime(root / "empty", (0, 0))

    archive_path = archive_directory(str(root))
    try:
        with zipfile.ZipFile(archive_path) as archive:
            assert archive.getinfo("site/readme.txt").date_time == (1980, 1, 1, 0, 0, 0)
            assert archive.getinfo("site/empty/").date_time == (1980, 1, 1, 0, 0, 0)
            assert archive.read("site/readme.txt") == b"hello"
    finally:
        os.remove(archive_path)
