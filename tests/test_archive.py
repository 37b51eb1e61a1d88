"""Tests for removing the synthetic top-level directory from archives."""

import zipfile
from pathlib import Path
from unittest.mock import patch

from pixell_deploy.packages import archive
from pixell_deploy.packages.archive import denest_archive, has_single_root, strip_root


def _write(tmp_path: Path, zip_bytes, entries) -> Path:
    path = tmp_path / "source.zip"
    path.write_bytes(zip_bytes(entries))
    return path


def test_root_is_stripped_and_directories_dropped(tmp_path, zip_bytes):
    source = _write(
        tmp_path,
        zip_bytes,
        {"root/a.txt": b"alpha", "root/dir/": b"", "root/dir/b.txt": b"beta"},
    )
    destination = tmp_path / "out.zip"

    result = denest_archive(source, destination)

    assert result.root == "root/"
    assert result.entries_written == 2
    assert result.warnings == []
    with zipfile.ZipFile(destination) as zf:
        assert zf.namelist() == ["a.txt", "dir/b.txt"]
        assert zf.read("a.txt") == b"alpha"
        assert zf.getinfo("a.txt").compress_type == zipfile.ZIP_DEFLATED


def test_entries_outside_root_are_reported(tmp_path, zip_bytes):
    source = _write(tmp_path, zip_bytes, {"root/a.txt": b"a", "other/b.txt": b"b"})
    destination = tmp_path / "out.zip"

    result = denest_archive(source, destination)

    assert result.entries_written == 1
    assert [w.entry_name for w in result.warnings] == ["other/b.txt"]
    with zipfile.ZipFile(destination) as zf:
        assert zf.namelist() == ["a.txt"]


def test_failing_entry_is_skipped(tmp_path, zip_bytes):
    source = _write(tmp_path, zip_bytes, {"root/a.txt": b"a", "root/b.txt": b"b", "root/c.txt": b"c"})
    destination = tmp_path / "out.zip"
    real_copy = archive._copy_entry

    def flaky_copy(reader, writer, info, new_name):
        if new_name == "b.txt":
            raise OSError("disk hiccup")
        real_copy(reader, writer, info, new_name)

    with patch.object(archive, "_copy_entry", side_effect=flaky_copy):
        result = denest_archive(source, destination)

    assert result.entries_written == 2
    assert len(result.warnings) == 1
    assert "disk hiccup" in str(result.warnings[0])
    with zipfile.ZipFile(destination) as zf:
        assert zf.namelist() == ["a.txt", "c.txt"]


def test_strip_root():
    assert strip_root("root/a.txt", "root/") == "a.txt"
    assert strip_root("root/", "root/") is None
    assert strip_root("elsewhere/a.txt", "root/") is None


def test_has_single_root(tmp_path, zip_bytes):
    assert has_single_root(_write(tmp_path, zip_bytes, {"root/": b"", "root/a.txt": b"a", "root/b/c.txt": b"c"}))
    assert not has_single_root(_write(tmp_path, zip_bytes, {"root/a.txt": b"a", "top.txt": b"t"}))
    assert not has_single_root(_write(tmp_path, zip_bytes, {"one/a.txt": b"a", "two/b.txt": b"b"}))
    assert not has_single_root(_write(tmp_path, zip_bytes, {"empty/": b""}))
