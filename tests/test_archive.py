"""
Tests for the archive codec -- deterministic tar.gz streams.
"""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from conftest import snapshot


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """A small nested directory tree."""
    root = tmp_path / "src" / "docs"
    (root / "nested" / "deeper").mkdir(parents=True)
    (root / "readme.md").write_text("# docs\n")
    (root / "nested" / "a.txt").write_text("a")
    (root / "nested" / "deeper" / "b.bin").write_bytes(b"\x00\xff" * 1000)
    (root / "empty").mkdir()
    return root


class TestPack:
    """Tests for directory -> archive stream."""

    def test_members_are_relative(self, tree: Path):
        from privy.archive import pack

        buf = io.BytesIO()
        pack(tree, buf)
        buf.seek(0)
        with tarfile.open(fileobj=buf, mode="r:gz") as tar:
            names = tar.getnames()

        assert names[0] == "docs"
        assert "docs/nested/deeper/b.bin" in names
        assert "docs/empty" in names
        assert not any(n.startswith("/") for n in names)

    def test_deterministic(self, tree: Path):
        """Packing an unchanged directory twice gives identical bytes."""
        from privy.archive import pack

        first, second = io.BytesIO(), io.BytesIO()
        pack(tree, first)
        pack(tree, second)
        assert first.getvalue() == second.getvalue()

    def test_owner_fields_cleared(self, tree: Path):
        from privy.archive import pack

        buf = io.BytesIO()
        pack(tree, buf)
        buf.seek(0)
        with tarfile.open(fileobj=buf, mode="r:gz") as tar:
            for member in tar.getmembers():
                assert member.uid == 0 and member.gid == 0
                assert member.uname == "" and member.gname == ""


class TestUnpack:
    """Tests for archive stream -> directory."""

    def test_roundtrip(self, tree: Path, tmp_path: Path):
        from privy.archive import pack, unpack

        buf = io.BytesIO()
        pack(tree, buf)
        buf.seek(0)

        dest = tmp_path / "dest"
        dest.mkdir()
        names = unpack(buf, dest)

        assert "docs/readme.md" in names
        assert snapshot(dest / "docs") == snapshot(tree)
        assert (dest / "docs" / "empty").is_dir()

    def test_overwrites_existing_files(self, tree: Path, tmp_path: Path):
        """Same-path files are replaced; files not in the archive stay."""
        from privy.archive import pack, unpack

        buf = io.BytesIO()
        pack(tree, buf)
        buf.seek(0)

        dest = tmp_path / "dest"
        (dest / "docs").mkdir(parents=True)
        (dest / "docs" / "readme.md").write_text("local edit")
        (dest / "docs" / "extra.txt").write_text("untouched")

        unpack(buf, dest)
        assert (dest / "docs" / "readme.md").read_text() == "# docs\n"
        assert (dest / "docs" / "extra.txt").read_text() == "untouched"

    def test_replaces_file_with_directory(self, tree: Path, tmp_path: Path):
        from privy.archive import pack, unpack

        buf = io.BytesIO()
        pack(tree, buf)
        buf.seek(0)

        dest = tmp_path / "dest"
        dest.mkdir()
        (dest / "docs").write_text("a file where the directory goes")

        unpack(buf, dest)
        assert (dest / "docs" / "readme.md").exists()

    def test_not_gzip(self, tmp_path: Path):
        from privy.archive import unpack
        from privy.errors import CorruptArchiveError

        with pytest.raises(CorruptArchiveError):
            unpack(io.BytesIO(b"definitely not gzip data"), tmp_path)

    def test_truncated(self, tree: Path, tmp_path: Path):
        from privy.archive import pack, unpack
        from privy.errors import CorruptArchiveError

        buf = io.BytesIO()
        pack(tree, buf)
        truncated = io.BytesIO(buf.getvalue()[: len(buf.getvalue()) // 2])

        with pytest.raises(CorruptArchiveError):
            unpack(truncated, tmp_path)

    def test_rejects_escaping_members(self, tmp_path: Path):
        """Members pointing outside the destination are refused."""
        from privy.archive import unpack
        from privy.errors import CorruptArchiveError

        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            data = b"evil"
            info = tarfile.TarInfo("../escape.txt")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        buf.seek(0)

        dest = tmp_path / "dest"
        dest.mkdir()
        with pytest.raises(CorruptArchiveError):
            unpack(buf, dest)
        assert not (tmp_path / "escape.txt").exists()

    @pytest.mark.parametrize("name", ["../victim.txt", "sub/../../victim.txt"])
    def test_escaping_directory_member_deletes_nothing(self, tmp_path: Path, name: str):
        """A directory member outside the destination leaves files there alone."""
        from privy.archive import unpack
        from privy.errors import CorruptArchiveError

        victim = tmp_path / "victim.txt"
        victim.write_text("keep me")

        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        buf.seek(0)

        dest = tmp_path / "dest"
        dest.mkdir()
        with pytest.raises(CorruptArchiveError):
            unpack(buf, dest)
        assert victim.read_text() == "keep me"
