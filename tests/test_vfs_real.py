"""
Tests for VFS nodes mirroring the real directory tree.

Tests focus on behavior:
- Container files are reported and looked up as directories
- Lookup errors for missing paths
- Positioned reads with short reads at end of file
"""

import logging
import os
import stat
import zipfile

import pytest

from comicfs.config import ComicFSConfig
from comicfs.exceptions import NotFoundError
from comicfs.vfs import (
    ArchiveDirectoryNode,
    ComicFS,
    DirEntry,
    NodeType,
    RealDirectoryNode,
    RealFileNode,
)
from comicfs.vfs.base import DIRECTORY_CACHE_VALIDITY


@pytest.fixture
def comics_dir(tmp_path):
    """Create a small comic library.

    Structure:
        comics/
        ├── a.cbz
        ├── B.ZIP
        ├── notes.txt
        └── series/
            └── issue-1.cbz
    """
    base = tmp_path / "comics"
    (base / "series").mkdir(parents=True)

    for path in (base / "a.cbz", base / "B.ZIP", base / "series" / "issue-1.cbz"):
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("page1.webp", b"fake page")

    (base / "notes.txt").write_bytes(b"read the good ones first")
    return base


@pytest.fixture
def fs(comics_dir):
    comic_fs = ComicFS.from_config(ComicFSConfig(), str(comics_dir))
    yield comic_fs
    comic_fs.close()


# ============================================================================
# DIRECTORIES
# ============================================================================

class TestRealDirectory:
    """Test real directory listing and lookup."""

    def test_root_node(self, fs, comics_dir):
        root = fs.root()
        assert isinstance(root, RealDirectoryNode)
        assert root.path == str(comics_dir)
        assert root.get_path() == "/"
        assert fs.root() is root

    def test_container_listed_as_directory(self, fs):
        children = {entry.name: entry.node_type for entry in fs.root().list_children()}
        assert children == {
            "a.cbz": NodeType.DIRECTORY,
            "B.ZIP": NodeType.DIRECTORY,
            "notes.txt": NodeType.FILE,
            "series": NodeType.DIRECTORY,
        }

    def test_listing_follows_os_order(self, fs, comics_dir):
        names = [entry.name for entry in fs.root().list_children()]
        assert names == [entry.name for entry in os.scandir(comics_dir)]

    def test_unregistered_extension_is_file(self, comics_dir):
        with ComicFS(str(comics_dir)) as comic_fs:
            comic_fs.register_container_type(".zip", lambda path, fs, parent: None)
            children = dict(comic_fs.root().list_children())
            assert children["a.cbz"] == NodeType.FILE
            assert children["B.ZIP"] == NodeType.DIRECTORY

    def test_lookup_directory(self, fs):
        series = fs.root().lookup("series")
        assert isinstance(series, RealDirectoryNode)
        assert series.list_children() == [DirEntry("issue-1.cbz", NodeType.DIRECTORY)]

    def test_lookup_container(self, fs, comics_dir):
        node = fs.root().lookup("a.cbz")
        assert isinstance(node, ArchiveDirectoryNode)
        assert node.archive.source_path == str(comics_dir / "a.cbz")
        assert node.parent is fs.root()

    def test_lookup_container_extension_case_insensitive(self, fs):
        assert isinstance(fs.root().lookup("B.ZIP"), ArchiveDirectoryNode)

    def test_lookup_file(self, fs):
        node = fs.root().lookup("notes.txt")
        assert isinstance(node, RealFileNode)
        assert node.get_path() == "/notes.txt"

    def test_lookup_missing(self, fs):
        with pytest.raises(NotFoundError):
            fs.root().lookup("missing.cbz")

    @pytest.mark.parametrize("name", ["", ".", "..", "series/issue-1.cbz"])
    def test_lookup_invalid_names(self, fs, name):
        with pytest.raises(NotFoundError):
            fs.root().lookup(name)

    def test_missing_container_logged(self, fs, comics_dir, caplog):
        caplog.set_level(logging.ERROR)
        fs.register_container_type(".cbr", _missing_factory)
        (comics_dir / "c.cbr").write_bytes(b"rar")

        with pytest.raises(NotFoundError):
            fs.root().lookup("c.cbr")

        assert "Failed to make archive dir" in caplog.text

    def test_directory_attributes(self, fs, comics_dir):
        attrs = fs.root().attributes()
        assert stat.S_ISDIR(attrs.mode)
        assert attrs.inode == 0
        assert attrs.cache_validity == DIRECTORY_CACHE_VALIDITY

    def test_listing_deleted_directory(self, fs, comics_dir):
        series = fs.root().lookup("series")
        (comics_dir / "series" / "issue-1.cbz").unlink()
        (comics_dir / "series").rmdir()

        with pytest.raises(NotFoundError):
            series.list_children()
        with pytest.raises(NotFoundError):
            series.attributes()


def _missing_factory(path, fs, parent=None):
    raise NotFoundError(f"Gone: {path}")


# ============================================================================
# FILES
# ============================================================================

class TestRealFile:
    """Test real file open/read/release."""

    @pytest.fixture
    def notes(self, fs):
        return fs.root().lookup("notes.txt")

    def test_attributes(self, fs, comics_dir, notes):
        attrs = notes.attributes()
        st = os.stat(comics_dir / "notes.txt")
        assert attrs.size == st.st_size
        assert attrs.mode == st.st_mode
        assert attrs.modified_time == st.st_mtime
        assert attrs.inode == fs.inodes.inode_for(str(comics_dir / "notes.txt"))

    def test_read(self, notes):
        handle = notes.open()
        try:
            assert notes.read(handle, 0, 4) == b"read"
            assert notes.read(handle, 9, 4) == b"good"
        finally:
            notes.release(handle)

    def test_short_read_at_end(self, notes):
        content = b"read the good ones first"
        handle = notes.open()
        try:
            assert notes.read(handle, len(content) - 5, 100) == b"first"
            assert notes.read(handle, len(content), 10) == b""
        finally:
            notes.release(handle)

    def test_double_release(self, notes):
        handle = notes.open()
        notes.release(handle)
        notes.release(handle)
        assert handle.released

    def test_open_deleted_file(self, notes, comics_dir):
        (comics_dir / "notes.txt").unlink()
        with pytest.raises(NotFoundError):
            notes.open()

    def test_inode_stable(self, fs):
        first = fs.root().lookup("notes.txt").attributes().inode
        second = fs.root().lookup("notes.txt").attributes().inode
        assert first == second
