"""
Tests for VFS PathResolver.

Tests focus on:
- Path resolution across real directories and archives
- Special segments (., ..)
- Error handling
"""

import zipfile

import pytest

from comicfs.config import ComicFSConfig
from comicfs.exceptions import NotADirectoryError, NotFoundError
from comicfs.vfs import (
    ArchiveDirectoryNode,
    ArchiveMemberNode,
    ComicFS,
    RealDirectoryNode,
    RealFileNode,
)


@pytest.fixture
def fs(tmp_path):
    """Create a VFS over a small library.

    Structure:
        /
        ├── readme.txt
        └── series/
            └── issue-1.cbz/
                ├── page1.webp
                └── extras/
                    └── cover.webp
    """
    base = tmp_path / "comics"
    (base / "series").mkdir(parents=True)
    (base / "readme.txt").write_text("hello")
    with zipfile.ZipFile(base / "series" / "issue-1.cbz", "w") as zf:
        zf.writestr("page1.webp", b"page")
        zf.writestr("extras/cover.webp", b"cover")

    comic_fs = ComicFS.from_config(ComicFSConfig(), str(base))
    yield comic_fs
    comic_fs.close()


class TestAbsolutePaths:
    """Test resolution of absolute paths."""

    def test_resolve_root(self, fs):
        assert fs.resolver.resolve("/") is fs.root()

    def test_resolve_real_directory(self, fs):
        node = fs.resolver.resolve("/series")
        assert isinstance(node, RealDirectoryNode)
        assert node.get_path() == "/series"

    def test_resolve_real_file(self, fs):
        assert isinstance(fs.resolver.resolve("/readme.txt"), RealFileNode)

    def test_resolve_archive(self, fs):
        node = fs.resolver.resolve("/series/issue-1.cbz")
        assert isinstance(node, ArchiveDirectoryNode)

    def test_resolve_archive_member(self, fs):
        node = fs.resolver.resolve("/series/issue-1.cbz/extras/cover.webp")
        assert isinstance(node, ArchiveMemberNode)
        assert node.get_path() == "/series/issue-1.cbz/extras/cover.webp"

    def test_trailing_and_double_slashes(self, fs):
        node = fs.resolver.resolve("//series///issue-1.cbz/")
        assert isinstance(node, ArchiveDirectoryNode)


class TestRelativePaths:
    """Test resolution relative to a current directory."""

    def test_relative_to_root_by_default(self, fs):
        assert isinstance(fs.resolver.resolve("series"), RealDirectoryNode)

    def test_relative_to_current(self, fs):
        series = fs.resolver.resolve("/series")
        node = fs.resolver.resolve("issue-1.cbz/page1.webp", current=series)
        assert node.entry.name == "page1.webp"

    def test_absolute_path_ignores_current(self, fs):
        series = fs.resolver.resolve("/series")
        assert fs.resolver.resolve("/readme.txt", current=series).name == "readme.txt"


class TestSpecialSegments:

    def test_dot(self, fs):
        assert fs.resolver.resolve("/series/./issue-1.cbz/.").name == "issue-1.cbz"

    def test_dot_dot(self, fs):
        node = fs.resolver.resolve("/series/issue-1.cbz/extras/../page1.webp")
        assert node.entry.name == "page1.webp"

    def test_dot_dot_leaves_archive(self, fs):
        node = fs.resolver.resolve("/series/issue-1.cbz/../../readme.txt")
        assert isinstance(node, RealFileNode)

    def test_dot_dot_at_root_stays_at_root(self, fs):
        assert fs.resolver.resolve("/../..") is fs.root()


class TestErrors:

    def test_missing_segment(self, fs):
        with pytest.raises(NotFoundError):
            fs.resolver.resolve("/series/issue-2.cbz")

    def test_missing_archive_member(self, fs):
        with pytest.raises(NotFoundError):
            fs.resolver.resolve("/series/issue-1.cbz/page2.webp")

    def test_descend_through_file(self, fs):
        with pytest.raises(NotADirectoryError):
            fs.resolver.resolve("/readme.txt/anything")

    def test_descend_through_archive_member(self, fs):
        with pytest.raises(NotADirectoryError):
            fs.resolver.resolve("/series/issue-1.cbz/page1.webp/x")

    def test_resolve_directory_rejects_file(self, fs):
        with pytest.raises(NotADirectoryError):
            fs.resolver.resolve_directory("/readme.txt")

    def test_resolve_directory(self, fs):
        node = fs.resolver.resolve_directory("/series/issue-1.cbz/extras")
        assert isinstance(node, ArchiveDirectoryNode)
        assert node.prefix == "extras/"
