"""VFS nodes mirroring the real directory tree."""

import logging
import os
import stat
from typing import TYPE_CHECKING, List, Optional

from ..exceptions import ComicFSError, FilesystemIOError, NotFoundError
from .base import (
    Attributes,
    DirectoryNode,
    DirEntry,
    FileNode,
    Handle,
    Node,
    NodeType,
    check_read_range,
)

if TYPE_CHECKING:
    from .comic_vfs import ComicFS

log = logging.getLogger(__name__)


def stat_path(path: str) -> os.stat_result:
    """Stat a real path, translating errors to comicfs errors."""
    try:
        return os.stat(path)
    except FileNotFoundError as e:
        raise NotFoundError(f"No such file or directory: {path}") from e
    except OSError as e:
        raise FilesystemIOError(f"Cannot stat {path}: {e}") from e


def attributes_from_stat(inode: int, st: os.stat_result) -> Attributes:
    return Attributes(
        inode=inode,
        size=st.st_size,
        mode=st.st_mode,
        modified_time=st.st_mtime,
    )


class RealDirectoryNode(DirectoryNode):
    """A directory on disk.

    Children are listed in the order the OS returns them. Regular files
    with a registered container extension are reported as directories and
    looked up as archive roots.
    """

    def __init__(self, path: str, fs: 'ComicFS', parent: Optional[DirectoryNode] = None):
        super().__init__(os.path.basename(path), parent)
        self.path = path
        self.fs = fs

    def attributes(self) -> Attributes:
        st = stat_path(self.path)
        return attributes_from_stat(self.fs.inodes.inode_for(self.path), st)

    def list_children(self) -> List[DirEntry]:
        children = []
        try:
            with os.scandir(self.path) as it:
                for dirent in it:
                    node_type = NodeType.FILE
                    if dirent.is_dir() or self.fs.is_container(dirent.name):
                        node_type = NodeType.DIRECTORY
                    children.append(DirEntry(dirent.name, node_type))
        except FileNotFoundError as e:
            raise NotFoundError(f"No such directory: {self.path}") from e
        except OSError as e:
            raise FilesystemIOError(f"Cannot list {self.path}: {e}") from e
        return children

    def lookup(self, name: str) -> Node:
        if not name or os.sep in name or name in (".", ".."):
            raise NotFoundError(f"No such entry: {name!r}")

        path = os.path.join(self.path, name)
        st = stat_path(path)

        if stat.S_ISDIR(st.st_mode):
            return RealDirectoryNode(path, self.fs, parent=self)

        if self.fs.is_container(path):
            try:
                return self.fs.open_container(path, parent=self)
            except ComicFSError as e:
                log.error(f"Failed to make archive dir for {path} in {self!r}: {e}")
                raise

        return RealFileNode(path, self.fs, parent=self)


class RealFileHandle(Handle):
    """An open real file, read with positioned reads."""

    def __init__(self, fp):
        super().__init__()
        self.fp = fp

    def read(self, offset: int, length: int) -> bytes:
        if self.released:
            raise ValueError("Read from a released handle")
        return os.pread(self.fp.fileno(), length, offset)

    def _close(self) -> None:
        self.fp.close()


class RealFileNode(FileNode):
    """A plain file on disk, passed through unchanged."""

    def __init__(self, path: str, fs: 'ComicFS', parent: Optional[DirectoryNode] = None):
        super().__init__(os.path.basename(path), parent)
        self.path = path
        self.fs = fs

    def attributes(self) -> Attributes:
        st = stat_path(self.path)
        return attributes_from_stat(self.fs.inodes.inode_for(self.path), st)

    def open(self) -> RealFileHandle:
        try:
            fp = open(self.path, "rb")
        except FileNotFoundError as e:
            raise NotFoundError(f"No such file: {self.path}") from e
        except OSError as e:
            log.error(f"Failed to open file {self!r}: {e}")
            raise FilesystemIOError(f"Cannot open {self.path}: {e}") from e
        return RealFileHandle(fp)

    def read(self, handle: RealFileHandle, offset: int, length: int) -> bytes:
        check_read_range(offset, length)
        log.debug(f"read {self!r} offset={offset} length={length}")
        try:
            return handle.read(offset, length)
        except OSError as e:
            log.error(f"Failed to read file {self!r}: {e}")
            raise FilesystemIOError(f"Cannot read {self.path}: {e}") from e
