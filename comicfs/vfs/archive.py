"""Archive-backed VFS nodes.

A registered container file (``.cbz``, ``.zip``) is exposed as a directory
whose children are the entries inside the archive:

    ```
    issue-1.cbz/             # ArchiveDirectoryNode (prefix "")
    ├── page1.webp           # ArchiveMemberNode
    ├── page1.webp.png       # ArchiveMemberNode with a webp->png Converter
    └── extras/              # ArchiveDirectoryNode (prefix "extras/")
        └── cover.webp
    ```

The zip itself is opened lazily, once, by the ArchiveHandle shared by every
node of the same container. Handles live in the ArchiveHandleCache owned by
ComicFS, which closes them all at teardown.
"""

import logging
import os
import stat
import threading
import time
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from ..exceptions import (
    ArchiveCorruptError,
    ConversionError,
    FilesystemIOError,
    NotFoundError,
)
from ..imgconv import Converter
from .base import (
    MEMBER_CACHE_VALIDITY,
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

SEPARATOR = "/"


@dataclass(frozen=True)
class ArchiveEntry:
    """One record inside an opened archive."""
    name: str
    is_directory: bool
    uncompressed_size: int
    mode: int
    modified_time: float
    info: zipfile.ZipInfo = field(repr=False, compare=False)

    @classmethod
    def from_zipinfo(cls, info: zipfile.ZipInfo) -> 'ArchiveEntry':
        is_directory = info.filename.endswith(SEPARATOR)
        mode = info.external_attr >> 16
        if not stat.S_IFMT(mode):
            # Archives made on DOS/Windows carry no Unix mode at all
            perms = stat.S_IMODE(mode) or (0o555 if is_directory else 0o444)
            mode = (stat.S_IFDIR if is_directory else stat.S_IFREG) | perms
        try:
            modified_time = time.mktime(info.date_time + (0, 0, -1))
        except (OverflowError, ValueError):
            modified_time = 0.0
        return cls(
            name=info.filename,
            is_directory=is_directory,
            uncompressed_size=info.file_size,
            mode=mode,
            modified_time=modified_time,
            info=info,
        )


class ArchiveHandle:
    """One container file, opened lazily and at most once.

    Attributes:
        source_path: Absolute path of the container on disk
        file_info: stat result of the container, captured at construction
    """

    def __init__(self, source_path: str):
        self.source_path = source_path
        try:
            self.file_info = os.stat(source_path)
        except FileNotFoundError as e:
            raise NotFoundError(f"No such container: {source_path}") from e
        except OSError as e:
            raise FilesystemIOError(f"Cannot stat container {source_path}: {e}") from e

        self._lock = threading.Lock()
        self._archive: Optional[zipfile.ZipFile] = None
        self._entries: List[ArchiveEntry] = []
        self._by_name: Dict[str, ArchiveEntry] = {}
        self._closed = False

    @property
    def opened(self) -> bool:
        return self._archive is not None

    def ensure_open(self) -> None:
        """Open the container unless it already is.

        Concurrent callers block until the single open finishes. The archive
        is published only after its entry index is complete.

        Raises:
            ArchiveCorruptError: The file is not a readable zip archive
            FilesystemIOError: The handle was closed at teardown
        """
        if self._archive is not None:
            return

        with self._lock:
            if self._archive is not None:
                return
            if self._closed:
                raise FilesystemIOError(f"Archive {self.source_path} is closed")

            try:
                archive = zipfile.ZipFile(self.source_path)
            except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
                log.error(f"Failed to open archive {self.source_path}: {e}")
                raise ArchiveCorruptError(f"Cannot parse {self.source_path}: {e}") from e
            except FileNotFoundError as e:
                raise NotFoundError(f"No such container: {self.source_path}") from e
            except OSError as e:
                raise FilesystemIOError(f"Cannot open {self.source_path}: {e}") from e

            entries = [ArchiveEntry.from_zipinfo(info) for info in archive.infolist()]
            by_name: Dict[str, ArchiveEntry] = {}
            for entry in entries:
                # First record wins for duplicate names
                by_name.setdefault(entry.name, entry)

            self._entries = entries
            self._by_name = by_name
            self._archive = archive
            log.info(f"Opened archive {self.source_path} ({len(entries)} entries)")

    def entries(self) -> List[ArchiveEntry]:
        """All entries in archive order."""
        self.ensure_open()
        return self._entries

    def find(self, name: str) -> Optional[ArchiveEntry]:
        """Find an entry by its full in-archive name."""
        self.ensure_open()
        return self._by_name.get(name)

    def has_prefix(self, prefix: str) -> bool:
        """Check whether any entry name starts with prefix."""
        return any(entry.name.startswith(prefix) for entry in self.entries())

    def read_entry(self, entry: ArchiveEntry) -> bytes:
        """Decompress an entry fully into memory."""
        self.ensure_open()
        try:
            return self._archive.read(entry.info)
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError) as e:
            raise ArchiveCorruptError(f"Cannot read {entry.name} from {self.source_path}: {e}") from e
        except OSError as e:
            raise FilesystemIOError(f"Cannot read {self.source_path}: {e}") from e

    def open_entry(self, entry: ArchiveEntry):
        """Open a seekable decompressing stream over an entry."""
        self.ensure_open()
        try:
            return self._archive.open(entry.info)
        except (zipfile.BadZipFile, NotImplementedError) as e:
            raise ArchiveCorruptError(f"Cannot open {entry.name} in {self.source_path}: {e}") from e
        except OSError as e:
            raise FilesystemIOError(f"Cannot read {self.source_path}: {e}") from e

    def close(self) -> None:
        """Close the container for good; later opens fail."""
        with self._lock:
            self._closed = True
            if self._archive is None:
                return
            archive = self._archive
            self._archive = None
            self._entries = []
            self._by_name = {}
        archive.close()
        log.debug(f"Closed archive {self.source_path}")

    def __repr__(self) -> str:
        return f"ArchiveHandle('{self.source_path}', opened={self.opened})"


class ArchiveHandleCache:
    """Container path -> ArchiveHandle, so every lookup chain shares one handle."""

    def __init__(self):
        self._handles: Dict[str, ArchiveHandle] = {}
        self._lock = threading.Lock()

    def get(self, source_path: str) -> ArchiveHandle:
        """Get the handle for a container, creating it on first use."""
        with self._lock:
            handle = self._handles.get(source_path)
            if handle is None:
                handle = ArchiveHandle(source_path)
                self._handles[source_path] = handle
            return handle

    def close_all(self) -> None:
        """Close every opened container."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            try:
                handle.close()
            except OSError as e:
                log.error(f"Failed to close archive {handle.source_path}: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, source_path: str) -> bool:
        with self._lock:
            return source_path in self._handles


def archive_key(source_path: str, entry_path: str) -> str:
    """Virtual path key for a node inside a container."""
    entry_path = entry_path.rstrip(SEPARATOR)
    if not entry_path:
        return source_path
    return source_path + SEPARATOR + entry_path


class ArchiveDirectoryNode(DirectoryNode):
    """The entries of an archive whose names begin with a prefix.

    The archive root has the empty prefix; a subdirectory has a prefix
    ending in "/" (e.g. "extras/").
    """

    def __init__(
        self,
        name: str,
        archive: ArchiveHandle,
        fs: 'ComicFS',
        prefix: str = "",
        parent: Optional[DirectoryNode] = None,
    ):
        super().__init__(name, parent)
        self.archive = archive
        self.fs = fs
        self.prefix = prefix

    def attributes(self) -> Attributes:
        info = self.archive.file_info
        return Attributes(
            inode=self.fs.inodes.inode_for(archive_key(self.archive.source_path, self.prefix)),
            size=info.st_size,
            mode=stat.S_IFDIR | 0o555,
            modified_time=info.st_mtime,
        )

    def list_children(self) -> List[DirEntry]:
        """List direct children, conflating deeper entries into directories."""
        children: List[DirEntry] = []
        seen_dirs = set()

        for entry in self.archive.entries():
            if not entry.name.startswith(self.prefix):
                continue

            rest = entry.name[len(self.prefix):]
            if not rest:
                continue

            sep = rest.find(SEPARATOR)
            if sep < 0:
                children.append(DirEntry(rest, NodeType.FILE))
                continue

            # "sub/" is an explicit directory, "sub/page.webp" an implicit one
            dir_name = rest[:sep]
            if dir_name and dir_name not in seen_dirs:
                seen_dirs.add(dir_name)
                children.append(DirEntry(dir_name, NodeType.DIRECTORY))

        return children

    def lookup(self, name: str) -> Node:
        """Look up a child, honoring dual-extension conversion requests."""
        if not name or SEPARATOR in name or name in (".", ".."):
            raise NotFoundError(f"No such entry: {name!r}")

        requested = name
        converter: Optional[Converter] = None

        # page.webp.png -> page.webp converted to png, if page.webp exists
        detected = self.fs.converters.detect(name)
        if detected is not None:
            source_name, candidate = detected
            if self.archive.find(self.prefix + source_name) is not None:
                log.debug(f"Conversion detected for {name}: {candidate!r}")
                name = source_name
                converter = candidate

        path = self.prefix + name

        entry = self.archive.find(path)
        if entry is not None and not entry.is_directory:
            return ArchiveMemberNode(
                requested,
                self.archive,
                self.fs,
                entry,
                converter=converter,
                parent=self,
            )

        if converter is None:
            dir_prefix = path + SEPARATOR
            if self.archive.find(dir_prefix) is not None or self.archive.has_prefix(dir_prefix):
                return ArchiveDirectoryNode(
                    name, self.archive, self.fs, prefix=dir_prefix, parent=self,
                )

        log.debug(f"Failed to lookup {path} in {self.archive.source_path}")
        raise NotFoundError(f"No such entry: {path}")


class ArchiveMemberHandle(Handle):
    """Open state of an ArchiveMemberNode.

    Either a seekable decompression stream (plain members) or the fully
    converted content (converted members).
    """

    def __init__(self, size: int, stream=None, data: Optional[bytes] = None):
        super().__init__()
        self.size = size
        self.stream = stream
        self.data = data
        self._lock = threading.Lock()

    def read(self, offset: int, length: int) -> bytes:
        if self.released:
            raise ValueError("Read from a released handle")
        if self.data is not None:
            return self.data[offset:offset + length]
        if offset >= self.size or length == 0:
            return b""
        with self._lock:
            self.stream.seek(offset)
            return self.stream.read(length)

    def _close(self) -> None:
        self.data = None
        if self.stream is not None:
            stream = self.stream
            self.stream = None
            stream.close()


class ArchiveMemberNode(FileNode):
    """A file entry inside an archive, optionally converted on the fly.

    Attributes:
        entry: The archive entry backing this node
        converter: Converter applied to the content, or None
    """

    def __init__(
        self,
        name: str,
        archive: ArchiveHandle,
        fs: 'ComicFS',
        entry: ArchiveEntry,
        converter: Optional[Converter] = None,
        parent: Optional[DirectoryNode] = None,
    ):
        super().__init__(name, parent)
        self.archive = archive
        self.fs = fs
        self.entry = entry
        self.converter = converter

    @property
    def key(self) -> str:
        key = archive_key(self.archive.source_path, self.entry.name)
        if self.converter is not None:
            key += self.converter.dst_ext
        return key

    def attributes(self) -> Attributes:
        """Get member metadata.

        The size of a converted member is only known after converting it.
        If conversion fails the unconverted size is reported so that
        metadata queries keep working.
        """
        size = self.entry.uncompressed_size
        if self.converter is not None:
            data = self.archive.read_entry(self.entry)
            try:
                size = len(self.converter.convert(data))
            except ConversionError as e:
                log.error(f"Failed to convert image {self.entry.name} with {self.converter!r}: {e}")
                size = len(data)

        return Attributes(
            inode=self.fs.inodes.inode_for(self.key),
            size=size,
            mode=self.entry.mode,
            modified_time=self.entry.modified_time,
            cache_validity=MEMBER_CACHE_VALIDITY,
        )

    def open(self) -> ArchiveMemberHandle:
        if self.converter is None:
            stream = self.archive.open_entry(self.entry)
            return ArchiveMemberHandle(self.entry.uncompressed_size, stream=stream)

        data = self.converter.convert(self.archive.read_entry(self.entry))
        return ArchiveMemberHandle(len(data), data=data)

    def read(self, handle: ArchiveMemberHandle, offset: int, length: int) -> bytes:
        check_read_range(offset, length)
        log.debug(f"read {self!r} offset={offset} length={length}")
        try:
            return handle.read(offset, length)
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise ArchiveCorruptError(f"Cannot decompress {self.entry.name}: {e}") from e


def zip_archive_factory(path: str, fs: 'ComicFS', parent: Optional[DirectoryNode] = None) -> ArchiveDirectoryNode:
    """Container factory for zip-based comics (.cbz, .zip)."""
    handle = fs.archives.get(path)
    return ArchiveDirectoryNode(os.path.basename(path), handle, fs, prefix="", parent=parent)
