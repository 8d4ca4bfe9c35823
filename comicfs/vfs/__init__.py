"""Virtual File System exposing comic archives as directories.

Architecture:

    ```
    /srv/comics/                    # RealDirectoryNode (ComicFS.root())
    ├── series/                     # RealDirectoryNode
    │   ├── issue-1.cbz/            # ArchiveDirectoryNode (a zip on disk)
    │   │   ├── page1.webp          # ArchiveMemberNode
    │   │   ├── page1.webp.png      # ArchiveMemberNode, converted on read
    │   │   └── extras/             # ArchiveDirectoryNode (prefix "extras/")
    │   └── notes.txt               # RealFileNode
    ```

Node Types:

    - Node: Base class, exposes attributes()
    - DirectoryNode: list_children() and lookup(name)
    - FileNode: open(), read(handle, offset, length), release(handle)

Usage Example:

    ```python
    from comicfs.vfs import ComicFS, zip_archive_factory

    with ComicFS("/srv/comics") as fs:
        fs.register_container_type(".cbz", zip_archive_factory)
        page = fs.resolver.resolve("/series/issue-1.cbz/page1.webp.png")
        handle = page.open()
        data = page.read(handle, 0, 4096)
        page.release(handle)
    ```
"""

from comicfs.vfs.base import (
    Attributes,
    DirEntry,
    DirectoryNode,
    FileNode,
    Handle,
    Node,
    NodeType,
)
from comicfs.vfs.inode import InodeTable
from comicfs.vfs.archive import (
    ArchiveDirectoryNode,
    ArchiveEntry,
    ArchiveHandle,
    ArchiveHandleCache,
    ArchiveMemberNode,
    zip_archive_factory,
)
from comicfs.vfs.real import RealDirectoryNode, RealFileNode
from comicfs.vfs.resolver import PathResolver
from comicfs.vfs.comic_vfs import ComicFS

__all__ = [
    # Main entry point
    "ComicFS",
    # Core classes
    "Node",
    "DirectoryNode",
    "FileNode",
    "Handle",
    "NodeType",
    "DirEntry",
    "Attributes",
    "InodeTable",
    # Real filesystem
    "RealDirectoryNode",
    "RealFileNode",
    # Archives
    "ArchiveHandle",
    "ArchiveHandleCache",
    "ArchiveEntry",
    "ArchiveDirectoryNode",
    "ArchiveMemberNode",
    "zip_archive_factory",
    # Path resolution
    "PathResolver",
]
