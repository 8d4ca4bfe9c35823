"""Base classes for the virtual filesystem.

The VFS mirrors a real directory tree and exposes comic archives found in it
as directories.

Architecture:
    - Node: Base class for all VFS nodes
    - DirectoryNode: Nodes that can be listed and looked up into
    - FileNode: Leaf nodes with content (open/read/release)
    - Handle: Per-open state returned by FileNode.open()
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional

log = logging.getLogger(__name__)

# How long the host may cache metadata without asking again (seconds)
DIRECTORY_CACHE_VALIDITY = 60.0 * 60
MEMBER_CACHE_VALIDITY = 2 * 60.0


class NodeType(Enum):
    """Type of VFS node."""
    DIRECTORY = "directory"
    FILE = "file"


class DirEntry(NamedTuple):
    """One child reported by DirectoryNode.list_children()."""
    name: str
    node_type: NodeType


@dataclass(frozen=True)
class Attributes:
    """Metadata reported for a node.

    Attributes:
        inode: Stable identity from the InodeTable
        size: Size in bytes
        mode: st_mode bits, including the file type
        modified_time: Modification time in seconds since the epoch
        cache_validity: Seconds the host may cache these attributes
    """
    inode: int
    size: int
    mode: int
    modified_time: float
    cache_validity: float = DIRECTORY_CACHE_VALIDITY


class Node(ABC):
    """Base class for all VFS nodes.

    Attributes:
        name: The name of this node (e.g., "page1.webp", "issue-1.cbz")
        parent: Parent directory node (None for root)
        node_type: Type of node (directory or file)
    """

    def __init__(
        self,
        name: str,
        parent: Optional['DirectoryNode'] = None,
        node_type: NodeType = NodeType.FILE,
    ):
        self.name = name
        self.parent = parent
        self.node_type = node_type

    @abstractmethod
    def attributes(self) -> Attributes:
        """Get the metadata of this node.

        Raises:
            NotFoundError: If the backing object no longer exists
            FilesystemIOError: If the backing object cannot be inspected
        """
        pass

    def get_path(self) -> str:
        """Get the absolute virtual path to this node.

        Returns:
            Path like /series/issue-1.cbz/page1.webp
        """
        if self.parent is None:
            return "/"

        parts = []
        node = self
        while node.parent is not None:
            parts.append(node.name)
            node = node.parent

        return "/" + "/".join(reversed(parts))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', path='{self.get_path()}')"


class DirectoryNode(Node):
    """A directory node that can be listed and descended into."""

    def __init__(self, name: str, parent: Optional['DirectoryNode'] = None):
        super().__init__(name, parent, NodeType.DIRECTORY)

    @abstractmethod
    def list_children(self) -> List[DirEntry]:
        """List the direct children of this directory, in native order."""
        pass

    @abstractmethod
    def lookup(self, name: str) -> Node:
        """Get a child node by a single path segment.

        Raises:
            NotFoundError: If no child has that name
        """
        pass


class Handle(ABC):
    """State for one open() of a file node.

    A handle belongs to the caller that opened it. close() may be called any
    number of times; only the first call releases resources.
    """

    def __init__(self):
        self.released = False

    def close(self) -> None:
        if self.released:
            return
        self.released = True
        self._close()

    @abstractmethod
    def _close(self) -> None:
        pass


class FileNode(Node):
    """A file node with readable content."""

    def __init__(self, name: str, parent: Optional[DirectoryNode] = None):
        super().__init__(name, parent, NodeType.FILE)

    @abstractmethod
    def open(self) -> Handle:
        """Open this file for reading."""
        pass

    @abstractmethod
    def read(self, handle: Handle, offset: int, length: int) -> bytes:
        """Read up to length bytes starting at offset.

        Reading past the end yields a shorter (possibly empty) result.
        """
        pass

    def release(self, handle: Handle) -> None:
        """Release a handle returned by open().

        Double release is a no-op; close failures are logged, never raised.
        """
        if handle.released:
            log.debug(f"Handle for {self!r} already released")
            return
        try:
            handle.close()
        except OSError as e:
            log.error(f"Failed to release handle for {self!r}: {e}")


def check_read_range(offset: int, length: int) -> None:
    """Reject negative read ranges."""
    if offset < 0 or length < 0:
        raise ValueError(f"Invalid read range: offset={offset}, length={length}")
