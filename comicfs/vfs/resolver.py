"""Path resolution for the Virtual File System.

Walks slash-separated virtual paths one segment at a time, the same way
the kernel issues lookups against a mounted comicfs.
"""

from typing import List

from ..exceptions import NotADirectoryError
from .base import DirectoryNode, Node


class PathResolver:
    """Resolves virtual paths to nodes.

    Handles:
    - Absolute and relative paths: /series/issue-1.cbz, issue-1.cbz/page1.webp
    - Special segments: ., ..
    """

    def __init__(self, root: DirectoryNode):
        """Initialize path resolver.

        Args:
            root: Root node of the VFS
        """
        self.root = root

    def resolve(self, path: str, current: DirectoryNode = None) -> Node:
        """Resolve a path to a node.

        Args:
            path: Path to resolve (absolute or relative)
            current: Directory relative paths start from (default: root)

        Returns:
            Resolved node

        Raises:
            NotFoundError: If a segment does not exist
            NotADirectoryError: If a non-final segment is a file
        """
        node: Node = current if current is not None else self.root
        if path.startswith("/"):
            node = self.root

        for part in self._parse_path(path):
            if part == ".":
                continue
            if part == "..":
                if node.parent is not None:
                    node = node.parent
                continue

            if not isinstance(node, DirectoryNode):
                raise NotADirectoryError(f"Not a directory: {node.get_path()}")
            node = node.lookup(part)

        return node

    def resolve_directory(self, path: str, current: DirectoryNode = None) -> DirectoryNode:
        """Resolve a path that must name a directory.

        Raises:
            NotFoundError: If the path does not exist
            NotADirectoryError: If the path names a file
        """
        node = self.resolve(path, current)
        if not isinstance(node, DirectoryNode):
            raise NotADirectoryError(f"Not a directory: {path}")
        return node

    def _parse_path(self, path: str) -> List[str]:
        """Split a path into segments, dropping the root and empty parts."""
        return [part for part in path.split("/") if part]
