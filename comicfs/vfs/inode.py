"""Inode table: stable numeric identity for virtual path keys."""

import threading
from typing import Dict


class InodeTable:
    """Assigns and remembers an inode number for every virtual path key.

    A key seen for the first time gets ``len(table)``; afterwards it always
    maps to the same number. Entries are never removed or renumbered.

    Keys are absolute real paths for real nodes, the container path for an
    archive root, and ``container_path + "/" + entry_path`` for archive
    entries.
    """

    def __init__(self):
        self._inodes: Dict[str, int] = {}
        self._lock = threading.Lock()

    def inode_for(self, key: str) -> int:
        """Get the inode for a key, assigning the next free one if unseen."""
        with self._lock:
            inode = self._inodes.get(key)
            if inode is None:
                inode = len(self._inodes)
                self._inodes[key] = inode
            return inode

    def __len__(self) -> int:
        with self._lock:
            return len(self._inodes)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._inodes
