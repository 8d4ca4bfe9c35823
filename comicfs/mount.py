"""
pyfuse3 binding for ComicFS.

Translates kernel requests into node operations. Blocking node work
(stat, archive decompression, image conversion) runs on worker threads via
trio.to_thread, so concurrent requests are served in parallel.

Usage:
    comicfs mount /srv/comics /mnt/comics
"""

import errno
import logging
import os
import stat
from typing import Dict, Optional, Tuple

import pyfuse3
import trio

from .config import MountConfig
from .exceptions import ComicFSError, FilesystemIOError
from .vfs import Attributes, ComicFS, DirectoryNode, FileNode, Handle, Node, NodeType

log = logging.getLogger(__name__)


class ComicFSOperations(pyfuse3.Operations):
    """Read-only FUSE operations backed by a ComicFS."""

    def __init__(self, fs: ComicFS):
        super().__init__()
        self.fs = fs
        # Kernel inode -> most recently looked up node with that identity
        self._nodes: Dict[int, Node] = {pyfuse3.ROOT_INODE: fs.root()}
        self._handles: Dict[int, Tuple[FileNode, Handle]] = {}
        self._next_fh = 1

    # ── Helpers ───────────────────────────────────────────────────────

    async def _call(self, fn, *args):
        """Run a blocking node operation on a worker thread."""
        try:
            return await trio.to_thread.run_sync(fn, *args)
        except ComicFSError as e:
            log.debug(f"{getattr(fn, '__qualname__', fn)} failed: {e}")
            raise pyfuse3.FUSEError(e.errno)

    def _node(self, inode: int) -> Node:
        node = self._nodes.get(inode)
        if node is None:
            raise pyfuse3.FUSEError(errno.ENOENT)
        return node

    def _make_attr(self, attrs: Attributes) -> pyfuse3.EntryAttributes:
        """Convert node Attributes to pyfuse3 EntryAttributes."""
        entry = pyfuse3.EntryAttributes()
        entry.st_ino = attrs.inode + pyfuse3.ROOT_INODE
        entry.generation = 0
        entry.entry_timeout = attrs.cache_validity
        entry.attr_timeout = attrs.cache_validity
        entry.st_mode = attrs.mode
        entry.st_nlink = 2 if stat.S_ISDIR(attrs.mode) else 1
        entry.st_size = attrs.size
        entry.st_blksize = 4096
        entry.st_blocks = (attrs.size + 511) // 512
        mtime_ns = int(attrs.modified_time * 1e9)
        entry.st_atime_ns = mtime_ns
        entry.st_mtime_ns = mtime_ns
        entry.st_ctime_ns = mtime_ns
        entry.st_uid = os.getuid()
        entry.st_gid = os.getgid()
        return entry

    async def _remember(self, node: Node) -> pyfuse3.EntryAttributes:
        attr = self._make_attr(await self._call(node.attributes))
        self._nodes[attr.st_ino] = node
        return attr

    # ── Attributes and lookup ─────────────────────────────────────────

    async def getattr(self, inode: int, ctx: pyfuse3.RequestContext = None) -> pyfuse3.EntryAttributes:
        """Get file/directory attributes."""
        node = self._node(inode)
        return self._make_attr(await self._call(node.attributes))

    async def lookup(self, parent_inode: int, name: bytes, ctx: pyfuse3.RequestContext = None) -> pyfuse3.EntryAttributes:
        """Look up a directory entry by name."""
        name_str = os.fsdecode(name)
        log.debug(f"lookup: parent={parent_inode}, name={name_str}")

        parent = self._node(parent_inode)
        if not isinstance(parent, DirectoryNode):
            raise pyfuse3.FUSEError(errno.ENOTDIR)

        if name_str == ".":
            return await self._remember(parent)
        if name_str == "..":
            return await self._remember(parent.parent or parent)

        child = await self._call(parent.lookup, name_str)
        return await self._remember(child)

    async def forget(self, inode_list) -> None:
        """Nodes stay cached; inode numbers are never reused."""
        pass

    # ── Directories ───────────────────────────────────────────────────

    async def opendir(self, inode: int, ctx: pyfuse3.RequestContext) -> int:
        """Open a directory, return file handle."""
        if not isinstance(self._node(inode), DirectoryNode):
            raise pyfuse3.FUSEError(errno.ENOTDIR)
        return inode  # Use inode as file handle

    async def readdir(self, fh: int, start_id: int, token: pyfuse3.ReaddirToken) -> None:
        """Read directory contents, resolving each child for its attributes."""
        log.debug(f"readdir: fh={fh}, start_id={start_id}")
        directory = self._node(fh)
        entries = await self._call(directory.list_children)

        for idx, entry in enumerate(entries):
            if idx < start_id:
                continue
            try:
                child = await self._call(directory.lookup, entry.name)
                attr = await self._remember(child)
            except pyfuse3.FUSEError as e:
                log.warning(f"Skipping {entry.name} in {directory!r}: errno {e.errno}")
                continue
            if not pyfuse3.readdir_reply(token, os.fsencode(entry.name), attr, idx + 1):
                break

    async def releasedir(self, fh: int) -> None:
        """Release (close) a directory handle. No-op, inodes are the handles."""
        pass

    # ── Files ─────────────────────────────────────────────────────────

    async def open(self, inode: int, flags: int, ctx: pyfuse3.RequestContext) -> pyfuse3.FileInfo:
        """Open a file for reading."""
        node = self._node(inode)
        if node.node_type == NodeType.DIRECTORY or not isinstance(node, FileNode):
            raise pyfuse3.FUSEError(errno.EISDIR)
        if flags & (os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_TRUNC):
            raise pyfuse3.FUSEError(errno.EROFS)

        handle = await self._call(node.open)
        fh = self._next_fh
        self._next_fh += 1
        self._handles[fh] = (node, handle)
        return pyfuse3.FileInfo(fh=fh)

    async def read(self, fh: int, off: int, size: int) -> bytes:
        """Read file contents."""
        try:
            node, handle = self._handles[fh]
        except KeyError:
            raise pyfuse3.FUSEError(errno.EBADF)
        return await self._call(node.read, handle, off, size)

    async def release(self, fh: int) -> None:
        """Release an open file handle."""
        entry = self._handles.pop(fh, None)
        if entry is None:
            log.debug(f"release: unknown fh={fh}")
            return
        node, handle = entry
        await trio.to_thread.run_sync(node.release, handle)

    async def statfs(self, ctx: pyfuse3.RequestContext) -> pyfuse3.StatvfsData:
        """Return filesystem stats. Required by some file managers."""
        s = pyfuse3.StatvfsData()
        s.f_bsize = 4096
        s.f_frsize = 4096
        s.f_blocks = 0
        s.f_bfree = 0
        s.f_bavail = 0
        s.f_files = len(self.fs.inodes)
        s.f_ffree = 0
        s.f_favail = 0
        s.f_namemax = 255
        return s


def mount(fs: ComicFS, mountpoint: str, config: Optional[MountConfig] = None) -> None:
    """Mount fs at mountpoint and serve requests until unmounted or interrupted."""
    config = config or MountConfig()
    operations = ComicFSOperations(fs)

    fuse_options = set(pyfuse3.default_options)
    fuse_options.add(f"fsname={config.fsname}")
    fuse_options.add("subtype=comicfs")
    fuse_options.add("ro")
    if config.allow_other:
        fuse_options.add("allow_other")
    if config.debug:
        fuse_options.add("debug")

    log.info(f"Mounting {fs.base_path} at {mountpoint}")
    try:
        pyfuse3.init(operations, mountpoint, fuse_options)
    except RuntimeError as e:
        log.error(f"Failed to mount {mountpoint}: {e}")
        fs.close()
        raise FilesystemIOError(f"Cannot mount at {mountpoint}: {e}") from e

    try:
        trio.run(pyfuse3.main)
    except KeyboardInterrupt:
        log.info("Interrupted, unmounting...")
    finally:
        pyfuse3.close(unmount=True)
        fs.close()
        log.info("Unmounted")
