"""ComicFS - composition root and entry point for VFS access."""

import logging
import os
from typing import TYPE_CHECKING, Callable, Dict, Optional

from ..exceptions import NotFoundError
from ..imgconv import ConversionRegistry, normalize_extension, split_extension
from .archive import ArchiveDirectoryNode, ArchiveHandleCache, zip_archive_factory
from .base import DirectoryNode
from .inode import InodeTable
from .real import RealDirectoryNode
from .resolver import PathResolver

if TYPE_CHECKING:
    from ..config import ComicFSConfig

log = logging.getLogger(__name__)

ContainerFactory = Callable[[str, 'ComicFS', Optional[DirectoryNode]], ArchiveDirectoryNode]


class ComicFS:
    """Virtual filesystem over a directory of comics.

    Owns the process-wide state every node refers to: the inode table, the
    image conversion registry, the open archive handles and the mapping from
    container extension to archive factory.

    Usage:
        >>> fs = ComicFS.from_config(load_config(), "/srv/comics")
        >>> root = fs.root()
        >>> issue = fs.resolver.resolve("/series/issue-1.cbz")
        >>> issue.list_children()
        [DirEntry(name='page1.webp', node_type=<NodeType.FILE: 'file'>), ...]
        >>> fs.close()
    """

    def __init__(self, base_path: str, converters: Optional[ConversionRegistry] = None):
        """Initialize the filesystem.

        Args:
            base_path: Real directory to mirror
            converters: Image conversion registry (Pillow defaults if None)
        """
        self.base_path = os.path.abspath(base_path)
        self.inodes = InodeTable()
        self.converters = converters if converters is not None else ConversionRegistry.with_defaults()
        self.archives = ArchiveHandleCache()
        self._container_types: Dict[str, ContainerFactory] = {}
        self._root: Optional[RealDirectoryNode] = None
        self._resolver: Optional[PathResolver] = None

        # The mirrored directory is always inode 0
        self.inodes.inode_for(self.base_path)

    @classmethod
    def from_config(cls, config: 'ComicFSConfig', base_path: Optional[str] = None) -> 'ComicFS':
        """Build a ComicFS from configuration.

        Args:
            config: Loaded configuration
            base_path: Directory to mirror (defaults to config.base_dir)

        Raises:
            ValueError: If no base path is given or configured
        """
        base_path = base_path or config.base_dir
        if not base_path:
            raise ValueError("No base directory configured")

        converters = ConversionRegistry.with_defaults(
            decode=config.conversion.decode,
            encode=config.conversion.encode,
            jpeg_quality=config.conversion.jpeg_quality,
        )
        fs = cls(base_path, converters=converters)
        for ext in config.containers.extensions:
            fs.register_container_type(ext, zip_archive_factory)
        return fs

    def register_container_type(self, extension: str, factory: ContainerFactory) -> None:
        """Treat files with this extension as archive roots.

        Raises:
            ValueError: If the extension has more than one segment (".cbr.zip"),
                since only the last extension of a name is matched
        """
        extension = normalize_extension(extension)
        if extension.count(".") != 1 or extension == ".":
            raise ValueError(f"Container extension must be a single segment: {extension!r}")
        self._container_types[extension] = factory
        log.debug(f"Registered container type {extension}")

    def is_container(self, path: str) -> bool:
        _, ext = split_extension(os.path.basename(path))
        return ext.lower() in self._container_types

    def open_container(self, path: str, parent: Optional[DirectoryNode] = None) -> ArchiveDirectoryNode:
        """Create the archive root node for a container file.

        Raises:
            NotFoundError: If the extension is not registered or the file is missing
        """
        _, ext = split_extension(os.path.basename(path))
        factory = self._container_types.get(ext.lower())
        if factory is None:
            raise NotFoundError(f"Not a registered container type: {path}")
        return factory(path, self, parent)

    def root(self) -> RealDirectoryNode:
        """The root node, anchored at the base path."""
        if self._root is None:
            self._root = RealDirectoryNode(self.base_path, self)
        return self._root

    @property
    def resolver(self) -> PathResolver:
        if self._resolver is None:
            self._resolver = PathResolver(self.root())
        return self._resolver

    def close(self) -> None:
        """Close every archive opened through this filesystem."""
        self.archives.close_all()

    def __enter__(self) -> 'ComicFS':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ComicFS('{self.base_path}')"
