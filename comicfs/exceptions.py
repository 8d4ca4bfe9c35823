"""Error kinds raised by the comicfs core.

Every error carries the errno the FUSE binding reports back to the kernel.
"""

import errno


class ComicFSError(Exception):
    """Base class for all comicfs errors."""
    errno = errno.EIO


class NotFoundError(ComicFSError):
    """No such virtual path or archive entry."""
    errno = errno.ENOENT


class NotADirectoryError(ComicFSError):
    """Attempted to descend into a file node."""
    errno = errno.ENOTDIR


class FilesystemIOError(ComicFSError):
    """Accessing the real filesystem failed."""
    pass


class ArchiveCorruptError(ComicFSError):
    """A container could not be parsed or one of its entries decompressed."""
    pass


class ConversionError(ComicFSError):
    """Image conversion failed."""
    pass


class DecodeError(ConversionError):
    """Input bytes are not valid for the claimed source format."""
    pass


class EncodeError(ConversionError):
    """Encoding to the destination format failed."""
    pass


class UnsupportedConversionError(ConversionError):
    """No decoder or encoder registered for the requested extension."""
    pass
