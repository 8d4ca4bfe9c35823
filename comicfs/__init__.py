"""
comicfs - A read-only FUSE filesystem that shows comic archives as directories.

Main API:
    from comicfs import ComicFS
    from comicfs.config import load_config

    # Mirror a directory, treating .cbz/.zip files as directories
    fs = ComicFS.from_config(load_config(), "/srv/comics")

    # Walk into an archive and convert a page on the fly
    page = fs.resolver.resolve("/series/issue-1.cbz/page1.webp.png")
    handle = page.open()
    png_bytes = page.read(handle, 0, page.attributes().size)
    page.release(handle)

    # Always close when done
    fs.close()
"""

from .vfs import ComicFS

__version__ = "0.1.0"
__all__ = ["ComicFS"]
