import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ComicFSConfig, load_config
from .decorators import handle_fs_errors
from .vfs import ComicFS, DirectoryNode, FileNode, NodeType

# Initialize Rich Console
console = Console()

# Configure logging to use Rich's RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, console=Console(stderr=True))]
)
logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
CHUNK_SIZE = 64 * 1024

app = typer.Typer(help="Browse comic archives (.cbz, .zip) as directories")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Display all logs at or above this level (debug, info, warning, error)"
    ),
):
    """
    comicfs - mirror a directory and show comic archives as directories.

    Pages can be converted on the fly by asking for a double extension,
    e.g. page1.webp.png serves page1.webp re-encoded as PNG.
    """
    level = log_level or load_config().logging.level
    if verbose:
        level = "debug"
    if level.lower() not in LOG_LEVELS:
        raise typer.BadParameter(f"Unknown log level: {level}", param_hint="--log-level")
    logging.getLogger().setLevel(level.upper())


def _build_config(extensions: Optional[List[str]]) -> ComicFSConfig:
    config = load_config()
    if extensions:
        config.containers.extensions = list(extensions)
    return config


@contextmanager
def _open_fs(base_dir: Path, extensions: Optional[List[str]] = None):
    if not base_dir.is_dir():
        raise ValueError(f"Base directory does not exist: {base_dir}")
    fs = ComicFS.from_config(_build_config(extensions), str(base_dir))
    try:
        yield fs
    finally:
        fs.close()


@app.command()
@handle_fs_errors
def mount(
    base_dir: Path = typer.Argument(..., help="Directory of comics to mirror"),
    mountpoint: Path = typer.Argument(..., help="Directory to mount the filesystem on"),
    ext: Optional[List[str]] = typer.Option(None, "--ext", "-e", help="Container extension (repeatable, default: .zip .cbz)"),
    debug: bool = typer.Option(False, "--debug", help="Enable FUSE debug output"),
    allow_other: bool = typer.Option(False, "--allow-other", help="Allow other users to access the mount"),
    cpuprofile: Optional[Path] = typer.Option(None, "--cpuprofile", help="Write a cProfile CPU profile to this file"),
    memprofile: Optional[Path] = typer.Option(None, "--memprofile", help="Write a tracemalloc memory snapshot to this file"),
):
    """
    Mount BASE_DIR at MOUNTPOINT.

    Examples:
        comicfs mount ~/comics /mnt/comics
        comicfs mount ~/comics /mnt/comics --ext .cbz --allow-other
    """
    try:
        from .mount import mount as fuse_mount
    except ImportError as e:
        console.print(f"[bold red]Error:[/bold red] FUSE support not installed: {e}")
        console.print("[yellow]Install with: pip install comicfs[fuse][/yellow]")
        raise typer.Exit(code=1)

    if not base_dir.is_dir():
        logger.error(f"Comic directory does not exist: {base_dir}")
        raise typer.Exit(code=1)

    config = _build_config(ext)
    config.mount.debug = config.mount.debug or debug
    config.mount.allow_other = config.mount.allow_other or allow_other
    fs = ComicFS.from_config(config, str(base_dir))

    profiler = None
    if cpuprofile is not None:
        import cProfile
        profiler = cProfile.Profile()
        profiler.enable()
    if memprofile is not None:
        import tracemalloc
        tracemalloc.start()

    try:
        fuse_mount(fs, str(mountpoint), config.mount)
    finally:
        if profiler is not None:
            profiler.disable()
            profiler.dump_stats(str(cpuprofile))
            logger.info(f"CPU profile written to {cpuprofile}")
        if memprofile is not None:
            tracemalloc.take_snapshot().dump(str(memprofile))
            tracemalloc.stop()
            logger.info(f"Memory snapshot written to {memprofile}")


@app.command(name="ls")
@handle_fs_errors
def ls(
    base_dir: Path = typer.Argument(..., help="Directory of comics"),
    path: str = typer.Argument("/", help="Virtual path to list (e.g., /series/issue-1.cbz)"),
    ext: Optional[List[str]] = typer.Option(None, "--ext", "-e", help="Container extension (repeatable)"),
):
    """List a virtual directory.

    Examples:
        comicfs ls ~/comics
        comicfs ls ~/comics /series/issue-1.cbz
    """
    with _open_fs(base_dir, ext) as fs:
        directory = fs.resolver.resolve_directory(path)
        table = Table(title=directory.get_path())
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        for entry in directory.list_children():
            if entry.node_type == NodeType.DIRECTORY:
                table.add_row(entry.name + "/", "[bold blue]dir[/bold blue]")
            else:
                table.add_row(entry.name, "file")
        console.print(table)


@app.command(name="stat")
@handle_fs_errors
def stat_command(
    base_dir: Path = typer.Argument(..., help="Directory of comics"),
    path: str = typer.Argument(..., help="Virtual path (e.g., /issue-1.cbz/page1.webp.png)"),
    ext: Optional[List[str]] = typer.Option(None, "--ext", "-e", help="Container extension (repeatable)"),
):
    """Show the attributes of a virtual path."""
    import stat as stat_module
    from datetime import datetime

    with _open_fs(base_dir, ext) as fs:
        node = fs.resolver.resolve(path)
        attrs = node.attributes()

        table = Table(title=node.get_path(), show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Type", "directory" if isinstance(node, DirectoryNode) else "file")
        table.add_row("Node", node.__class__.__name__)
        table.add_row("Inode", str(attrs.inode))
        table.add_row("Size", str(attrs.size))
        table.add_row("Mode", stat_module.filemode(attrs.mode))
        table.add_row("Modified", datetime.fromtimestamp(attrs.modified_time).isoformat(sep=" "))
        table.add_row("Cache validity", f"{attrs.cache_validity:.0f}s")
        console.print(table)


@app.command(name="cat")
@handle_fs_errors
def cat(
    base_dir: Path = typer.Argument(..., help="Directory of comics"),
    path: str = typer.Argument(..., help="Virtual file path (e.g., /issue-1.cbz/page1.webp.png)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout"),
    ext: Optional[List[str]] = typer.Option(None, "--ext", "-e", help="Container extension (repeatable)"),
):
    """Write the (possibly converted) content of a virtual file.

    Examples:
        comicfs cat ~/comics /issue-1.cbz/page1.webp.png -o page1.png
    """
    with _open_fs(base_dir, ext) as fs:
        node = fs.resolver.resolve(path)
        if not isinstance(node, FileNode):
            raise ValueError(f"Is a directory: {path}")

        out = open(output, "wb") if output is not None else sys.stdout.buffer
        handle = node.open()
        try:
            offset = 0
            while True:
                chunk = node.read(handle, offset, CHUNK_SIZE)
                if not chunk:
                    break
                out.write(chunk)
                offset += len(chunk)
            out.flush()
        finally:
            node.release(handle)
            if output is not None:
                out.close()

        if output is not None:
            console.print(f"[green]Wrote {offset} bytes to {output}[/green]")


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    init: bool = typer.Option(False, "--init", help="Initialize config file with defaults"),
    set_base_dir: Optional[str] = typer.Option(None, "--base-dir", help="Set default comic directory"),
    set_ext: Optional[List[str]] = typer.Option(None, "--ext", help="Set container extensions (repeatable)"),
    set_decode: Optional[List[str]] = typer.Option(None, "--decode", help="Set decodable image extensions (repeatable)"),
    set_encode: Optional[List[str]] = typer.Option(None, "--encode", help="Set encodable image extensions (repeatable)"),
    set_log_level: Optional[str] = typer.Option(None, "--set-log-level", help="Set default log level"),
    set_allow_other: Optional[bool] = typer.Option(None, "--allow-other/--no-allow-other", help="Allow other users by default"),
):
    """
    View or edit comicfs configuration.

    Configuration is stored at ~/.config/comicfs/config.json (or ~/.comicfs/config.json).

    Examples:
        comicfs config --show
        comicfs config --init
        comicfs config --ext .cbz --ext .zip --encode .png
    """
    from .config import ensure_config_exists, get_config_path, update_config

    if init:
        config_path = ensure_config_exists()
        console.print(f"[green]Configuration initialized at {config_path}[/green]")
        return

    has_settings = any([
        set_base_dir, set_ext, set_decode, set_encode, set_log_level,
        set_allow_other is not None,
    ])

    if has_settings:
        if set_log_level is not None and set_log_level.lower() not in LOG_LEVELS:
            raise typer.BadParameter(f"Unknown log level: {set_log_level}", param_hint="--set-log-level")
        update_config(
            base_dir=set_base_dir,
            container_extensions=set_ext or None,
            decode_extensions=set_decode or None,
            encode_extensions=set_encode or None,
            mount_allow_other=set_allow_other,
            log_level=set_log_level,
        )
        console.print(f"[green]Configuration updated at {get_config_path()}[/green]")
        if not show:
            return

    cfg = load_config()
    console.print("\n[bold]comicfs Configuration[/bold]")
    console.print(f"[dim]Location: {get_config_path()}[/dim]\n")
    console.print(f"  Base Dir:     {cfg.base_dir or '[dim]not set[/dim]'}")
    console.print(f"  Containers:   {' '.join(cfg.containers.extensions)}")
    console.print(f"  Decode:       {' '.join(cfg.conversion.decode)}")
    console.print(f"  Encode:       {' '.join(cfg.conversion.encode)}")
    console.print(f"  JPEG Quality: {cfg.conversion.jpeg_quality}")
    console.print(f"  FS Name:      {cfg.mount.fsname}")
    console.print(f"  Allow Other:  {cfg.mount.allow_other}")
    console.print(f"  Log Level:    {cfg.logging.level}")


if __name__ == "__main__":
    app()
