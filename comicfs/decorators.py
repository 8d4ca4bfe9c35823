"""Decorators for comicfs CLI commands."""

import functools
import logging
from typing import Any, Callable

import typer
from rich.console import Console

from .exceptions import (
    ArchiveCorruptError,
    ComicFSError,
    ConversionError,
    NotADirectoryError,
    NotFoundError,
)

logger = logging.getLogger(__name__)
console = Console(stderr=True)


def handle_fs_errors(func: Callable) -> Callable:
    """
    Decorator to handle common filesystem errors in CLI commands.

    Maps comicfs errors to a readable message and exit code 1, and
    Ctrl-C to exit code 130.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except NotFoundError as e:
            console.print(f"[bold red]Error:[/bold red] Not found: {e}")
            raise typer.Exit(code=1)
        except NotADirectoryError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
        except ArchiveCorruptError as e:
            console.print(f"[bold red]Error:[/bold red] Corrupt archive: {e}")
            raise typer.Exit(code=1)
        except ConversionError as e:
            console.print(f"[bold red]Error:[/bold red] Image conversion failed: {e}")
            raise typer.Exit(code=1)
        except ComicFSError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] Invalid input: {e}")
            raise typer.Exit(code=1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            raise typer.Exit(code=130)

    return wrapper
