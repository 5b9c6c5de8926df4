"""
scrolldump CLI - Main entry point.

Streams a search index to stdout (or a file) so it can be piped into
compression, storage or another cluster.
"""

from __future__ import annotations

from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.traceback import install as install_rich_traceback

from scrolldump import __app_name__, __version__

# Load environment variables from .env (if present) for ${VAR} expansion
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

# stdout carries documents; everything for humans goes to stderr
console = Console()
err_console = Console(stderr=True)

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Stream a search index to stdout using sliced scroll workers",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """scrolldump - Export search indices over the scroll API."""
    pass


# =============================================================================
# Register commands
# =============================================================================

from .commands import export  # noqa: E402

app.command("export")(export.export_index)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
