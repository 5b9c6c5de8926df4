"""
Export command: stream an index to stdout or a file.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from scrolldump.core.config import load_export_config
from scrolldump.core.errors import ConfigError, ExportError
from scrolldump.core.export import ExportOrchestrator, ExportStats
from scrolldump.core.logging import setup_logging

err_console = Console(stderr=True)

# Conventional exit status for SIGINT
EXIT_INTERRUPTED = 130


def export_index(
    source: Optional[str] = typer.Option(
        None,
        "--source",
        "-s",
        help="Cluster URL; the path selects the index (e.g. http://localhost:9200/logs)",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        min=0,
        help="Number of sliced workers [default: CPU count]",
    ),
    size: Optional[int] = typer.Option(
        None,
        "--size",
        "-n",
        min=0,
        help="Documents per page, per worker [default: 100]",
    ),
    query: Optional[str] = typer.Option(
        None,
        "--query",
        "-q",
        help="Query filter as JSON [default: match_all]",
    ),
    scroll: Optional[str] = typer.Option(
        None,
        "--scroll",
        help="Scroll keep-alive per request [default: 1m]",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Transport timeout per request in seconds [default: 30]",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write documents to a file instead of stdout",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file with export settings",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also write JSON logs to this file",
    ),
    summary: bool = typer.Option(
        False,
        "--summary/--no-summary",
        help="Print a summary table to stderr when done",
    ),
) -> None:
    """Export every document of an index as JSON lines.

    Progress is reported on stderr, one line per page.

    Examples:
        scrolldump export --source http://localhost:9200/logs > logs.ndjson
        scrolldump export -s http://localhost:9200/logs -w 4 | gzip > logs.gz
        scrolldump export -s http://es:9200/logs -q '{"term": {"level": "error"}}'
    """
    try:
        config = load_export_config(
            config_file,
            overrides={
                "source": source,
                "workers": workers,
                "size": size,
                "query": query,
                "scroll": scroll,
                "timeout_seconds": timeout,
                "logging": {
                    "level": log_level,
                    "file": str(log_file) if log_file else None,
                },
            },
        )
    except ConfigError as e:
        _print_error(e)
        raise typer.Exit(1)

    setup_logging(
        level=config.logging.level.value,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )

    orchestrator = ExportOrchestrator(config, diagnostics=sys.stderr)

    try:
        # Validate before the output file is opened (and truncated)
        plan = orchestrator.prepare()

        if output is not None:
            with open(output, "w", encoding="utf-8") as stream:
                orchestrator.output = stream
                stats = asyncio.run(orchestrator.run(plan))
        else:
            orchestrator.output = sys.stdout
            stats = asyncio.run(orchestrator.run(plan))
    except KeyboardInterrupt:
        err_console.print("[yellow]Export interrupted[/yellow]")
        raise typer.Exit(EXIT_INTERRUPTED)
    except ExportError as e:
        _print_error(e)
        raise typer.Exit(1)
    except OSError as e:
        err_console.print(f"[red]Cannot write output:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if summary:
        _show_summary(stats)


def _print_error(error: ExportError) -> None:
    """Show an export error on stderr."""
    label = type(error).__name__
    err_console.print(f"[red]{label}:[/red] {escape(str(error))}", highlight=False)

    details = getattr(error, "details", None)
    if details:
        err_console.print(f"[dim]{escape(details)}[/dim]", highlight=False)


def _show_summary(stats: ExportStats) -> None:
    """Show summary table of the export."""
    table = Table(title="Export Summary")

    table.add_column("Index", style="cyan")
    table.add_column("Workers", justify="right")
    table.add_column("Pages", justify="right")
    table.add_column("Documents", justify="right", style="green")
    table.add_column("Duration", justify="right")

    duration = f"{stats.duration_seconds:.1f}s" if stats.duration_seconds else "-"

    table.add_row(
        stats.index,
        str(stats.workers),
        str(stats.pages),
        str(stats.documents),
        duration,
    )

    err_console.print(table)
