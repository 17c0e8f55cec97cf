"""Command-line interface for the Clarity enrichment pipeline."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clarity.config import Settings, get_settings
from clarity.matching import ReferenceMatcher
from clarity.models import Batch, BatchStatus
from clarity.pipeline import BatchWatchdog, build_supervisor, wait_for_batch
from clarity.storage import BatchNotFoundError, SqlRecordStore
from clarity.storage.database import create_db_engine, create_session_factory, init_db
from clarity.storage.reference import (
    load_reference_suppliers,
    read_supplier_csv,
    reload_reference_suppliers,
)


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """Route structlog through stdlib logging at ``level``."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


app = typer.Typer(
    name="clarity",
    help="Clarity Engine - enrich payee batches through the matching pipeline",
    add_completion=False,
)
console = Console()


def _settings(database_url: Optional[str], verbose: bool) -> Settings:
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    configure_logging("DEBUG" if verbose else settings.log_level, json=settings.log_json)
    return settings


def _open_store(settings: Settings):
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)
    return SqlRecordStore(session_factory), session_factory


DatabaseOption = typer.Option(None, "--database-url", "-d", help="SQLAlchemy URL (overrides CLARITY_DATABASE_URL)")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


@app.command()
def run(
    batch_id: int = typer.Argument(..., help="Id of the uploaded batch to enrich"),
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Run the enrichment pipeline on a batch and wait for it to finish."""
    settings = _settings(database_url, verbose)
    store, session_factory = _open_store(settings)

    suppliers = load_reference_suppliers(session_factory)
    if not suppliers:
        console.print("[yellow]Reference supplier cache is empty; run 'reload-suppliers' first.[/yellow]")
    matcher = ReferenceMatcher(suppliers, threshold=settings.match_confidence_threshold)

    async def _run() -> Batch:
        supervisor = build_supervisor(settings, store, matcher)
        async with supervisor:
            await supervisor.submit(batch_id)
            return await wait_for_batch(store, batch_id, poll_interval=0.5)

    console.print(Panel.fit(f"[bold blue]Enriching batch {batch_id}[/bold blue]", border_style="blue"))
    try:
        batch = asyncio.run(_run())
    except BatchNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    _display_batch(batch)
    if batch.status != BatchStatus.COMPLETED:
        sys.exit(1)


@app.command()
def status(
    batch_id: int = typer.Argument(..., help="Batch id"),
    database_url: Optional[str] = DatabaseOption,
) -> None:
    """Show stage status and progress for a batch."""
    settings = _settings(database_url, verbose=False)
    store, _ = _open_store(settings)
    try:
        batch = asyncio.run(store.get_batch(batch_id))
    except BatchNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    _display_batch(batch)


@app.command()
def watch(
    database_url: Optional[str] = DatabaseOption,
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between scans"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Idle seconds before a batch is stalled"),
    verbose: bool = VerboseOption,
) -> None:
    """Run the stall watchdog until interrupted."""
    settings = _settings(database_url, verbose)
    store, _ = _open_store(settings)
    watchdog = BatchWatchdog(
        store,
        stall_threshold_seconds=threshold or settings.stall_threshold_seconds,
        interval_seconds=interval or settings.watchdog_interval_seconds,
    )
    console.print("[dim]Watching for stalled batches (Ctrl+C to stop)...[/dim]")
    try:
        asyncio.run(watchdog.run())
    except KeyboardInterrupt:
        console.print("\n[dim]Watchdog stopped.[/dim]")


@app.command("reload-suppliers")
def reload_suppliers(
    csv_path: Path = typer.Argument(
        ...,
        help="CSV export with id,name[,payment_method,city,state] columns",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    database_url: Optional[str] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Replace the cached reference supplier table from a CSV export."""
    settings = _settings(database_url, verbose)
    _, session_factory = _open_store(settings)

    result = reload_reference_suppliers(session_factory, read_supplier_csv(csv_path))
    if result.loaded == 0:
        console.print("[yellow]No suppliers loaded; check the export file.[/yellow]")
        sys.exit(1)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Count", justify="right")
    table.add_row("Previous count", str(result.previous_count))
    table.add_row("New count", str(result.loaded))
    table.add_row("Change", f"{result.change:+d}")
    table.add_row("Skipped rows", str(result.skipped))
    console.print("[green]Reference suppliers reloaded.[/green]")
    console.print(table)


@app.command()
def info() -> None:
    """Display system information and configuration."""
    from clarity import __version__

    settings = get_settings()

    console.print(Panel.fit("[bold blue]Clarity Engine[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    defaults = settings.default_stage_options
    table.add_row("Version", __version__)
    table.add_row("Database", settings.database_url)
    table.add_row("Chunk size", str(defaults.chunk_size))
    table.add_row("Concurrency limit", str(defaults.concurrency_limit))
    table.add_row("Inter-chunk delay", f"{defaults.inter_chunk_delay_ms} ms")
    table.add_row("Stall threshold", f"{settings.stall_threshold_seconds:.0f}s")
    table.add_row("Watchdog interval", f"{settings.watchdog_interval_seconds:.0f}s")
    table.add_row("Continue on stage error", str(settings.continue_on_stage_error))
    table.add_row("Match threshold", f"{settings.match_confidence_threshold:.2f}")
    for name, options in settings.stage_options.items():
        table.add_row(
            f"  {name}",
            f"chunk {options.chunk_size}, concurrency {options.concurrency_limit}, "
            f"delay {options.inter_chunk_delay_ms} ms",
        )

    console.print(table)


def _display_batch(batch: Batch) -> None:
    """Display batch status with one row per stage."""
    console.print(f"\n[bold]Batch {batch.id}[/bold] {batch.filename or ''}")
    console.print(f"[dim]Status:[/dim] {batch.status.value}")
    if batch.progress_message:
        console.print(f"[dim]Message:[/dim] {batch.progress_message}")

    table = Table()
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Completed at", style="dim")

    for stage in ("classification", "supplier_match", "external_lookup"):
        completed_at = batch.field(f"{stage}_completed_at")
        table.add_row(
            stage,
            batch.stage_status(f"{stage}_status").value,
            f"{batch.field(f'{stage}_progress', 0)}%",
            completed_at.isoformat(timespec="seconds") if completed_at else "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
