"""
Root Typer application for the nameindex CLI.

    nameindex fetch-to-json [-d] [--pages N]          crawl into JSON artifacts
    nameindex index [-d] [--pages N] [--from-files]   build and promote a generation
    nameindex rollback                                restore prior -> current
    nameindex status [--json]                         document counts per generation
"""

from __future__ import annotations

import asyncio
import json
import signal
from collections.abc import Awaitable, Callable
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from nameindex import __version__
from nameindex.core.documents import DocumentStore, open_document_store
from nameindex.core.errors import ConfigError, NameIndexError
from nameindex.core.logging import configure_logging
from nameindex.core.settings import IndexerSettings, get_settings
from nameindex.index.generations import GenerationManager
from nameindex.pipeline import IndexingPipeline
from nameindex.scheduling.service import CycleScheduler

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="nameindex",
    help="nameindex: crawl the name directory and build the search index.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"nameindex {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Crawl the name directory and rotate search index generations."""


# ── Helpers ──────────────────────────────────────────────────────────────


def _bootstrap() -> IndexerSettings:
    try:
        settings = get_settings()
    except ValidationError as exc:
        fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        error = ConfigError("Invalid settings", cause=exc).with_context(fields=fields)
        raise _fail(error) from exc
    except NameIndexError as exc:
        raise _fail(exc) from exc
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")
    return settings


def _fail(exc: NameIndexError) -> typer.Exit:
    err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
    if exc.context:
        err_console.print(f"  context: {exc.context}")
    return typer.Exit(code=1)


async def _serve(scheduler: CycleScheduler) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await scheduler.serve(stop)


def _run_cycle(cycle: Callable[[], Awaitable[Any]], *, daemon: bool, interval: float, name: str) -> Any:
    scheduler = CycleScheduler(cycle, interval_seconds=interval, name=name)
    if daemon:
        asyncio.run(_serve(scheduler))
        return None
    try:
        return asyncio.run(scheduler.run_once())
    except NameIndexError as exc:
        raise _fail(exc) from exc


def _open_store(settings: IndexerSettings) -> DocumentStore:
    try:
        return open_document_store(settings.store_url)
    except NameIndexError as exc:
        raise _fail(exc) from exc


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("fetch-to-json")
def fetch_to_json(
    daemon: bool = typer.Option(False, "--daemon", "-d", help="Keep running and re-crawl every interval"),
    pages: int | None = typer.Option(None, "--pages", help="Listing pages to fetch (<= 0: all)"),  # noqa: UP007
) -> None:
    """Crawl all names and write the names/profiles JSON artifacts."""
    settings = _bootstrap()
    pipeline = IndexingPipeline(settings)

    result = _run_cycle(
        lambda: pipeline.fetch_to_files(pages),
        daemon=daemon,
        interval=settings.index_interval_seconds,
        name="fetch-to-json",
    )
    if result is not None:
        console.print(
            f"[bold green]Wrote[/bold green] {len(result.records)} profiles, {len(result.names)} names "
            f"({result.error_count} lookups failed)"
        )


@app.command("index")
def index(
    daemon: bool = typer.Option(False, "--daemon", "-d", help="Keep running and re-index every interval"),
    pages: int | None = typer.Option(None, "--pages", help="Listing pages to fetch (<= 0: all)"),  # noqa: UP007
    from_files: bool = typer.Option(False, "--from-files", help="Build from the JSON artifacts instead of crawling"),
) -> None:
    """Build a fresh index generation and promote it to current."""
    settings = _bootstrap()
    store = _open_store(settings)
    try:
        pipeline = IndexingPipeline(settings, store=store)
        promotion = _run_cycle(
            lambda: pipeline.index(pages, from_files=from_files),
            daemon=daemon,
            interval=settings.index_interval_seconds,
            name="index",
        )
    finally:
        store.close()

    if promotion is not None:
        summary = promotion.build_result
        console.print(
            f"[bold green]Indexed[/bold green] {summary.index.entries_written} profiles "
            f"({len(summary.index.skipped)} skipped, {summary.errored_lookups} lookups failed) "
            f"in {promotion.duration_seconds:.1f}s"
        )


@app.command("rollback")
def rollback() -> None:
    """Replace the current generation with the prior one."""
    settings = _bootstrap()
    store = _open_store(settings)
    try:
        GenerationManager(store).rollback()
    except NameIndexError as exc:
        raise _fail(exc) from exc
    finally:
        store.close()
    console.print("[yellow]Rolled back:[/yellow] prior generation copied to current")


@app.command("status")
def status(as_json: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show document counts for each generation."""
    settings = _bootstrap()
    store = _open_store(settings)
    try:
        counts = GenerationManager(store).status()
    except NameIndexError as exc:
        raise _fail(exc) from exc
    finally:
        store.close()

    if as_json:
        typer.echo(json.dumps(counts, indent=2))
        return

    table = Table(title="Index generations")
    table.add_column("Generation", style="bold")
    table.add_column("Database")
    table.add_column("Collection")
    table.add_column("Documents", justify="right")
    for generation, databases in counts.items():
        for database, collections in databases.items():
            if not collections:
                table.add_row(generation, database, "[dim]-[/dim]", "0")
            for collection, count in collections.items():
                table.add_row(generation, database, collection, str(count))
    console.print(table)
