"""
Ingestion CLI Commands
======================

CLI commands for running and inspecting the price ingestion pipeline.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from price_agent.ingestion.adapters import get_adapter_info, list_adapters
from price_agent.ingestion.jobs import enqueue_sweep, get_job_status
from price_agent.ingestion.orchestrator import IngestionOrchestrator, RunStats, summarize
from price_agent.ingestion.registry import get_default_registry
from price_agent.ingestion.scheduler import SweepScheduler

console = Console()
ingest_app = typer.Typer(help="Ingestion pipeline commands")
sources_app = typer.Typer(help="Source management commands")
jobs_app = typer.Typer(help="Job management commands")

ingest_app.add_typer(sources_app, name="sources")
ingest_app.add_typer(jobs_app, name="jobs")


async def _run_stores(store_slugs: list[str] | None, force: bool) -> list[RunStats]:
    orchestrator = IngestionOrchestrator()
    try:
        if store_slugs is None:
            return await orchestrator.run_sweep()
        return [await orchestrator.run_store(slug, force=force) for slug in store_slugs]
    finally:
        await orchestrator.close()


@ingest_app.command("run")
def run_ingestion(
    stores: Optional[list[str]] = typer.Option(
        None, "--store", "-s", help="Store slug to scrape (repeatable, default: all enabled)"
    ),
) -> None:
    """
    Run the pipeline inline for one or more stores.

    Examples:
        price-agent ingest run
        price-agent ingest run -s lenta -s magnit
    """
    registry = get_default_registry()
    force = False

    for slug in stores or []:
        source_config = registry.get_source(slug)
        if source_config is None:
            rprint(f"[red]Error:[/red] Store '{slug}' not found")
            rprint("\nAvailable stores:")
            for s in registry.list_sources():
                status = "[green]enabled[/green]" if s.enabled else "[yellow]disabled[/yellow]"
                rprint(f"  • {s.slug} ({status})")
            raise typer.Exit(1)

        if not source_config.enabled:
            rprint(f"[yellow]Warning:[/yellow] Store '{slug}' is disabled")
            if not typer.confirm("Run anyway?"):
                raise typer.Exit(0)
            force = True

    rprint("\n[bold]Starting price sweep[/bold]")
    with console.status("[bold blue]Scraping...[/bold blue]"):
        stats = asyncio.run(_run_stores(stores or None, force))

    _display_sweep(summarize(stats))

    if any(not s.succeeded for s in stats):
        raise typer.Exit(1)


@ingest_app.command("enqueue")
def enqueue(
    stores: Optional[list[str]] = typer.Option(
        None, "--store", "-s", help="Store slug to scrape (repeatable, default: all enabled)"
    ),
) -> None:
    """
    Enqueue a sweep job for the arq worker.

    Examples:
        price-agent ingest enqueue
        price-agent ingest enqueue -s perekrestok
    """
    rprint("[dim]Enqueueing sweep for async processing...[/dim]")

    try:
        job_id = asyncio.run(enqueue_sweep(stores or None))
    except Exception as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)

    rprint("\n[green]Job enqueued successfully![/green]")
    rprint(f"Job ID: [bold]{job_id}[/bold]")
    rprint("\nCheck status with:")
    rprint(f"  price-agent ingest jobs status {job_id}")


@ingest_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the arq worker.

    The worker processes queued sweeps and runs the cron sweep.

    Examples:
        price-agent ingest worker
        price-agent ingest worker --burst
    """
    from arq import run_worker

    from price_agent.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting ingestion worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)


@ingest_app.command("schedule")
def run_schedule(
    interval_hours: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Hours between sweeps (default from sources.yaml)"
    ),
    now: bool = typer.Option(False, "--now", help="Run one sweep immediately on start"),
) -> None:
    """
    Run the in-process scheduler without Redis.

    Examples:
        price-agent ingest schedule --now
        price-agent ingest schedule -i 6
    """
    hours = interval_hours or get_default_registry().schedule.interval_hours
    scheduler = SweepScheduler(interval=timedelta(hours=hours))

    async def _serve() -> None:
        scheduler.start()
        try:
            if now:
                _display_sweep(summarize(await scheduler.run_now()))
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()

    rprint(f"[bold]Sweeping every {hours:g}h[/bold]")
    rprint("Press Ctrl+C to stop\n")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        rprint("\n[dim]Scheduler stopped[/dim]")


@ingest_app.command("prices")
def show_prices(
    product_ids: list[int] = typer.Argument(..., help="Canonical product ids"),
    max_age_hours: Optional[float] = typer.Option(
        None, "--max-age", help="Hide rows older than this (default from sources.yaml, 0 disables)"
    ),
) -> None:
    """
    Show current prices for canonical products.

    Examples:
        price-agent ingest prices 1 2 3
        price-agent ingest prices 1 --max-age 0
    """
    from price_agent.db.engine import get_session
    from price_agent.db.repositories import CatalogRepository, PriceRepository

    if max_age_hours is None:
        max_age = get_default_registry().persistence.max_age
    else:
        max_age = timedelta(hours=max_age_hours) if max_age_hours > 0 else None

    with get_session() as session:
        stores = {s.id: s.name for s in CatalogRepository(session).list_stores()}
        prices = PriceRepository(session).get_fresh_prices(product_ids, max_age=max_age)

    if not prices:
        rprint("[yellow]No fresh prices found[/yellow]")
        return

    table = Table(title="Current Prices")
    table.add_column("Product", justify="right")
    table.add_column("Store", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Per unit", justify="right")
    table.add_column("Store name")
    table.add_column("Scraped at")

    for p in prices:
        table.add_row(
            str(p.product_id),
            stores.get(p.store_id, str(p.store_id)),
            f"{p.price:.2f}",
            f"{p.price_per_unit:.2f}" if p.price_per_unit is not None else "-",
            p.store_product_name,
            p.scraped_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


# Sources subcommands


@sources_app.command("list")
def list_sources(
    all_sources: bool = typer.Option(False, "--all", "-a", help="Show all sources including disabled"),
) -> None:
    """
    List configured store sources.

    Examples:
        price-agent ingest sources list
        price-agent ingest sources list --all
    """
    registry = get_default_registry()
    sources = registry.list_sources() if all_sources else registry.list_enabled_sources()

    if not sources:
        rprint("[yellow]No sources configured[/yellow]")
        rprint("\nAdd sources to config/sources.yaml")
        return

    table = Table(title="Store Sources")
    table.add_column("Slug", style="bold")
    table.add_column("Name")
    table.add_column("Base URL")
    table.add_column("Adapter")
    table.add_column("Status")
    table.add_column("Delay")

    for source in sources:
        status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"
        delay = f"{source.delay.min_seconds:g}-{source.delay.max_seconds:g}s"
        table.add_row(source.slug, source.name, source.base_url, source.adapter, status, delay)

    console.print(table)


@sources_app.command("show")
def show_source(
    slug: str = typer.Argument(..., help="Store slug"),
) -> None:
    """
    Show detailed information about a source.

    Examples:
        price-agent ingest sources show lenta
    """
    registry = get_default_registry()
    source = registry.get_source(slug)

    if source is None:
        rprint(f"[red]Error:[/red] Store '{slug}' not found")
        raise typer.Exit(1)

    status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"

    rprint(f"\n[bold]Source: {source.name}[/bold]")
    rprint(f"  Slug: {source.slug}")
    rprint(f"  Status: {status}")
    rprint(f"  Base URL: {source.base_url}")
    rprint(f"  Adapter: {source.adapter}")
    if source.description:
        rprint(f"  Description: {source.description}")

    rprint("\n[bold]Request Pacing:[/bold]")
    rprint(f"  Delay: {source.delay.min_seconds:g}-{source.delay.max_seconds:g}s")

    if source.custom_config:
        rprint("\n[bold]Adapter Settings:[/bold]")
        for key, value in source.custom_config.items():
            rprint(f"  {key}: {value}")

    adapter_info = get_adapter_info(source.adapter)
    if adapter_info:
        rprint("\n[bold]Adapter Info:[/bold]")
        rprint(f"  Name: {adapter_info['name']}")
        rprint(f"  Version: {adapter_info['version']}")
        rprint(f"  Class: {adapter_info['class']}")


@sources_app.command("adapters")
def list_source_adapters() -> None:
    """List available adapters."""
    adapters = list_adapters()

    if not adapters:
        rprint("[yellow]No adapters registered[/yellow]")
        return

    table = Table(title="Available Adapters")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Class")

    for adapter_name in adapters:
        info = get_adapter_info(adapter_name)
        if info:
            table.add_row(info["name"], info["version"], info["class"])

    console.print(table)


# Jobs subcommands


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of a queued sweep.

    Examples:
        price-agent ingest jobs status abc123
    """
    try:
        result = asyncio.run(get_job_status(job_id))
    except Exception as e:
        rprint(f"[red]Error:[/red] Failed to get job status: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    if result is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job_id}[/bold]")
    rprint(f"  Status: {result.get('status', 'unknown')}")

    if result.get("result"):
        _display_sweep(result["result"])


def _display_sweep(summary: dict) -> None:
    """Display sweep totals and per-store stats in a table."""
    table = Table(title="Sweep Results")
    table.add_column("Store", style="bold")
    table.add_column("State")
    table.add_column("Scraped", justify="right")
    table.add_column("Dropped", justify="right")
    table.add_column("Matched", justify="right")
    table.add_column("Unmatched", justify="right")
    table.add_column("Saved", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Time", justify="right")

    for store in summary.get("stores", []):
        state = store.get("state", "unknown")
        color = {"done": "green", "errored": "red"}.get(state, "white")
        table.add_row(
            store["store"],
            f"[{color}]{state}[/{color}]",
            str(store.get("total_scraped", 0)),
            str(store.get("dropped", 0)),
            str(store.get("matched", 0)),
            str(store.get("unmatched", 0)),
            str(store.get("inserted", 0)),
            str(store.get("errors", 0)),
            f"{store.get('duration_ms', 0) / 1000:.1f}s",
        )

    console.print(table)
    rprint(
        f"\n[bold]Totals:[/bold] scraped={summary.get('total_scraped', 0)} "
        f"matched={summary.get('total_matched', 0)} saved={summary.get('total_inserted', 0)} "
        f"errors={summary.get('total_errors', 0)}"
    )

    for store in summary.get("stores", []):
        errors = store.get("error_messages", [])
        if errors:
            rprint(f"\n[bold red]{store['store']} errors ({len(errors)}):[/bold red]")
            for error in errors[:10]:  # Show first 10
                rprint(f"  • {error}")
            if len(errors) > 10:
                rprint(f"  ... and {len(errors) - 10} more")
