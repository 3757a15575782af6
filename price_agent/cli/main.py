"""Price Agent CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from price_agent.cli.ingest import ingest_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="price-agent",
    help="Price Agent - grocery price ingestion across Russian retail chains",
    add_completion=False,
)
app.add_typer(ingest_app, name="ingest")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def run(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the scrape trigger web server."""
    import uvicorn

    typer.echo(f"Starting Price Agent on http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "price_agent.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from price_agent.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def seed() -> None:
    """Load stores, categories and the canonical product catalog."""
    from price_agent.db.engine import get_session, init_db as db_init
    from price_agent.db.seed import seed_catalog

    db_init()
    with get_session() as session:
        counts = seed_catalog(session)

    typer.echo("Seed completed:")
    for table, count in counts.items():
        typer.echo(f"  {table}: {count} new")


@app.command()
def version() -> None:
    """Show the Price Agent version."""
    typer.echo("Price Agent v0.1.0")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    typer.echo("Price Agent Configuration")
    typer.echo("=" * 40)

    # Check .env file
    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    from price_agent.db.engine import get_database_url
    typer.echo(f"  Database: {get_database_url()}")

    redis_host = os.environ.get("REDIS_HOST", "localhost")
    redis_port = os.environ.get("REDIS_PORT", "6379")
    typer.echo(f"  Redis: {redis_host}:{redis_port}")

    from price_agent.ingestion.registry import get_default_registry
    registry = get_default_registry()
    if registry.config_path is None:
        typer.echo("  Sources config: Not found (no sources configured)")
    else:
        typer.echo(f"  Sources config: {registry.config_path}")
        enabled = len(registry.list_enabled_sources())
        typer.echo(f"  Sources: {len(registry.list_sources())} configured, {enabled} enabled")
        typer.echo(f"  Match threshold: {registry.matching.threshold}")


if __name__ == "__main__":
    app()
