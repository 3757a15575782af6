"""FastAPI application factory for the Price Agent trigger surface."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from price_agent.db.engine import init_db
from price_agent.ingestion.registry import get_default_registry
from price_agent.ingestion.scheduler import SweepScheduler

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def create_app(scheduler: SweepScheduler | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    schedule = get_default_registry().schedule
    if scheduler is None:
        scheduler = SweepScheduler(interval=timedelta(hours=schedule.interval_hours))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # With the arq worker running cron sweeps, the web process only serves triggers
        if schedule.in_process:
            scheduler.start()
        yield
        await scheduler.stop()

    app = FastAPI(
        title="Price Agent",
        description="Scrape triggers for the grocery price ingestion pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.scheduler = scheduler

    # Initialize database tables
    init_db()

    # Include routers (import here to avoid circular imports)
    from price_agent.web.routes import scrape

    app.include_router(scrape.router)

    return app


# Application instance
app = create_app()
