"""Scrape trigger routes: health check, full sweep, single store."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from price_agent.db.engine import get_session
from price_agent.db.repositories import CatalogRepository, PriceRepository
from price_agent.ingestion.errors import SweepInProgressError
from price_agent.ingestion.orchestrator import summarize
from price_agent.ingestion.registry import get_default_registry
from price_agent.ingestion.scheduler import SweepScheduler

router = APIRouter(prefix="/api", tags=["scrape"])


def _scheduler(request: Request) -> SweepScheduler:
    return request.app.state.scheduler


async def _trigger(request: Request, store_slugs: list[str] | None) -> dict[str, Any]:
    try:
        stats = await _scheduler(request).run_now(store_slugs)
    except SweepInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return summarize(stats)


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness plus the number of stored prices per store."""
    with get_session() as session:
        slugs = {s.id: s.slug for s in CatalogRepository(session).list_stores()}
        counts = PriceRepository(session).count_by_store()

    return {
        "status": "ok",
        "sweep_running": _scheduler(request).is_running,
        "prices": {slug: counts.get(store_id, 0) for store_id, slug in slugs.items()},
    }


@router.post("/scrape")
async def scrape_all(request: Request) -> dict[str, Any]:
    """Run a sweep over every enabled store and wait for the result."""
    return await _trigger(request, None)


@router.post("/scrape/{store}")
async def scrape_store(store: str, request: Request) -> dict[str, Any]:
    """Run a single store."""
    if get_default_registry().get_source(store) is None:
        raise HTTPException(status_code=400, detail=f"Unknown store: {store}")
    return await _trigger(request, [store])
