"""
Background Jobs Module
======================

Defines arq tasks for running price sweeps out of process.
Uses Redis as the job queue backend; the worker also owns the
recurring cron sweep.
"""

from __future__ import annotations

import logging
import os
from typing import Any
from uuid import uuid4

from arq import create_pool, cron
from arq.connections import RedisSettings
from arq.jobs import Job, JobStatus

from price_agent.ingestion.orchestrator import run_sweep, summarize
from price_agent.ingestion.registry import get_default_registry

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def sweep_task(
    ctx: dict[str, Any],
    store_slugs: list[str] | None = None,
) -> dict[str, Any]:
    """
    Sweep task.

    Runs the requested stores (or every enabled store) one after another
    and returns the sweep totals with per-store stats.

    Args:
        ctx: arq context (contains Redis connection)
        store_slugs: Optional list of store slugs

    Returns:
        Sweep summary as dictionary
    """
    job_id = ctx.get("job_id", str(uuid4()))
    logger.info(f"Sweep job {job_id} started")
    stats = await run_sweep(store_slugs)
    summary = summarize(stats)
    summary["job_id"] = job_id
    return summary


async def scheduled_sweep(ctx: dict[str, Any]) -> dict[str, Any]:
    """Cron entry point: sweep every enabled store."""
    return await sweep_task(ctx)


async def enqueue_sweep(store_slugs: list[str] | None = None) -> str:
    """
    Enqueue a sweep job for async processing.

    Args:
        store_slugs: Optional list of store slugs

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = await redis.enqueue_job("sweep_task", store_slugs)
    finally:
        await redis.aclose()
    if job is None:
        raise RuntimeError("Sweep job was not enqueued")
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a sweep job.

    Args:
        job_id: Job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = Job(job_id, redis)
        status = await job.status()
        if status == JobStatus.not_found:
            return None

        result = None
        if status == JobStatus.complete:
            info = await job.result_info()
            result = info.result if info else None
    finally:
        await redis.aclose()

    return {
        "job_id": job_id,
        "status": status.value,
        "result": result,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [sweep_task]
    cron_jobs = [
        cron(
            scheduled_sweep,
            hour=set(get_default_registry().schedule.cron_hours),
            minute=0,
            second=0,
        )
    ]
    redis_settings = get_redis_settings()
    max_jobs = 1
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
