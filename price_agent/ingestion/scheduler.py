"""
In-process sweep scheduler.

Runs a full sweep on a fixed interval from a single background task and
accepts on-demand "run now" requests. At most one sweep is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta

from price_agent.ingestion.errors import SweepInProgressError
from price_agent.ingestion.orchestrator import RunStats, run_sweep

logger = logging.getLogger(__name__)

SweepFn = Callable[[list[str] | None], Awaitable[list[RunStats]]]


class SweepScheduler:
    """
    Interval loop plus manual trigger around a sweep coroutine.

    stop() cancels the waiting loop but lets an in-flight sweep finish.
    """

    def __init__(
        self,
        sweep: SweepFn | None = None,
        interval: timedelta = timedelta(hours=12),
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError(f"Interval must be positive, got {interval}")
        self._sweep = sweep or run_sweep
        self.interval = interval
        self._loop_task: asyncio.Task | None = None
        self._current: asyncio.Task | None = None
        self.last_result: list[RunStats] | None = None

    @property
    def is_running(self) -> bool:
        """True while a sweep is in flight."""
        return self._current is not None and not self._current.done()

    @property
    def is_started(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Register the recurring loop on the running event loop."""
        if self.is_started:
            return
        self._loop_task = asyncio.create_task(self._run_loop(), name="sweep-scheduler")
        logger.info(f"Sweep scheduler started (every {self.interval})")

    async def stop(self) -> None:
        """Cancel the loop and wait for an in-flight sweep to finish."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._current is not None and not self._current.done():
            logger.info("Waiting for in-flight sweep to finish...")
            await asyncio.wait([self._current])
        logger.info("Sweep scheduler stopped")

    async def run_now(self, store_slugs: list[str] | None = None) -> list[RunStats]:
        """
        Trigger a sweep immediately and wait for its result.

        Raises:
            SweepInProgressError: If a sweep is already running
        """
        if self.is_running:
            raise SweepInProgressError("A sweep is already in progress")

        self._current = asyncio.create_task(self._execute(store_slugs), name="sweep")
        # Cancelling the caller must not abort the sweep itself
        return await asyncio.shield(self._current)

    async def _execute(self, store_slugs: list[str] | None) -> list[RunStats]:
        result = await self._sweep(store_slugs)
        self.last_result = result
        return result

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            if self.is_running:
                logger.warning("Previous sweep still running, skipping scheduled sweep")
                continue
            try:
                await self.run_now()
            except Exception:
                logger.exception("Scheduled sweep failed")
