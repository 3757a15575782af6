"""
Ingestion Orchestrator Module
=============================

Runs one store end to end and aggregates run statistics:

1. Fetch listings through the store adapter (wrapped in retry)
2. Load the canonical catalog and store ids
3. In one transaction: push the store's prices into the past, then match
   and upsert each listing inside its own savepoint
4. After commit, drop the store's cached price lookups (best effort)

Stores in a sweep run one after another; a failure in one store never
affects the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from price_agent.core.enums import RunState
from price_agent.core.schema import PriceRecord
from price_agent.db.engine import get_session_factory
from price_agent.db.repositories import CatalogRepository, PriceRepository
from price_agent.ingestion.adapters import BaseAdapter, RawListing, get_adapter
from price_agent.ingestion.crawler import Crawler
from price_agent.ingestion.errors import IngestionError, UnknownStoreError
from price_agent.ingestion.matcher import ProductMatcher
from price_agent.ingestion.registry import SourceConfig, SourceRegistry, get_default_registry
from price_agent.ingestion.resilience import RetryPolicy, with_retry
from price_agent.services.cache_service import PriceCacheService

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., BaseAdapter | None]


@dataclass
class RunStats:
    """Outcome of one store run. Returned to callers, never persisted."""

    store: str
    state: RunState = RunState.IDLE
    total_scraped: int = 0
    dropped: int = 0
    matched: int = 0
    unmatched: int = 0
    inserted: int = 0
    errors: int = 0
    duration_ms: int = 0
    stale_marked: int = 0
    cache_keys_invalidated: int | None = None
    error_messages: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.DONE

    def fail(self, message: str) -> None:
        self.state = RunState.ERRORED
        self.errors += 1
        self.error_messages.append(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "store": self.store,
            "state": self.state.value,
            "total_scraped": self.total_scraped,
            "dropped": self.dropped,
            "matched": self.matched,
            "unmatched": self.unmatched,
            "inserted": self.inserted,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
            "stale_marked": self.stale_marked,
            "cache_keys_invalidated": self.cache_keys_invalidated,
            "error_messages": self.error_messages,
        }


def summarize(stats: list[RunStats]) -> dict[str, Any]:
    """Totals across a sweep plus the per-store breakdown."""
    return {
        "total_scraped": sum(s.total_scraped for s in stats),
        "total_matched": sum(s.matched for s in stats),
        "total_inserted": sum(s.inserted for s in stats),
        "total_errors": sum(s.errors for s in stats),
        "stores": [s.to_dict() for s in stats],
    }


class IngestionOrchestrator:
    """
    Drives store runs: adapter fetch, matching, persistence, cache invalidation.

    All collaborators can be injected; by default the global registry,
    database session factory and a Redis-backed cache are used.
    """

    def __init__(
        self,
        registry: SourceRegistry | None = None,
        session_factory: Callable[[], Session] | None = None,
        cache: PriceCacheService | None = None,
        adapter_factory: AdapterFactory = get_adapter,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.registry = registry or get_default_registry()
        self.session_factory = session_factory or get_session_factory()
        self._cache = cache
        self._owns_cache = cache is None
        self.adapter_factory = adapter_factory
        global_config = self.registry.global_config
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=global_config.max_retries,
            base_delay=global_config.backoff_base,
        )

    @property
    def cache(self) -> PriceCacheService:
        if self._cache is None:
            self._cache = PriceCacheService(prefix=self.registry.persistence.cache_prefix)
        return self._cache

    async def close(self) -> None:
        """Release the Redis connection if this orchestrator created it."""
        if self._owns_cache and self._cache is not None:
            await self._cache.close()
            self._cache = None

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_sweep(self, store_slugs: list[str] | None = None) -> list[RunStats]:
        """
        Run several stores sequentially.

        Args:
            store_slugs: Stores to run; defaults to every enabled source

        Returns:
            One RunStats per requested store, in request order
        """
        if store_slugs is None:
            store_slugs = [s.slug for s in self.registry.list_enabled_sources()]

        logger.info(f"Starting sweep over {len(store_slugs)} stores: {', '.join(store_slugs)}")
        results = []
        for slug in store_slugs:
            results.append(await self.run_store(slug))

        totals = summarize(results)
        logger.info(
            f"Sweep finished: scraped={totals['total_scraped']} matched={totals['total_matched']} "
            f"inserted={totals['total_inserted']} errors={totals['total_errors']}"
        )
        return results

    # ------------------------------------------------------------------
    # Single store
    # ------------------------------------------------------------------

    async def run_store(self, slug: str, force: bool = False) -> RunStats:
        """
        Run the full pipeline for one store.

        Never raises for pipeline failures: they end up in the returned
        RunStats with state ERRORED.

        Args:
            slug: Store slug from sources.yaml
            force: Run even if the source is disabled

        Returns:
            RunStats for this run
        """
        stats = RunStats(store=slug)
        started = time.monotonic()

        try:
            source = self.registry.get_source(slug)
            if source is None:
                raise UnknownStoreError(slug)
            if not source.enabled and not force:
                raise IngestionError(f"Source '{slug}' is disabled")

            stats.state = RunState.SCRAPING
            logger.info(f"[{slug}] Starting scrape...")
            listings = await self._scrape(source, stats)
            stats.total_scraped = len(listings)

            if not listings:
                logger.warning(f"[{slug}] No products scraped, skipping persistence")
                stats.state = RunState.DONE
                return stats

            stats.state = RunState.PERSISTING
            # Blocking database work runs off the event loop
            store_id = await asyncio.to_thread(self._persist, slug, listings, stats)

            stats.state = RunState.INVALIDATING
            await self._invalidate(slug, store_id, stats)

            stats.state = RunState.DONE
            logger.info(
                f"[{slug}] Done: scraped={stats.total_scraped} matched={stats.matched} "
                f"inserted={stats.inserted} errors={stats.errors}"
            )
        except Exception as e:
            logger.exception(f"[{slug}] Store run failed: {e}")
            stats.fail(str(e))
        finally:
            stats.duration_ms = int((time.monotonic() - started) * 1000)

        return stats

    async def _scrape(self, source: SourceConfig, stats: RunStats) -> list[RawListing]:
        global_config = self.registry.global_config
        async with Crawler(
            user_agent=global_config.user_agent,
            timeout=global_config.request_timeout,
        ) as crawler:
            adapter = self.adapter_factory(source.adapter, source, global_config, crawler)
            if adapter is None:
                raise IngestionError(f"Adapter '{source.adapter}' not found")

            listings = await with_retry(adapter.fetch, self.retry_policy, label=source.slug)
            stats.dropped += getattr(adapter, "dropped", 0)
            return listings

    def _persist(self, slug: str, listings: list[RawListing], stats: RunStats) -> int:
        persistence = self.registry.persistence

        with self.session_factory() as session:
            catalog = CatalogRepository(session)
            store_id = catalog.load_store_ids().get(slug)
            if store_id is None:
                raise UnknownStoreError(slug, "no row in the stores table (run `price-agent seed`)")
            matcher = ProductMatcher.from_config(catalog.load_canonical_products(), self.registry.matching)
            logger.info(f"[{slug}] Matching {len(listings)} listings against {matcher.catalog_size} products")

            prices = PriceRepository(session)
            try:
                stats.stale_marked = prices.mark_stale(store_id, persistence.stale_push_back)

                for listing in listings:
                    if not listing.is_valid:
                        stats.dropped += 1
                        continue

                    result = matcher.match(listing.name)
                    if not result.matched:
                        stats.unmatched += 1
                        logger.debug(f"[{slug}] No match for '{listing.name}'")
                        continue
                    stats.matched += 1

                    record = PriceRecord(
                        product_id=result.product_id,
                        store_id=store_id,
                        price=listing.price,
                        price_per_unit=listing.price_per_unit,
                        store_product_name=listing.name,
                        store_product_url=listing.url,
                    )
                    try:
                        with session.begin_nested():
                            prices.upsert(record)
                    except (IntegrityError, DataError) as e:
                        stats.errors += 1
                        stats.error_messages.append(f"{listing.name}: {e.orig}")
                        logger.error(f"[{slug}] Failed to save '{listing.name}': {e.orig}")
                        continue
                    stats.inserted += 1

                session.commit()
            except Exception:
                session.rollback()
                raise

        return store_id

    async def _invalidate(self, slug: str, store_id: int, stats: RunStats) -> None:
        try:
            stats.cache_keys_invalidated = await self.cache.invalidate_store(store_id)
        except (RedisError, OSError) as e:
            logger.warning(f"[{slug}] Cache invalidation failed (non-fatal): {e}")


async def run_sweep(
    store_slugs: list[str] | None = None,
    orchestrator: IngestionOrchestrator | None = None,
) -> list[RunStats]:
    """
    Run a sweep with the default orchestrator.

    Args:
        store_slugs: Stores to run; defaults to every enabled source
        orchestrator: Optional preconfigured orchestrator

    Returns:
        One RunStats per requested store
    """
    owned = orchestrator is None
    orchestrator = orchestrator or IngestionOrchestrator()
    try:
        return await orchestrator.run_sweep(store_slugs)
    finally:
        if owned:
            await orchestrator.close()
