"""Tests for the ingestion orchestrator."""

import tempfile
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from price_agent.core.enums import RunState
from price_agent.db.engine import create_db_engine
from price_agent.db.models import Base, PriceDB
from price_agent.db.repositories import CatalogRepository, PriceRepository
from price_agent.db.seed import seed_catalog
from price_agent.ingestion.adapters import RawListing
from price_agent.ingestion.errors import TransientFetchError
from price_agent.ingestion.orchestrator import (
    IngestionOrchestrator,
    RunStats,
    run_sweep,
    summarize,
)
from price_agent.ingestion.registry import SourceRegistry
from price_agent.ingestion.resilience import RetryPolicy

MILK = RawListing(name="Молоко 3.2%", price=Decimal("89.90"), url="https://example.test/milk")
KEFIR = RawListing(name="Кефир 3.2% 1 л", price=Decimal("79.90"), url="https://example.test/kefir")
BANANAS = RawListing(name="Бананы", price=Decimal("129.99"), url="https://example.test/bananas")
TOOTHPASTE = RawListing(name="Зубная паста Colgate 100 мл", price=Decimal("199"), url="https://example.test/tp")
FREEBIE = RawListing(name="Пакет", price=Decimal("0"), url="https://example.test/bag")


class FakeAdapter:
    """Adapter double returning scripted results, one per fetch call."""

    def __init__(self, results: list, dropped: int = 0):
        self.results = list(results)
        self.dropped = dropped
        self.calls = 0

    async def fetch(self) -> list[RawListing]:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeCache:
    """Cache double recording invalidations."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.invalidated: list[int] = []

    async def invalidate_store(self, store_id: int) -> int:
        if self.error is not None:
            raise self.error
        self.invalidated.append(store_id)
        return 3


def _registry(disabled: tuple[str, ...] = ()) -> SourceRegistry:
    registry = SourceRegistry()
    registry.load_dict(
        {
            "global": {"delay": {"min_seconds": 0, "max_seconds": 0}},
            "persistence": {"stale_push_back_hours": 168},
            "sources": [
                {"slug": slug, "adapter": slug, "enabled": slug not in disabled}
                for slug in ("lenta", "magnit", "perekrestok")
            ],
        }
    )
    return registry


@pytest.fixture
def session_factory():
    """Create a seeded temporary database and return its session factory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = create_db_engine(Path(tmpdir) / "test.db")
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine)
        with factory() as session:
            seed_catalog(session)
        yield factory
        engine.dispose()


def _orchestrator(session_factory, adapters: dict, cache=None, registry=None, **kwargs):
    def factory(adapter_name, source, global_config, crawler):
        return adapters.get(adapter_name)

    return IngestionOrchestrator(
        registry=registry or _registry(),
        session_factory=session_factory,
        cache=cache or FakeCache(),
        adapter_factory=factory,
        retry_policy=kwargs.pop("retry_policy", RetryPolicy(max_retries=0, base_delay=0)),
    )


def _store_id(session_factory, slug: str) -> int:
    with session_factory() as session:
        return CatalogRepository(session).load_store_ids()[slug]


def _scraped_at(session_factory, product_id: int, store_id: int) -> datetime:
    with session_factory() as session:
        return PriceRepository(session).get(product_id, store_id).scraped_at


def _row_count(session_factory) -> int:
    with session_factory() as session:
        return session.query(PriceDB).count()


class TestRunStats:
    """Tests for RunStats bookkeeping."""

    def test_fail_marks_errored(self) -> None:
        """Test that fail() records the message and state."""
        stats = RunStats(store="lenta")
        stats.fail("boom")

        assert stats.state == RunState.ERRORED
        assert stats.errors == 1
        assert stats.error_messages == ["boom"]
        assert not stats.succeeded

    def test_summarize(self) -> None:
        """Test sweep totals."""
        a = RunStats(store="lenta", total_scraped=10, matched=6, inserted=5, errors=1)
        b = RunStats(store="magnit", total_scraped=4, matched=2, inserted=2)

        summary = summarize([a, b])

        assert summary["total_scraped"] == 14
        assert summary["total_matched"] == 8
        assert summary["total_inserted"] == 7
        assert summary["total_errors"] == 1
        assert [s["store"] for s in summary["stores"]] == ["lenta", "magnit"]
        assert summary["stores"][0]["state"] == "idle"


class TestRunStore:
    """Tests for a single store run."""

    @pytest.mark.asyncio
    async def test_happy_path(self, session_factory) -> None:
        """Test matching, dropping and persisting one store."""
        cache = FakeCache()
        adapter = FakeAdapter([[MILK, KEFIR, TOOTHPASTE, FREEBIE]], dropped=2)
        orchestrator = _orchestrator(session_factory, {"lenta": adapter}, cache=cache)

        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.DONE
        assert stats.total_scraped == 4
        assert stats.dropped == 3
        assert stats.matched == 2
        assert stats.unmatched == 1
        assert stats.inserted == 2
        assert stats.errors == 0
        assert stats.cache_keys_invalidated == 3
        assert stats.duration_ms >= 0

        lenta = _store_id(session_factory, "lenta")
        assert cache.invalidated == [lenta]
        with session_factory() as session:
            milk = PriceRepository(session).get(1, lenta)
        assert milk.price == Decimal("89.90")
        assert milk.store_product_name == "Молоко 3.2%"
        assert milk.store_product_url == "https://example.test/milk"

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, session_factory) -> None:
        """Test that the same listings twice leave the same rows."""
        adapter = FakeAdapter([[MILK, KEFIR, BANANAS]])
        orchestrator = _orchestrator(session_factory, {"lenta": adapter})

        first = await orchestrator.run_store("lenta")
        count_after_first = _row_count(session_factory)
        second = await orchestrator.run_store("lenta")

        assert first.inserted == second.inserted == 3
        assert _row_count(session_factory) == count_after_first == 3

    @pytest.mark.asyncio
    async def test_unobserved_rows_age(self, session_factory) -> None:
        """Test that rows missing from a later run move into the past."""
        adapter = FakeAdapter([[MILK, KEFIR], [MILK]])
        orchestrator = _orchestrator(session_factory, {"lenta": adapter})
        lenta = _store_id(session_factory, "lenta")

        await orchestrator.run_store("lenta")
        kefir_before = _scraped_at(session_factory, 3, lenta)
        milk_before = _scraped_at(session_factory, 1, lenta)

        stats = await orchestrator.run_store("lenta")

        assert stats.stale_marked == 2
        assert _scraped_at(session_factory, 3, lenta) < kefir_before
        assert _scraped_at(session_factory, 1, lenta) >= milk_before

    @pytest.mark.asyncio
    async def test_unobserved_rows_drop_out_of_fresh_prices(self, session_factory) -> None:
        """Test that a product missing from the latest run is no longer fresh."""
        adapter = FakeAdapter([[MILK, KEFIR], [MILK]])
        orchestrator = _orchestrator(session_factory, {"lenta": adapter})
        lenta = _store_id(session_factory, "lenta")

        await orchestrator.run_store("lenta")
        await orchestrator.run_store("lenta")

        with session_factory() as session:
            fresh = PriceRepository(session).get_fresh_prices([1, 3], max_age=timedelta(hours=24))
            everything = PriceRepository(session).get_fresh_prices([1, 3])

        assert [(p.product_id, p.store_id) for p in fresh] == [(1, lenta)]
        assert {p.product_id for p in everything} == {1, 3}

    @pytest.mark.asyncio
    async def test_persistence_runs_in_worker_thread(self, session_factory, monkeypatch) -> None:
        """Test that database writes are handed to a worker thread."""
        import price_agent.ingestion.orchestrator as orchestrator_module

        offloaded = []
        original = orchestrator_module.asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await original(func, *args, **kwargs)

        monkeypatch.setattr(orchestrator_module.asyncio, "to_thread", recording_to_thread)
        orchestrator = _orchestrator(session_factory, {"lenta": FakeAdapter([[MILK]])})

        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.DONE
        assert stats.inserted == 1
        assert "_persist" in offloaded

    @pytest.mark.asyncio
    async def test_unknown_store(self, session_factory) -> None:
        """Test that an unconfigured slug yields an errored run."""
        orchestrator = _orchestrator(session_factory, {})

        stats = await orchestrator.run_store("auchan")

        assert stats.state == RunState.ERRORED
        assert "auchan" in stats.error_messages[0]

    @pytest.mark.asyncio
    async def test_missing_adapter(self, session_factory) -> None:
        """Test that a source without an adapter errors."""
        orchestrator = _orchestrator(session_factory, {})

        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.ERRORED
        assert "Adapter 'lenta' not found" in stats.error_messages[0]

    @pytest.mark.asyncio
    async def test_zero_listings(self, session_factory) -> None:
        """Test that an empty scrape finishes without touching the database."""
        cache = FakeCache()
        orchestrator = _orchestrator(session_factory, {"lenta": FakeAdapter([[]])}, cache=cache)

        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.DONE
        assert stats.total_scraped == 0
        assert cache.invalidated == []

    @pytest.mark.asyncio
    async def test_disabled_source_needs_force(self, session_factory) -> None:
        """Test that disabled sources only run when forced."""
        adapters = {"lenta": FakeAdapter([[MILK]])}
        orchestrator = _orchestrator(session_factory, adapters, registry=_registry(disabled=("lenta",)))

        skipped = await orchestrator.run_store("lenta")
        forced = await orchestrator.run_store("lenta", force=True)

        assert skipped.state == RunState.ERRORED
        assert "disabled" in skipped.error_messages[0]
        assert forced.state == RunState.DONE
        assert forced.inserted == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, session_factory) -> None:
        """Test that the adapter fetch goes through the retry wrapper."""
        adapter = FakeAdapter([TransientFetchError("timeout"), [MILK]])
        orchestrator = _orchestrator(
            session_factory,
            {"lenta": adapter},
            retry_policy=RetryPolicy(max_retries=2, base_delay=0),
        )

        stats = await orchestrator.run_store("lenta")

        assert adapter.calls == 2
        assert stats.state == RunState.DONE
        assert stats.inserted == 1

    @pytest.mark.asyncio
    async def test_row_failure_rolls_back_savepoint_only(self, session_factory, monkeypatch) -> None:
        """Test that one failing row does not lose the others."""
        original_upsert = PriceRepository.upsert

        def flaky_upsert(self, record):
            if record.product_id == 3:
                raise IntegrityError("INSERT INTO prices", {}, Exception("constraint failed"))
            return original_upsert(self, record)

        monkeypatch.setattr(PriceRepository, "upsert", flaky_upsert)
        adapter = FakeAdapter([[MILK, KEFIR, BANANAS]])
        orchestrator = _orchestrator(session_factory, {"lenta": adapter})

        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.DONE
        assert stats.matched == 3
        assert stats.inserted == 2
        assert stats.errors == 1
        assert stats.error_messages == ["Кефир 3.2% 1 л: constraint failed"]
        assert _row_count(session_factory) == 2

    @pytest.mark.asyncio
    async def test_cache_failure_is_not_fatal(self, session_factory) -> None:
        """Test that a Redis outage only loses the invalidation."""
        cache = FakeCache(error=RedisError("connection refused"))
        orchestrator = _orchestrator(session_factory, {"lenta": FakeAdapter([[MILK]])}, cache=cache)

        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.DONE
        assert stats.cache_keys_invalidated is None
        assert _row_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_fatal_persistence_error_rolls_back(self, session_factory, monkeypatch) -> None:
        """Test that a non-row failure discards the whole store transaction."""
        adapter = FakeAdapter([[MILK], [MILK, KEFIR]])
        orchestrator = _orchestrator(session_factory, {"lenta": adapter})
        await orchestrator.run_store("lenta")
        lenta = _store_id(session_factory, "lenta")
        milk_before = _scraped_at(session_factory, 1, lenta)

        def broken_upsert(self, record):
            raise RuntimeError("disk full")

        monkeypatch.setattr(PriceRepository, "upsert", broken_upsert)
        stats = await orchestrator.run_store("lenta")

        assert stats.state == RunState.ERRORED
        assert stats.error_messages == ["disk full"]
        assert _scraped_at(session_factory, 1, lenta) == milk_before
        assert _row_count(session_factory) == 1


class TestRunSweep:
    """Tests for multi-store sweeps."""

    @pytest.mark.asyncio
    async def test_failure_isolation(self, session_factory) -> None:
        """Test that a throwing store does not affect its neighbours."""
        adapters = {
            "lenta": FakeAdapter([[MILK]]),
            "magnit": FakeAdapter([RuntimeError("boom")]),
            "perekrestok": FakeAdapter([[KEFIR, BANANAS]]),
        }
        orchestrator = _orchestrator(session_factory, adapters)

        results = await orchestrator.run_sweep()

        assert [r.store for r in results] == ["lenta", "magnit", "perekrestok"]
        assert [r.state for r in results] == [RunState.DONE, RunState.ERRORED, RunState.DONE]
        assert results[1].error_messages == ["boom"]
        assert results[2].inserted == 2
        assert _row_count(session_factory) == 3

    @pytest.mark.asyncio
    async def test_defaults_to_enabled_sources(self, session_factory) -> None:
        """Test that disabled sources are left out of a default sweep."""
        adapters = {"lenta": FakeAdapter([[MILK]]), "perekrestok": FakeAdapter([[KEFIR]])}
        orchestrator = _orchestrator(session_factory, adapters, registry=_registry(disabled=("magnit",)))

        results = await orchestrator.run_sweep()

        assert [r.store for r in results] == ["lenta", "perekrestok"]

    @pytest.mark.asyncio
    async def test_unknown_slug_gets_entry(self, session_factory) -> None:
        """Test one RunStats per requested store, unknown ones included."""
        orchestrator = _orchestrator(session_factory, {"lenta": FakeAdapter([[MILK]])})

        results = await run_sweep(["lenta", "auchan"], orchestrator=orchestrator)

        assert [r.store for r in results] == ["lenta", "auchan"]
        assert results[0].succeeded
        assert results[1].state == RunState.ERRORED
