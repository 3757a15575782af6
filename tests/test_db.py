"""Tests for database persistence layer."""

import tempfile
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from price_agent.core.schema import PriceRecord
from price_agent.db.engine import create_db_engine
from price_agent.db.models import Base, PriceDB, ProductAliasDB, ProductDB, StoreDB
from price_agent.db.repositories import CatalogRepository, PriceRepository
from price_agent.db.seed import ALIASES, PRODUCTS, STORES, seed_catalog


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    engine = create_db_engine(temp_db_path)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a seeded database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    seed_catalog(session)
    yield session
    session.close()


def _store_id(session: Session, slug: str) -> int:
    return CatalogRepository(session).load_store_ids()[slug]


def _naive(dt: datetime) -> datetime:
    return dt.replace(tzinfo=None)


class TestSeed:
    """Tests for the catalog seed."""

    def test_counts(self, session: Session) -> None:
        """Test that every seed row was inserted."""
        assert session.query(StoreDB).count() == len(STORES)
        assert session.query(ProductDB).count() == len(PRODUCTS) == 50
        assert session.query(ProductAliasDB).count() == len(ALIASES)

    def test_idempotent(self, session: Session) -> None:
        """Test that seeding twice inserts nothing new."""
        counts = seed_catalog(session)
        assert counts == {"stores": 0, "categories": 0, "products": 0, "aliases": 0}
        assert session.query(ProductDB).count() == 50
        assert session.query(ProductAliasDB).count() == len(ALIASES)


class TestCatalogRepository:
    """Tests for CatalogRepository."""

    def test_load_canonical_products_ordered(self, session: Session) -> None:
        """Test that products load in id order with aliases and category."""
        products = CatalogRepository(session).load_canonical_products()

        assert [p.id for p in products] == sorted(p.id for p in products)
        milk = next(p for p in products if p.name == "Молоко 3.2%")
        assert milk.category == "dairy"
        assert milk.unit == "л"
        assert milk.aliases == ["Молоко цельное 3.2%", "Молоко пастеризованное 3.2%"]

    def test_load_store_ids(self, session: Session) -> None:
        """Test slug to id mapping."""
        store_ids = CatalogRepository(session).load_store_ids()
        assert set(store_ids) == {"pyaterochka", "magnit", "lenta", "perekrestok", "vkusvill"}

    def test_list_stores(self, session: Session) -> None:
        """Test store listing."""
        stores = CatalogRepository(session).list_stores()
        assert stores[0].slug == "pyaterochka"
        assert stores[0].website_url == "https://5ka.ru"


class TestPriceRepository:
    """Tests for PriceRepository."""

    def test_upsert_inserts_then_overwrites(self, session: Session) -> None:
        """Test one row per (product, store) with the latest observation."""
        repo = PriceRepository(session)
        store_id = _store_id(session, "lenta")

        repo.upsert(PriceRecord(product_id=1, store_id=store_id, price=Decimal("89.90"), store_product_name="A"))
        repo.upsert(
            PriceRecord(
                product_id=1,
                store_id=store_id,
                price=Decimal("84.90"),
                price_per_unit=Decimal("91.29"),
                store_product_name="B",
                store_product_url="https://lenta.com/p/1",
            )
        )
        session.commit()

        assert session.query(PriceDB).count() == 1
        record = repo.get(1, store_id)
        assert record.price == Decimal("84.90")
        assert record.price_per_unit == Decimal("91.29")
        assert record.store_product_name == "B"
        assert record.store_product_url == "https://lenta.com/p/1"

    def test_unique_constraint(self, session: Session) -> None:
        """Test the database rejects a second row for the same pair."""
        store_id = _store_id(session, "lenta")
        now = datetime.now(UTC)
        session.add(PriceDB(product_id=1, store_id=store_id, price=Decimal("10"), scraped_at=now))
        session.add(PriceDB(product_id=1, store_id=store_id, price=Decimal("11"), scraped_at=now))

        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_price_check_constraint(self, session: Session) -> None:
        """Test the database rejects non-positive prices."""
        store_id = _store_id(session, "lenta")
        session.add(PriceDB(product_id=1, store_id=store_id, price=Decimal("0")))

        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_mark_stale_only_moves_backwards(self, session: Session) -> None:
        """Test that marking stale pushes one store's rows into the past."""
        repo = PriceRepository(session)
        lenta = _store_id(session, "lenta")
        magnit = _store_id(session, "magnit")
        observed = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
        old = datetime(2026, 9, 1, 12, 0, tzinfo=UTC)

        repo.upsert(PriceRecord(product_id=1, store_id=lenta, price=Decimal("90"), scraped_at=observed))
        repo.upsert(PriceRecord(product_id=2, store_id=lenta, price=Decimal("80"), scraped_at=old))
        repo.upsert(PriceRecord(product_id=1, store_id=magnit, price=Decimal("95"), scraped_at=observed))
        session.commit()

        touched = repo.mark_stale(lenta, timedelta(days=7))
        session.commit()

        assert touched == 2
        assert _naive(repo.get(1, lenta).scraped_at) == _naive(observed - timedelta(days=7))
        assert _naive(repo.get(2, lenta).scraped_at) == _naive(old - timedelta(days=7))
        assert _naive(repo.get(1, magnit).scraped_at) == _naive(observed)

    def test_get_fresh_prices(self, session: Session) -> None:
        """Test the max-age filter and ordering."""
        repo = PriceRepository(session)
        lenta = _store_id(session, "lenta")
        magnit = _store_id(session, "magnit")
        now = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)

        repo.upsert(PriceRecord(product_id=1, store_id=lenta, price=Decimal("90"), scraped_at=now - timedelta(hours=1)))
        repo.upsert(PriceRecord(product_id=1, store_id=magnit, price=Decimal("85"), scraped_at=now - timedelta(hours=2)))
        repo.upsert(PriceRecord(product_id=2, store_id=lenta, price=Decimal("70"), scraped_at=now - timedelta(days=3)))
        session.commit()

        fresh = repo.get_fresh_prices([2, 1], max_age=timedelta(hours=24), now=now)
        assert [(p.product_id, p.price) for p in fresh] == [(1, Decimal("85")), (1, Decimal("90"))]

        everything = repo.get_fresh_prices([1, 2], max_age=None)
        assert len(everything) == 3

        assert repo.get_fresh_prices([]) == []

    def test_count_by_store(self, session: Session) -> None:
        """Test per-store row counts."""
        repo = PriceRepository(session)
        lenta = _store_id(session, "lenta")
        for product_id in (1, 2, 3):
            repo.upsert(PriceRecord(product_id=product_id, store_id=lenta, price=Decimal("10")))
        session.commit()

        assert repo.count_by_store() == {lenta: 3}

    def test_savepoint_rollback_keeps_outer_transaction(self, session: Session) -> None:
        """Test that a failed nested upsert leaves earlier rows in the transaction."""
        repo = PriceRepository(session)
        lenta = _store_id(session, "lenta")

        with session.begin_nested():
            repo.upsert(PriceRecord(product_id=1, store_id=lenta, price=Decimal("10")))

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(PriceDB(product_id=2, store_id=lenta, price=Decimal("-1")))
                session.flush()

        session.commit()
        rows = session.execute(select(PriceDB.product_id)).scalars().all()
        assert rows == [1]
