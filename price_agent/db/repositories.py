"""Repository classes for catalog and price database operations."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from price_agent.core.schema import CanonicalProduct, PriceRecord, Store
from price_agent.db.models import PriceDB, ProductDB, StoreDB


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class CatalogRepository:
    """Read-only access to the canonical catalog and the store list."""

    def __init__(self, session: Session):
        self.session = session

    def load_canonical_products(self) -> list[CanonicalProduct]:
        """
        Load every canonical product with its aliases.

        Products are ordered by id so that tie-breaking during matching is
        stable across runs.
        """
        stmt = (
            select(ProductDB)
            .options(selectinload(ProductDB.aliases), selectinload(ProductDB.category))
            .order_by(ProductDB.id)
        )
        return [self._to_domain(p) for p in self.session.execute(stmt).scalars().all()]

    def load_store_ids(self) -> dict[str, int]:
        """Map store slug to store id."""
        rows = self.session.execute(select(StoreDB.slug, StoreDB.id)).all()
        return {slug: store_id for slug, store_id in rows}

    def list_stores(self) -> list[Store]:
        """Get all stores ordered by id."""
        stmt = select(StoreDB).order_by(StoreDB.id)
        return [
            Store(id=s.id, name=s.name, slug=s.slug, website_url=s.website_url)
            for s in self.session.execute(stmt).scalars().all()
        ]

    def _to_domain(self, db_item: ProductDB) -> CanonicalProduct:
        return CanonicalProduct(
            id=db_item.id,
            name=db_item.name,
            unit=db_item.unit,
            category=db_item.category.slug if db_item.category else None,
            aliases=[a.alias for a in db_item.aliases],
        )


class PriceRepository:
    """Repository for the current-price snapshot."""

    def __init__(self, session: Session):
        self.session = session

    def mark_stale(self, store_id: int, push_back: timedelta) -> int:
        """
        Push every price row of a store back in time.

        Rows that are re-observed in the same run get a fresh scraped_at from
        upsert(); the rest stay behind and age out of freshness filters.
        Timestamps only ever move backwards here.

        Returns:
            Number of rows touched.
        """
        stmt = select(PriceDB).where(PriceDB.store_id == store_id)
        rows = self.session.execute(stmt).scalars().all()
        for row in rows:
            row.scraped_at = row.scraped_at - push_back
        self.session.flush()
        return len(rows)

    def upsert(self, record: PriceRecord) -> PriceRecord:
        """Insert or overwrite the price row for (product_id, store_id)."""
        stmt = select(PriceDB).where(
            PriceDB.product_id == record.product_id,
            PriceDB.store_id == record.store_id,
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            db_item = PriceDB(product_id=record.product_id, store_id=record.store_id)
            self.session.add(db_item)

        db_item.price = record.price
        db_item.price_per_unit = record.price_per_unit
        db_item.store_product_name = record.store_product_name
        db_item.store_product_url = record.store_product_url
        db_item.scraped_at = record.scraped_at
        self.session.flush()
        return self._to_domain(db_item)

    def get(self, product_id: int, store_id: int) -> PriceRecord | None:
        """Get the price row for a product/store pair."""
        stmt = select(PriceDB).where(
            PriceDB.product_id == product_id,
            PriceDB.store_id == store_id,
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_fresh_prices(
        self,
        product_ids: Iterable[int],
        max_age: timedelta | None = None,
        now: datetime | None = None,
    ) -> list[PriceRecord]:
        """
        Get prices for the given products, optionally limited to fresh rows.

        Args:
            product_ids: Products to look up
            max_age: Rows scraped longer ago than this are skipped.
                     None disables the filter.
            now: Reference time (defaults to current UTC time)

        Returns:
            Price records ordered by product id, then price
        """
        ids = sorted(set(product_ids))
        if not ids:
            return []

        stmt = select(PriceDB).where(PriceDB.product_id.in_(ids))
        if max_age is not None:
            cutoff = (now or _utc_now()) - max_age
            stmt = stmt.where(PriceDB.scraped_at > cutoff)
        stmt = stmt.order_by(PriceDB.product_id, PriceDB.price)
        return [self._to_domain(p) for p in self.session.execute(stmt).scalars().all()]

    def count_by_store(self) -> dict[int, int]:
        """Count price rows per store id."""
        stmt = select(PriceDB.store_id, func.count(PriceDB.id)).group_by(PriceDB.store_id)
        return {store_id: count for store_id, count in self.session.execute(stmt).all()}

    def _to_domain(self, db_item: PriceDB) -> PriceRecord:
        return PriceRecord(
            product_id=db_item.product_id,
            store_id=db_item.store_id,
            price=db_item.price,
            price_per_unit=db_item.price_per_unit,
            store_product_name=db_item.store_product_name or "",
            store_product_url=db_item.store_product_url or "",
            scraped_at=db_item.scraped_at,
        )
