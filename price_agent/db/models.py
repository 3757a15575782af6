"""SQLAlchemy ORM models for the price catalog.

Tables:
- CategoryDB, ProductDB, ProductAliasDB (canonical catalog, read-only at run time)
- StoreDB (retail chains)
- PriceDB (current price per product/store pair)
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Canonical Catalog
# ============================================================================


class CategoryDB(Base):
    """Database model for product categories."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    products: Mapped[list["ProductDB"]] = relationship("ProductDB", back_populates="category")

    def __repr__(self) -> str:
        return f"<CategoryDB(id={self.id}, slug='{self.slug}')>"


class ProductDB(Base):
    """
    Database model for canonical products.

    The catalog is curated by hand; scraped listings are matched against
    the product name and its aliases.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="шт")
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=True, index=True
    )
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    category: Mapped["CategoryDB | None"] = relationship("CategoryDB", back_populates="products")
    aliases: Mapped[list["ProductAliasDB"]] = relationship(
        "ProductAliasDB",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductAliasDB.id",
    )

    def __repr__(self) -> str:
        return f"<ProductDB(id={self.id}, name='{self.name}')>"


class ProductAliasDB(Base):
    """Alternative store spelling of a canonical product name."""

    __tablename__ = "product_aliases"
    __table_args__ = (UniqueConstraint("product_id", "alias", name="uq_product_aliases_product_alias"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    alias: Mapped[str] = mapped_column(String(255), nullable=False)

    product: Mapped["ProductDB"] = relationship("ProductDB", back_populates="aliases")

    def __repr__(self) -> str:
        return f"<ProductAliasDB(product_id={self.product_id}, alias='{self.alias}')>"


# ============================================================================
# Stores and Prices
# ============================================================================


class StoreDB(Base):
    """Database model for retail chains."""

    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    website_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<StoreDB(id={self.id}, slug='{self.slug}')>"


class PriceDB(Base):
    """
    Database model for the current price of a product in a store.

    At most one row per (product, store). Each ingestion run overwrites the
    row in place and refreshes scraped_at.
    """

    __tablename__ = "prices"
    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_prices_product_store"),
        CheckConstraint("price > 0", name="ck_prices_price_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    store_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    store_product_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    store_product_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<PriceDB(product_id={self.product_id}, store_id={self.store_id}, price={self.price})>"
