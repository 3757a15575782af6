"""Pydantic models for the canonical catalog and price snapshots."""

from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class Store(BaseModel):
    """A retail chain row from the stores table."""

    id: int
    name: str
    slug: str
    website_url: str | None = None


class CanonicalProduct(BaseModel):
    """
    A product from the fixed reference catalog.

    Aliases are alternative spellings used by the stores and are kept in
    insertion order so matching is deterministic.
    """

    id: int
    name: str
    unit: str = "шт"
    category: str | None = None
    aliases: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Product name cannot be empty")
        return v

    @property
    def match_names(self) -> list[str]:
        """Canonical name followed by its aliases."""
        return [self.name, *self.aliases]


class PriceRecord(BaseModel):
    """Current price of one product in one store."""

    product_id: int
    store_id: int
    price: Decimal = Field(gt=0)
    price_per_unit: Decimal | None = None
    store_product_name: str = ""
    store_product_url: str = ""
    scraped_at: datetime = Field(default_factory=_utc_now)

    @field_validator("price_per_unit")
    @classmethod
    def validate_price_per_unit(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            return None
        return v
