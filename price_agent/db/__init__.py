"""Database initialization and persistence layer."""

from price_agent.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from price_agent.db.models import (
    Base,
    CategoryDB,
    PriceDB,
    ProductAliasDB,
    ProductDB,
    StoreDB,
)
from price_agent.db.repositories import CatalogRepository, PriceRepository
from price_agent.db.seed import seed_catalog

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "CategoryDB",
    "PriceDB",
    "ProductAliasDB",
    "ProductDB",
    "StoreDB",
    # Repositories
    "CatalogRepository",
    "PriceRepository",
    # Seed
    "seed_catalog",
]
