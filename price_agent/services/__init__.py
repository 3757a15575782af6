"""Services for external infrastructure used by the ingestion pipeline."""

from price_agent.services.cache_service import PriceCacheService, price_cache_key

__all__ = ["PriceCacheService", "price_cache_key"]
