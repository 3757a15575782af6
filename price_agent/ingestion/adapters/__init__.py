"""
Adapter Registry Module
=======================

Central registry for store-specific adapters.
Provides factory functions for creating adapters by name.
"""

from __future__ import annotations

from typing import Type

from price_agent.ingestion.adapters.base import BaseAdapter, Page, RawListing, deduplicate
from price_agent.ingestion.adapters.lenta import LentaAdapter
from price_agent.ingestion.adapters.magnit import MagnitAdapter
from price_agent.ingestion.adapters.perekrestok import PerekrestokAdapter
from price_agent.ingestion.adapters.pyaterochka import PyaterochkaAdapter
from price_agent.ingestion.adapters.static import StaticAdapter
from price_agent.ingestion.adapters.vkusvill import VkusvillAdapter
from price_agent.ingestion.crawler import Crawler
from price_agent.ingestion.registry import GlobalConfig, SourceConfig

# Registry mapping adapter names to their classes
ADAPTER_REGISTRY: dict[str, Type[BaseAdapter]] = {
    "lenta": LentaAdapter,
    "magnit": MagnitAdapter,
    "perekrestok": PerekrestokAdapter,
    "pyaterochka": PyaterochkaAdapter,
    "vkusvill": VkusvillAdapter,
    "static": StaticAdapter,
}


def get_adapter(
    adapter_type: str,
    source: SourceConfig,
    global_config: GlobalConfig | None = None,
    crawler: Crawler | None = None,
) -> BaseAdapter | None:
    """
    Get an adapter instance by type name.

    Args:
        adapter_type: Name of the adapter (e.g., "magnit")
        source: Source configuration the adapter works for
        global_config: Shared HTTP and parsing settings
        crawler: Open HTTP client

    Returns:
        Adapter instance, or None if type not found
    """
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None
    return adapter_class(source, global_config, crawler)


def register_adapter(name: str, adapter_class: Type[BaseAdapter]) -> None:
    """
    Register a new adapter type.

    Args:
        name: Name to register the adapter under
        adapter_class: Adapter class (must inherit from BaseAdapter)
    """
    if not issubclass(adapter_class, BaseAdapter):
        raise TypeError(f"{adapter_class} must inherit from BaseAdapter")
    ADAPTER_REGISTRY[name] = adapter_class


def list_adapters() -> list[str]:
    """
    List all registered adapter names.

    Returns:
        List of adapter type names
    """
    return list(ADAPTER_REGISTRY.keys())


def get_adapter_info(adapter_type: str) -> dict[str, str] | None:
    """
    Get information about an adapter type.

    Args:
        adapter_type: Name of the adapter

    Returns:
        Dict with adapter info, or None if not found
    """
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None

    return {
        "name": adapter_class.ADAPTER_NAME,
        "version": adapter_class.ADAPTER_VERSION,
        "class": adapter_class.__name__,
    }


__all__ = [
    # Registry functions
    "get_adapter",
    "register_adapter",
    "list_adapters",
    "get_adapter_info",
    "ADAPTER_REGISTRY",
    # Base classes
    "BaseAdapter",
    "Page",
    "RawListing",
    "deduplicate",
    # Concrete adapters
    "LentaAdapter",
    "MagnitAdapter",
    "PerekrestokAdapter",
    "PyaterochkaAdapter",
    "StaticAdapter",
    "VkusvillAdapter",
]
