"""
Static Adapter
==============

Serves listings declared in the source's custom_config. Useful for running
the full pipeline offline, e.g. against a fresh database:

    custom_config:
      listings:
        - name: "Молоко пастеризованное 3.2% 930 мл"
          price: "89,90 ₽"
          url: /p/milk-930
"""

from __future__ import annotations

from typing import Any

from price_agent.ingestion.adapters.base import BaseAdapter, RawListing, Strategy


class StaticAdapter(BaseAdapter):
    """Adapter that returns listings from configuration without any I/O."""

    ADAPTER_NAME = "static"
    ADAPTER_VERSION = "1.0.0"

    def strategies(self) -> list[tuple[str, Strategy]]:
        return [("configured", self.fetch_configured)]

    async def fetch_configured(self) -> list[RawListing]:
        return self.parse_items(self.config.get("listings") or [], self.parse_item)

    def parse_item(self, item: dict[str, Any]) -> RawListing | None:
        return self.make_listing(
            name=item.get("name"),
            price=item.get("price"),
            url=item.get("url"),
            price_per_unit=item.get("price_per_unit"),
            category=item.get("category"),
            image_url=item.get("image_url"),
        )
