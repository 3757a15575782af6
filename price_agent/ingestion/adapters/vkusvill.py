"""
VkusVill Adapter
================

Catalog items API per section (page count from ``meta.total``) with a
rendered-page fallback.
"""

from __future__ import annotations

import logging
from typing import Any

from price_agent.ingestion.adapters.base import Page, RawListing
from price_agent.ingestion.adapters.browser import BrowserFallbackAdapter, CardSelectors

logger = logging.getLogger(__name__)

API_BASE = "https://vkusvill.ru/api/v3/catalog/items"
PAGE_SIZE = 60


class VkusvillAdapter(BrowserFallbackAdapter):
    """Adapter for vkusvill.ru."""

    ADAPTER_NAME = "vkusvill"
    ADAPTER_VERSION = "1.0.0"

    CATEGORIES = {
        "molochnye-produkty": "Молочные продукты",
        "hleb-vypechka": "Хлеб и выпечка",
        "frukty-i-ovoshchi": "Фрукты и овощи",
        "myaso-i-ptica": "Мясо и птица",
        "ryba-i-moreprodukty": "Рыба и морепродукты",
        "napitki": "Напитки",
        "zamorozhennye": "Замороженные продукты",
        "bakaleya": "Бакалея",
        "yajca": "Яйца",
        "sladkoe-i-sneki": "Кондитерские изделия",
    }
    CARD_SELECTORS = CardSelectors(
        card='.product-card, [class*="ProductCard"]',
        name='.product-card__title, [class*="title"], [class*="Title"]',
    )

    def category_page_url(self, slug: str) -> str:
        return f"{self.base_url}/goods/{slug}/"

    async def fetch_api_category(self, slug: str, label: str) -> list[RawListing]:
        async def fetch_page(page: int) -> Page:
            data = await self.crawler.get_json(
                self.config.get("api_base", API_BASE),
                params={
                    "section": slug,
                    "page": page,
                    "perPage": PAGE_SIZE,
                    "city": self.config.get("city", "spb"),
                },
                headers={"Accept": "application/json", "X-Requested-With": "XMLHttpRequest"},
            )
            return self.parse_page(data, page, label)

        return await self.paginate(fetch_page, label=f"section {slug}")

    def parse_page(self, data: dict[str, Any], page: int, category: str) -> Page:
        """Parse one items page; the page count comes from meta.total."""
        items = data.get("data") or []
        listings = self.parse_items(items, lambda item: self.parse_item(item, category))
        total = (data.get("meta") or {}).get("total") or 0
        next_page = page + 1 if page * PAGE_SIZE < total else None
        return Page(listings=listings, next_cursor=next_page, item_count=len(items))

    def parse_item(self, item: dict[str, Any], category: str) -> RawListing | None:
        slug = item.get("slug")
        return self.make_listing(
            name=item.get("title"),
            price=item.get("price"),
            url=f"/goods/{slug}/" if slug else None,
            price_per_unit=item.get("priceByUnit"),
            category=item.get("category") or category,
            image_url=item.get("image"),
        )
