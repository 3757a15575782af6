"""
Pyaterochka Adapter
===================

Special-offers feed of the 5ka.ru API, following the ``next`` link of each
response, with a rendered-page fallback.
"""

from __future__ import annotations

import logging
from typing import Any

from price_agent.ingestion.adapters.base import Page, RawListing
from price_agent.ingestion.adapters.browser import BrowserFallbackAdapter, CardSelectors

logger = logging.getLogger(__name__)

API_BASE = "https://5ka.ru/api/v2/special_offers/"
RECORDS_PER_PAGE = 50


class PyaterochkaAdapter(BrowserFallbackAdapter):
    """Adapter for 5ka.ru."""

    ADAPTER_NAME = "pyaterochka"
    ADAPTER_VERSION = "1.0.0"

    CATEGORIES = {
        "molochnye-produkty": "Молочные продукты",
        "hleb-vydob": "Хлеб и выпечка",
        "frukty-ovoshchi": "Фрукты и овощи",
        "myaso-ptica-kolbasy": "Мясо и птица",
        "ryba-moreprodukty": "Рыба и морепродукты",
        "napitki": "Напитки",
        "zamorozhenka": "Замороженные продукты",
        "bakaleya": "Бакалея",
        "yajca": "Яйца",
        "konditerskaya": "Кондитерские изделия",
    }
    CARD_SELECTORS = CardSelectors(
        card='[class*="product-card"], .product-list__item',
        name='[class*="product-name"], h3',
    )

    def category_page_url(self, slug: str) -> str:
        return f"{self.base_url}/catalog/{slug}/"

    def first_page_url(self, slug: str) -> str:
        api_base = self.config.get("api_base", API_BASE)
        return (
            f"{api_base}?records_per_page={RECORDS_PER_PAGE}"
            f"&categories={slug}&store={self.config.get('store', '')}&format=json"
        )

    async def fetch_api_category(self, slug: str, label: str) -> list[RawListing]:
        async def fetch_page(url: str) -> Page:
            data = await self.crawler.get_json(url, headers={"Accept": "application/json"})
            return self.parse_page(data, label)

        return await self.paginate(fetch_page, first_cursor=self.first_page_url(slug), label=f"category {slug}")

    def parse_page(self, data: dict[str, Any], category: str) -> Page:
        """Parse one feed page; next_cursor is the absolute ``next`` URL."""
        results = data.get("results") or []
        listings = self.parse_items(results, lambda item: self.parse_item(item, category))
        return Page(listings=listings, next_cursor=data.get("next") or None, item_count=len(results))

    def parse_item(self, item: dict[str, Any], category: str) -> RawListing | None:
        """Map one special offer to a RawListing."""
        return self.make_listing(
            name=item.get("name"),
            price=item.get("price"),
            url=item.get("url"),
            price_per_unit=item.get("pricePerUnit"),
            category=item.get("category") or category,
            image_url=item.get("photo"),
        )
