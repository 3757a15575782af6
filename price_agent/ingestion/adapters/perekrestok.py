"""
Perekrestok Adapter
===================

Catalog JSON API (prices in kopecks) with a rendered-page fallback.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any

from price_agent.ingestion.adapters.base import Page, RawListing
from price_agent.ingestion.adapters.browser import BrowserFallbackAdapter, CardSelectors
from price_agent.ingestion.normalizer import parse_price

logger = logging.getLogger(__name__)

API_BASE = "https://www.perekrestok.ru/api/catalog/v1"
PAGE_SIZE = 60

API_HEADERS = {
    "Accept": "application/json",
    "X-App-Version": "3.0.0",
}


def _from_kopecks(value: Any) -> Decimal | None:
    amount = parse_price(value)
    if amount is None:
        return None
    return amount / 100


class PerekrestokAdapter(BrowserFallbackAdapter):
    """Adapter for perekrestok.ru."""

    ADAPTER_NAME = "perekrestok"
    ADAPTER_VERSION = "1.0.0"

    CATEGORIES = {
        "molochnye-produkty-yajca-i-maslo": "Молочные продукты и яйца",
        "hleb-i-vypechka": "Хлеб и выпечка",
        "frukty-i-ovoshchi": "Фрукты и овощи",
        "myaso-i-ptica": "Мясо и птица",
        "ryba-i-moreprodukty": "Рыба и морепродукты",
        "napitki": "Напитки",
        "zamorozhennye-produkty": "Замороженные продукты",
        "bakaleya": "Бакалея",
        "konditerskie-izdeliya": "Кондитерские изделия",
    }
    CARD_SELECTORS = CardSelectors(
        card='[class*="product-card"], [data-qa="product-card"]',
        name='[class*="product-name"], [data-qa="product-name"]',
    )

    def category_page_url(self, slug: str) -> str:
        return f"{self.base_url}/cat/{slug}"

    async def fetch_api_category(self, slug: str, label: str) -> list[RawListing]:
        async def fetch_page(page: int) -> Page:
            data = await self.crawler.get_json(
                f"{self.config.get('api_base', API_BASE)}/products",
                params={
                    "filter": json.dumps({"category": slug}),
                    "page": page,
                    "perPage": PAGE_SIZE,
                    "sort": "popular",
                    "city": self.config.get("city", "spb"),
                },
                headers=API_HEADERS,
            )
            return self.parse_page(data, page, label)

        return await self.paginate(fetch_page, label=f"category {slug}")

    def parse_page(self, data: dict[str, Any], page: int, category: str) -> Page:
        """Parse one products page; the page count comes from totalCount."""
        content = data.get("content") or {}
        items = content.get("items") or []
        listings = self.parse_items(items, lambda i: self.parse_item(i, category))
        total = content.get("totalCount") or 0
        next_page = page + 1 if page * PAGE_SIZE < total else None
        return Page(listings=listings, next_cursor=next_page, item_count=len(items))

    def parse_item(self, item: dict[str, Any], category: str) -> RawListing | None:
        """Map one API product; prices arrive in kopecks."""
        prices = item.get("prices") or {}
        return self.make_listing(
            name=item.get("title"),
            price=_from_kopecks(prices.get("price")),
            url=item.get("url"),
            price_per_unit=_from_kopecks(prices.get("pricePerUnit")),
            category=category,
            image_url=item.get("image"),
        )
