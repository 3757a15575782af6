"""
Magnit Adapter
==============

Uses the Magnit web-gateway goods API (POST /v3/goods) for one Saint
Petersburg store.

Strategies:
1. Keyword search: one query per configured keyword
2. Category enumeration: every configured category id, paginated using the
   total reported by the API
"""

from __future__ import annotations

import logging
import math
from typing import Any

from price_agent.ingestion.adapters.base import BaseAdapter, Page, RawListing, Strategy

logger = logging.getLogger(__name__)

API_URL = "https://web-gateway.middle-api.magnit.ru/v3/goods"
SPB_STORE_CODE = "543358"
PAGE_SIZE = 36

# Main food groups in the Magnit catalog
DEFAULT_CATEGORY_IDS: list[int] = [
    4893,  # Молочные продукты
    4887,  # Хлеб и выпечка
    4894,  # Яйца
    4886,  # Бакалея
    4885,  # Фрукты и овощи
    4889,  # Мясо и птица
    4890,  # Рыба и морепродукты
    4891,  # Напитки
    4892,  # Заморожка / Кондитерские
]

DEFAULT_KEYWORDS: list[str] = [
    "молоко",
    "кефир",
    "творог",
    "сметана",
    "масло сливочное",
    "сыр",
    "хлеб",
    "яйца",
    "гречка",
    "рис",
    "макароны",
    "сахар",
    "курица",
    "фарш",
    "бананы",
    "картофель",
    "кофе",
    "чай",
    "пельмени",
    "шоколад",
]

API_HEADERS = {
    "x-device-id": "nk1kmh32na",
    "x-device-tag": "disabled",
    "x-app-version": "0.1.0",
    "x-device-platform": "Web",
    "x-client-name": "magnit",
    "origin": "https://magnit.ru",
    "referer": "https://magnit.ru/",
}


class MagnitAdapter(BaseAdapter):
    """Adapter for magnit.ru via the web-gateway JSON API."""

    ADAPTER_NAME = "magnit"
    ADAPTER_VERSION = "1.0.0"

    @property
    def store_code(self) -> str:
        return str(self.config.get("store_code", SPB_STORE_CODE))

    @property
    def page_size(self) -> int:
        return int(self.config.get("page_size", PAGE_SIZE))

    def strategies(self) -> list[tuple[str, Strategy]]:
        return [
            ("keyword_search", self.fetch_by_keywords),
            ("category_enumeration", self.fetch_by_categories),
        ]

    async def fetch_by_keywords(self) -> list[RawListing]:
        keywords = self.config.get("keywords", DEFAULT_KEYWORDS)
        return await self.collect(keywords, self._search_keyword, label="keyword")

    async def fetch_by_categories(self) -> list[RawListing]:
        category_ids = self.config.get("category_ids", DEFAULT_CATEGORY_IDS)
        return await self.collect(category_ids, self._scrape_category, label="category")

    async def _search_keyword(self, keyword: str) -> list[RawListing]:
        return await self.paginate(
            lambda page: self._fetch_page(page, term=keyword),
            label=f"keyword {keyword!r}",
        )

    async def _scrape_category(self, category_id: int) -> list[RawListing]:
        return await self.paginate(
            lambda page: self._fetch_page(page, category_id=category_id),
            label=f"category {category_id}",
        )

    def build_request(
        self, page: int, term: str | None = None, category_id: int | None = None
    ) -> dict[str, Any]:
        """Request body for one page of the goods API."""
        body: dict[str, Any] = {
            "includeForAdults": True,
            "onlyDiscount": False,
            "order": "desc",
            "pagination": {"number": page, "size": self.page_size},
            "shopType": "1",
            "sortBy": "popularity",
            "storeCodes": [self.store_code],
        }
        if term is not None:
            body["term"] = term
        if category_id is not None:
            body["categoryIDs"] = [category_id]
        return body

    async def _fetch_page(
        self, page: int, term: str | None = None, category_id: int | None = None
    ) -> Page:
        data = await self.crawler.post_json(
            self.config.get("api_url", API_URL),
            self.build_request(page, term=term, category_id=category_id),
            headers=API_HEADERS,
        )
        return self.parse_page(data, page, fallback_category=str(category_id or ""))

    def parse_page(self, data: dict[str, Any], page: int, fallback_category: str = "") -> Page:
        """
        Parse one goods API response.

        The page count comes from pagination.total / pagination.size; without
        pagination info only the first page is read.
        """
        goods = data.get("goods") or []
        listings = self.parse_items(goods, lambda g: self.parse_good(g, fallback_category))

        next_page = None
        pagination = data.get("pagination")
        if pagination:
            size = pagination.get("size") or self.page_size
            total_pages = math.ceil((pagination.get("total") or 0) / size)
            if page < total_pages:
                next_page = page + 1

        return Page(listings=listings, next_cursor=next_page, item_count=len(goods))

    def parse_good(self, item: dict[str, Any], fallback_category: str = "") -> RawListing | None:
        """Map one Magnit good to a RawListing."""
        slug = item.get("slug") or item.get("id")
        url = item.get("url") or (f"/magnit-market/p/{slug}/" if slug else "")
        images = item.get("images") or []
        image_url = images[0].get("url") if images else None

        return self.make_listing(
            name=item.get("name"),
            price=item.get("price"),
            url=url,
            price_per_unit=item.get("pricePerKg") or item.get("pricePerUnit"),
            category=item.get("categoryName") or fallback_category,
            image_url=image_url,
        )
