"""
Lenta Adapter
=============

Lenta's full catalog sits behind a Qrator WAF, so the lighter promotion
endpoints of the mobile API are used first:

    GET /api/v1/stores/                          store list (SPb lookup)
    GET /api/v1/stores/{id}/home                 promoted goods
    GET /api/v1/stores/{id}/mobilepromo          weekly / everyday promos
    GET /api/v1/stores/{id}/crazypromotions      flash promos

When the promos yield fewer than MIN_RESULTS products the catalog API is
tried as well and the results are merged.
"""

from __future__ import annotations

import logging
from typing import Any

from price_agent.ingestion.adapters.base import BaseAdapter, Page, RawListing, Strategy
from price_agent.ingestion.errors import FetchError

logger = logging.getLogger(__name__)

API_BASE = "https://lenta.com/api/v1"
SPB_STORE_FALLBACK_ID = "7701"
PROMO_PAGE_SIZE = 50
CATALOG_CATEGORY_LIMIT = 10

API_HEADERS = {
    "origin": "https://lenta.com",
    "referer": "https://lenta.com/",
}

_SPB_CITY_MARKERS = ("санкт", "питер", "spb", "saint")


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


class LentaAdapter(BaseAdapter):
    """Adapter for lenta.com via the promo and catalog JSON APIs."""

    ADAPTER_NAME = "lenta"
    ADAPTER_VERSION = "1.0.0"
    MIN_RESULTS = 30

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._store_id: str | None = None

    @property
    def api_base(self) -> str:
        return self.config.get("api_base", API_BASE)

    def strategies(self) -> list[tuple[str, Strategy]]:
        return [
            ("promotions", self.fetch_promotions),
            ("catalog", self.fetch_catalog),
        ]

    # ------------------------------------------------------------------
    # Store discovery
    # ------------------------------------------------------------------

    async def resolve_store_id(self) -> str:
        """Find a Saint Petersburg store; fall back to a known id."""
        if self._store_id is not None:
            return self._store_id

        fallback = str(self.config.get("fallback_store_id", SPB_STORE_FALLBACK_ID))
        try:
            data = await self.crawler.get_json(f"{self.api_base}/stores/", headers=API_HEADERS)
        except FetchError as e:
            logger.warning(f"[{self.slug}] Store list unavailable ({e}), using fallback store {fallback}")
            self._store_id = fallback
            return fallback

        self._store_id = self.pick_store_id(data, fallback)
        logger.info(f"[{self.slug}] Using store id {self._store_id}")
        return self._store_id

    @staticmethod
    def pick_store_id(data: Any, fallback: str) -> str:
        """Pick an SPb store from the /stores/ payload, else the first store."""
        if not isinstance(data, dict):
            return fallback
        stores = data.get("stores") or data.get("items") or []
        for store in stores:
            city = str(store.get("city") or store.get("cityName") or "").lower()
            if any(marker in city for marker in _SPB_CITY_MARKERS):
                store_id = _first(store.get("id"), store.get("storeId"))
                if store_id:
                    return str(store_id)
        if stores:
            store_id = _first(stores[0].get("id"), stores[0].get("storeId"))
            if store_id:
                return str(store_id)
        return fallback

    # ------------------------------------------------------------------
    # Promotions
    # ------------------------------------------------------------------

    async def fetch_promotions(self) -> list[RawListing]:
        store_id = await self.resolve_store_id()
        base = f"{self.api_base}/stores/{store_id}"
        endpoints = [
            ("home", f"{base}/home", None),
            ("weekly", f"{base}/mobilepromo", {"limit": PROMO_PAGE_SIZE, "offset": 0, "type": "weekly"}),
            ("everyday", f"{base}/mobilepromo", {"limit": PROMO_PAGE_SIZE, "offset": 0, "type": "everyday"}),
            ("crazypromotions", f"{base}/crazypromotions", {"limit": PROMO_PAGE_SIZE, "offset": 0}),
        ]

        async def fetch_endpoint(endpoint: tuple[str, str, dict[str, Any] | None]) -> list[RawListing]:
            _, url, params = endpoint
            return (await self._fetch_goods(url, params)).listings

        listings = await self.collect(endpoints, fetch_endpoint, label="promo endpoint")
        if listings:
            await self.delay()
            listings.extend(await self._paginate_weekly(base))
        return listings

    async def _paginate_weekly(self, base: str) -> list[RawListing]:
        """Continue the weekly promo feed after the first page."""

        async def fetch_offset(offset: int) -> Page:
            page = await self._fetch_goods(
                f"{base}/mobilepromo",
                {"limit": PROMO_PAGE_SIZE, "offset": offset, "type": "weekly"},
            )
            if page.item_count is not None and page.item_count >= PROMO_PAGE_SIZE:
                page.next_cursor = offset + PROMO_PAGE_SIZE
            return page

        try:
            return await self.paginate(fetch_offset, first_cursor=PROMO_PAGE_SIZE, label="weekly promo")
        except FetchError as e:
            logger.warning(f"[{self.slug}] Weekly promo pagination failed: {e}")
            return []

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def fetch_catalog(self) -> list[RawListing]:
        store_id = await self.resolve_store_id()
        data = await self.crawler.get_json(
            f"{self.api_base}/catalog/", params={"store_id": store_id}, headers=API_HEADERS
        )
        categories = (data.get("categories") or data.get("items") or []) if isinstance(data, dict) else []
        category_ids = [
            cid
            for cid in (_first(c.get("id"), c.get("code")) for c in categories[:CATALOG_CATEGORY_LIMIT])
            if cid
        ]
        logger.info(f"[{self.slug}] Catalog: {len(categories)} categories, scraping {len(category_ids)}")

        async def fetch_category(category_id: Any) -> list[RawListing]:
            page = await self._fetch_goods(
                f"{self.api_base}/catalog/{category_id}/products/",
                {"store_id": store_id, "limit": PROMO_PAGE_SIZE, "offset": 0},
            )
            return page.listings

        return await self.collect(category_ids, fetch_category, label="catalog category")

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    async def _fetch_goods(self, url: str, params: dict[str, Any] | None) -> Page:
        data = await self.crawler.get_json(url, params=params, headers=API_HEADERS)
        return self.parse_goods(data)

    def parse_goods(self, data: Any) -> Page:
        """Parse a goods/items/products payload into a page."""
        if not isinstance(data, dict):
            return Page(item_count=0)
        goods = data.get("goods") or data.get("items") or data.get("products") or []
        listings = self.parse_items(goods, self.parse_good)
        return Page(listings=listings, item_count=len(goods))

    def parse_good(self, item: dict[str, Any]) -> RawListing | None:
        """Map one Lenta good to a RawListing."""
        price_field = item.get("price")
        price_per_unit = None
        if isinstance(price_field, dict):
            price = _first(price_field.get("promo"), price_field.get("regular"), price_field.get("price"))
            price_per_unit = price_field.get("unitPrice")
        elif price_field is not None:
            price = price_field
        else:
            price = _first(item.get("promoPrice"), item.get("regularPrice"))
        if not price_per_unit:
            price_per_unit = item.get("unitPrice")

        image_url = None
        images = item.get("images") or []
        image = item.get("image")
        if images:
            image_url = images[0].get("url") or images[0].get("src")
        elif isinstance(image, str):
            image_url = image
        elif isinstance(image, dict):
            image_url = image.get("url") or image.get("src")

        categories = item.get("categories") or []
        category = None
        if categories:
            category = categories[0].get("title") or categories[0].get("name")
        category = category or item.get("category") or "bakaleya"

        return self.make_listing(
            name=item.get("title") or item.get("name"),
            price=price,
            url=item.get("url") or item.get("slug"),
            price_per_unit=price_per_unit,
            category=category,
            image_url=image_url,
        )
