"""
Adapter Base Module
===================

Defines the abstract base class for store-specific adapters.
Adapters are responsible for:
1. Talking to one retailer through an ordered list of fetch strategies
2. Turning the retailer's payloads into RawListing records
3. Dropping malformed listings and de-duplicating by product URL
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, TypeVar

from price_agent.ingestion.crawler import Crawler
from price_agent.ingestion.errors import BlockedResponseError, FetchError, TransientFetchError
from price_agent.ingestion.normalizer import (
    map_category,
    normalize_price_magnitude,
    parse_price,
)
from price_agent.ingestion.registry import GlobalConfig, SourceConfig
from price_agent.ingestion.resilience import JitteredDelay

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Raised by parsers on payload items of an unexpected shape
PARSE_ERRORS = (AttributeError, TypeError, ValueError, KeyError, IndexError, ArithmeticError)

Strategy = Callable[[], Awaitable[list["RawListing"]]]


@dataclass
class RawListing:
    """
    One product as a store shows it, before matching.

    Prices are in rubles. Listings without a product URL are de-duplicated
    by their lower-cased name instead, quantities included.
    """

    name: str
    price: Decimal
    url: str = ""
    price_per_unit: Decimal | None = None
    category: str | None = None
    image_url: str | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.name.strip()) and self.price > 0

    @property
    def dedup_key(self) -> str:
        if self.url:
            return self.url
        return f"name:{' '.join(self.name.lower().split())}"


@dataclass
class Page:
    """One page of a paginated feed."""

    listings: list[RawListing] = field(default_factory=list)
    next_cursor: Any = None
    # Raw items on the page, including ones dropped as malformed
    item_count: int | None = None

    @property
    def is_empty(self) -> bool:
        count = self.item_count if self.item_count is not None else len(self.listings)
        return count == 0


def deduplicate(listings: Iterable[RawListing]) -> list[RawListing]:
    """Collapse listings sharing a dedup key; the last one seen wins."""
    unique: dict[str, RawListing] = {}
    for listing in listings:
        unique[listing.dedup_key] = listing
    return list(unique.values())


class BaseAdapter(ABC):
    """
    Abstract base class for store adapters.

    Subclasses implement strategies(), returning (name, coroutine function)
    pairs in priority order. fetch() runs them until the accumulated,
    de-duplicated result reaches MIN_RESULTS.
    """

    # Adapter identification (override in subclasses)
    ADAPTER_NAME: str = "base"
    ADAPTER_VERSION: str = "1.0.0"

    # Stop trying further strategies once this many unique products are found
    MIN_RESULTS: int = 1

    def __init__(
        self,
        source: SourceConfig,
        global_config: GlobalConfig | None = None,
        crawler: Crawler | None = None,
        delay: JitteredDelay | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            source: Source configuration from sources.yaml
            global_config: Shared HTTP and parsing settings
            crawler: Open HTTP client (required by network adapters)
            delay: Pause between consecutive requests; built from
                   source.delay when omitted
        """
        self.source = source
        self.global_config = global_config or GlobalConfig()
        self.config: dict[str, Any] = source.custom_config
        self._crawler = crawler
        self.delay = delay or JitteredDelay(source.delay.min_seconds, source.delay.max_seconds)
        self.dropped = 0

    @property
    def slug(self) -> str:
        return self.source.slug

    @property
    def base_url(self) -> str:
        return self.source.base_url

    @property
    def crawler(self) -> Crawler:
        if self._crawler is None:
            raise RuntimeError(f"Adapter '{self.ADAPTER_NAME}' needs an open Crawler")
        return self._crawler

    @property
    def max_pages(self) -> int:
        return int(self.config.get("max_pages", self.global_config.max_pages))

    @abstractmethod
    def strategies(self) -> list[tuple[str, Strategy]]:
        """
        Fetch strategies in priority order.

        Returns:
            List of (strategy name, zero-argument coroutine function)
        """
        pass

    async def fetch(self) -> list[RawListing]:
        """
        Run strategies in order and return unique, valid listings.

        A strategy that raises FetchError, or trips over a payload of an
        unexpected shape, is logged and skipped. If every strategy failed and
        the last failure was transient, it is re-raised so the caller's retry
        policy can kick in.
        """
        self.dropped = 0
        collected: list[RawListing] = []
        last_error: FetchError | None = None
        any_completed = False

        for name, strategy in self.strategies():
            try:
                listings = await strategy()
            except FetchError as e:
                logger.warning(f"[{self.slug}] Strategy '{name}' failed: {e}")
                last_error = e
                continue
            except PARSE_ERRORS as e:
                logger.warning(f"[{self.slug}] Strategy '{name}' got an unexpected payload: {e!r}")
                continue

            any_completed = True
            collected = deduplicate([*collected, *listings])
            logger.info(f"[{self.slug}] Strategy '{name}' -> {len(listings)} listings ({len(collected)} unique)")
            if len(collected) >= self.MIN_RESULTS:
                break
            logger.info(f"[{self.slug}] Too few products after '{name}', trying next strategy")

        if not collected and not any_completed and isinstance(last_error, TransientFetchError):
            raise last_error
        return collected

    def make_listing(
        self,
        name: Any,
        price: Any,
        url: str | None = None,
        price_per_unit: Any = None,
        category: str | None = None,
        image_url: str | None = None,
    ) -> RawListing | None:
        """
        Build a RawListing from loosely typed store fields.

        Parses price strings, applies the minor-unit heuristic and maps the
        category. Listings without a name or a positive price are counted in
        self.dropped and None is returned.
        """
        name = str(name).strip() if name else ""
        cutoff = self.config.get("price_sanity_cutoff", self.global_config.price_sanity_cutoff)
        parsed_price = normalize_price_magnitude(parse_price(price), cutoff)
        if not name or parsed_price is None or parsed_price <= 0:
            self.dropped += 1
            return None

        unit_price = normalize_price_magnitude(parse_price(price_per_unit), cutoff)
        if unit_price is not None and unit_price <= 0:
            unit_price = None

        return RawListing(
            name=name,
            price=parsed_price,
            url=self.absolute_url(url),
            price_per_unit=unit_price,
            category=map_category(category),
            image_url=self.absolute_url(image_url) or None,
        )

    def parse_items(self, items: Iterable[Any], parse: Callable[[Any], RawListing | None]) -> list[RawListing]:
        """
        Apply a per-item parser, dropping items that do not parse.

        An item of an unexpected shape (null, a bare string, nested fields
        of the wrong type) is counted in self.dropped instead of failing the
        whole page.
        """
        listings: list[RawListing] = []
        for item in items:
            try:
                listing = parse(item)
            except PARSE_ERRORS as e:
                self.dropped += 1
                logger.debug(f"[{self.slug}] Dropping malformed item {item!r}: {e!r}")
                continue
            if listing is not None:
                listings.append(listing)
        return listings

    def absolute_url(self, path: str | None) -> str:
        """Resolve a store-relative path against the source base URL."""
        if not path:
            return ""
        path = str(path)
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if path.startswith("//"):
            return f"https:{path}"
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    async def collect(
        self,
        steps: Iterable[T],
        fetch_step: Callable[[T], Awaitable[list[RawListing]]],
        label: str = "step",
    ) -> list[RawListing]:
        """
        Run one fetch per step (keyword, category, endpoint) with pauses.

        A failing step (fetch error or unparseable payload) is logged and
        skipped. If every step failed and at
        least one failure was transient, that error is raised so the whole
        strategy counts as failed.
        """
        results: list[RawListing] = []
        attempted = failed = 0
        last_transient: TransientFetchError | None = None

        for index, step in enumerate(steps):
            if index:
                await self.delay()
            attempted += 1
            try:
                batch = await fetch_step(step)
            except BlockedResponseError as e:
                failed += 1
                logger.warning(f"[{self.slug}] {label} {step!r} blocked: {e}")
                continue
            except FetchError as e:
                failed += 1
                if isinstance(e, TransientFetchError):
                    last_transient = e
                logger.warning(f"[{self.slug}] {label} {step!r} failed: {e}")
                continue
            except PARSE_ERRORS as e:
                failed += 1
                logger.warning(f"[{self.slug}] {label} {step!r} returned an unexpected payload: {e!r}")
                continue
            logger.info(f"[{self.slug}] {label} {step!r}: {len(batch)} products")
            results.extend(batch)

        if attempted and failed == attempted and last_transient is not None:
            raise last_transient
        return results

    async def paginate(
        self,
        fetch_page: Callable[[Any], Awaitable[Page]],
        first_cursor: Any = 1,
        label: str = "feed",
    ) -> list[RawListing]:
        """
        Follow a paginated feed up to max_pages.

        Stops on an empty page or when fetch_page returns no next cursor.
        A failure on the first page propagates; a failure later keeps the
        pages already collected.
        """
        results: list[RawListing] = []
        cursor = first_cursor

        for page_index in range(self.max_pages):
            if page_index:
                await self.delay()
            try:
                page = await fetch_page(cursor)
            except (FetchError, *PARSE_ERRORS) as e:
                if page_index == 0:
                    raise
                logger.warning(f"[{self.slug}] {label}: page {page_index + 1} failed, keeping partial results: {e}")
                break

            results.extend(page.listings)
            if page.is_empty or page.next_cursor is None:
                break
            cursor = page.next_cursor
        else:
            logger.warning(f"[{self.slug}] {label}: stopped at page cap ({self.max_pages})")

        return results

    def get_info(self) -> dict[str, Any]:
        """Get adapter metadata."""
        return {
            "name": self.ADAPTER_NAME,
            "version": self.ADAPTER_VERSION,
            "class": self.__class__.__name__,
            "strategies": [name for name, _ in self.strategies()],
        }
