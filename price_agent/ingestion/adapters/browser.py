"""
Headless Browser Fallback
=========================

Renders a store category page with Playwright (Chromium) and reads product
cards from the DOM. Used when a store's JSON API is blocked or empty.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from price_agent.ingestion.adapters.base import BaseAdapter, RawListing, Strategy
from price_agent.ingestion.errors import BlockedResponseError, TransientFetchError
from price_agent.ingestion.registry import DEFAULT_USER_AGENT
from price_agent.ingestion.resilience import has_challenge_markers

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-gpu",
]


@dataclass(frozen=True)
class CardSelectors:
    """CSS selectors for product cards on a category page."""

    card: str
    name: str
    price: str = '[class*="price"]'
    link: str = "a"
    image: str = "img"


@dataclass
class ScrapedCard:
    """Text and attributes read from one product card."""

    name: str
    price_text: str
    href: str | None = None
    image_src: str | None = None


class BrowserPageScraper:
    """
    Reads product cards from a rendered page.

    A new browser is launched per call and always closed afterwards.
    Navigation errors surface as TransientFetchError; a challenge page
    surfaces as BlockedResponseError.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        headless: bool = True,
    ) -> None:
        self.user_agent = user_agent
        self.timeout_ms = int(timeout * 1000)
        self.headless = headless

    async def scrape_cards(self, url: str, selectors: CardSelectors) -> list[ScrapedCard]:
        """
        Open a page and return the raw contents of every product card.

        Args:
            url: Category page URL
            selectors: Card selectors for this store

        Returns:
            Cards with a non-empty name; empty when no cards render in time
        """
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            context = await browser.new_context(
                user_agent=self.user_agent,
                locale="ru-RU",
                viewport={"width": 1366, "height": 900},
            )
            try:
                page = await context.new_page()
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
                except PlaywrightTimeoutError as e:
                    raise TransientFetchError(f"Timeout rendering {url}", url=url) from e
                except PlaywrightError as e:
                    raise TransientFetchError(f"Browser error on {url}: {e}", url=url) from e

                try:
                    await page.wait_for_selector(selectors.card, timeout=self.timeout_ms)
                except PlaywrightTimeoutError:
                    title = await page.title()
                    if has_challenge_markers(title) or has_challenge_markers(await page.content()):
                        raise BlockedResponseError(f"Challenge page at {url}", url=url)
                    logger.warning(f"No product cards rendered at {url}")
                    return []

                cards: list[ScrapedCard] = []
                for element in await page.query_selector_all(selectors.card):
                    name_el = await element.query_selector(selectors.name)
                    name = ((await name_el.text_content()) or "").strip() if name_el else ""
                    if not name:
                        continue
                    price_el = await element.query_selector(selectors.price)
                    link_el = await element.query_selector(selectors.link)
                    image_el = await element.query_selector(selectors.image)
                    cards.append(
                        ScrapedCard(
                            name=name,
                            price_text=((await price_el.text_content()) or "").strip() if price_el else "",
                            href=await link_el.get_attribute("href") if link_el else None,
                            image_src=await image_el.get_attribute("src") if image_el else None,
                        )
                    )
                logger.info(f"Rendered {len(cards)} product cards at {url}")
                return cards
            finally:
                await context.close()
                await browser.close()


class BrowserFallbackAdapter(BaseAdapter):
    """
    Base for stores with a per-category JSON API and a rendered-page fallback.

    Strategies:
    1. api: fetch_api_category() for every configured category
    2. browser: render category_page_url() for every category and read cards
    """

    # Store category slug -> human-readable label (override in subclasses)
    CATEGORIES: dict[str, str] = {}
    CARD_SELECTORS: CardSelectors = CardSelectors(card='[class*="product-card"]', name='[class*="name"]')

    def __init__(self, *args: Any, browser: BrowserPageScraper | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.browser = browser or BrowserPageScraper(
            user_agent=self.global_config.user_agent,
            timeout=self.global_config.request_timeout,
            headless=bool(self.config.get("headless", True)),
        )

    @property
    def categories(self) -> dict[str, str]:
        return self.config.get("categories") or self.CATEGORIES

    def strategies(self) -> list[tuple[str, Strategy]]:
        strategies: list[tuple[str, Strategy]] = [("api", self.fetch_api)]
        if self.config.get("browser_fallback", True):
            strategies.append(("browser", self.fetch_browser))
        return strategies

    async def fetch_api(self) -> list[RawListing]:
        return await self.collect(
            list(self.categories.items()),
            lambda item: self.fetch_api_category(*item),
            label="api category",
        )

    async def fetch_browser(self) -> list[RawListing]:
        return await self.collect(
            list(self.categories.items()),
            lambda item: self.fetch_page_category(*item),
            label="page category",
        )

    async def fetch_page_category(self, slug: str, label: str) -> list[RawListing]:
        cards = await self.browser.scrape_cards(self.category_page_url(slug), self.CARD_SELECTORS)
        return self.parse_items(cards, lambda card: self.listing_from_card(card, label))

    def listing_from_card(self, card: ScrapedCard, category: str) -> RawListing | None:
        """Map a rendered product card to a RawListing."""
        return self.make_listing(
            name=card.name,
            price=card.price_text,
            url=card.href,
            category=category,
            image_url=card.image_src,
        )

    @abstractmethod
    async def fetch_api_category(self, slug: str, label: str) -> list[RawListing]:
        """Fetch every page of one category from the store's JSON API."""
        pass

    @abstractmethod
    def category_page_url(self, slug: str) -> str:
        """Public category page rendered by the browser fallback."""
        pass
