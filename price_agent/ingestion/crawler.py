"""
HTTP Client Module
==================

Thin wrapper around httpx.AsyncClient used by every store adapter.
Classifies failures into retryable and blocked responses and decodes JSON.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from price_agent.ingestion.errors import BlockedResponseError, FetchError, TransientFetchError
from price_agent.ingestion.registry import DEFAULT_USER_AGENT
from price_agent.ingestion.resilience import is_html_block_page

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "ru-RU,ru;q=0.9,en;q=0.8",
}


@dataclass
class FetchResult:
    """Result of a successful request."""

    url: str
    status_code: int
    text: str
    content_type: str
    fetched_at: datetime

    def json(self) -> Any:
        """Decode the body as JSON."""
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {self.url}: {e}", url=self.url) from e


class Crawler:
    """
    Async HTTP client for store APIs.

    Features:
    - One shared connection pool per store run
    - Fixed per-request timeout
    - 5xx, 429 and network errors raised as TransientFetchError
    - 401/403 and HTML bodies raised as BlockedResponseError

    Use as an async context manager:

        async with Crawler(user_agent=...) as crawler:
            data = await crawler.get_json(url)
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.headers = {**DEFAULT_HEADERS, "User-Agent": user_agent, **(headers or {})}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Crawler:
        self._client = httpx.AsyncClient(
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Crawler is not open; use 'async with Crawler(...)'")
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        """
        Perform a request and classify the outcome.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters
            json_body: JSON payload for POST requests
            headers: Extra headers for this request

        Returns:
            FetchResult with the decoded text body

        Raises:
            TransientFetchError: Timeout, network failure, 429 or 5xx
            BlockedResponseError: 401/403 or an HTML page instead of data
            FetchError: Any other non-2xx status
        """
        try:
            response = await self.client.request(
                method, url, params=params, json=json_body, headers=headers
            )
        except httpx.TimeoutException as e:
            raise TransientFetchError(f"Timeout fetching {url}", url=url) from e
        except httpx.TransportError as e:
            raise TransientFetchError(f"Network error fetching {url}: {e}", url=url) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientFetchError(f"HTTP {status} from {url}", url=url, status_code=status)
        if status in (401, 403):
            raise BlockedResponseError(f"HTTP {status} from {url}", url=url, status_code=status)
        if status >= 400:
            raise FetchError(f"HTTP {status} from {url}", url=url, status_code=status)

        text = response.text
        if is_html_block_page(text):
            raise BlockedResponseError(
                f"HTML page instead of JSON from {url} (bot protection?)",
                url=url,
                status_code=status,
            )

        return FetchResult(
            url=str(response.url),
            status_code=status,
            text=text,
            content_type=response.headers.get("content-type", ""),
            fetched_at=datetime.now(UTC),
        )

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET a URL and decode its JSON body."""
        result = await self.request("GET", url, params=params, headers=headers)
        return result.json()

    async def post_json(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST a JSON payload and decode the JSON response."""
        result = await self.request("POST", url, json_body=payload, headers=headers)
        return result.json()
