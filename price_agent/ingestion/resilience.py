"""
Resilience Module
=================

Retry with exponential backoff, jittered pacing between requests, and the
shared predicate that recognises bot-defense pages returned in place of JSON.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from price_agent.ingestion.errors import BlockedResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fragments seen on WAF and challenge pages (Cloudflare, Qrator, generic captcha)
CHALLENGE_MARKERS: list[str] = [
    "challenges.cloudflare.com",
    "cdn-cgi/challenge-platform",
    "just a moment",
    "cf-turnstile",
    "cf_chl_opt",
    "qrator",
    "captcha",
    "verify you are human",
    "unusual traffic",
    "доступ ограничен",
    "подозрительн",
]


def has_challenge_markers(text: str) -> bool:
    """Check rendered page text for known challenge-page fragments."""
    lower = text.lower()
    return any(marker in lower for marker in CHALLENGE_MARKERS)


def is_html_block_page(body: str | bytes | None) -> bool:
    """
    Decide whether a response that should be JSON is really an HTML page.

    A body that opens with a doctype or <html> tag is always treated as a
    block page. Bodies that do not look like JSON are also checked for
    challenge markers.

    Args:
        body: Raw response body

    Returns:
        True if the body should be treated as a bot-defense response
    """
    if body is None:
        return False
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    head = body.lstrip()[:512].lower()
    if head.startswith("<!doctype") or head.startswith("<html"):
        return True
    if head.startswith("{") or head.startswith("["):
        return False
    return has_challenge_markers(body[:4096])


@dataclass
class RetryPolicy:
    """Bounded exponential backoff: delays of base, 2*base, 4*base, ..."""

    max_retries: int = 3
    base_delay: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number attempt (0-based)."""
        return self.base_delay * (2**attempt)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run an async callable, retrying on failure with exponential backoff.

    Bot-defense blocks are not retried: hammering a challenge page only
    makes the block last longer.

    Args:
        fn: Zero-argument coroutine function
        policy: Retry policy (defaults to 3 retries starting at 2 s)
        label: Name used in log messages
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        Whatever fn returns

    Raises:
        The last exception raised by fn once retries are exhausted
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return await fn()
        except BlockedResponseError:
            raise
        except Exception as e:
            if attempt >= policy.max_retries:
                logger.error(f"[{label}] failed after {attempt + 1} attempts: {e}")
                raise
            wait = policy.delay_for(attempt)
            logger.warning(
                f"[{label}] attempt {attempt + 1} failed: {e}. Retrying in {wait:.0f}s..."
            )
            await sleep(wait)
            attempt += 1


class JitteredDelay:
    """
    Random pause drawn uniformly from [min_seconds, max_seconds].

    Awaited between successive calls to the same store (pages, keywords,
    categories) so request timing does not look mechanical.
    """

    def __init__(
        self,
        min_seconds: float = 1.0,
        max_seconds: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_seconds < min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self._sleep = sleep

    def next_delay(self) -> float:
        return random.uniform(self.min_seconds, self.max_seconds)

    async def __call__(self) -> float:
        """Sleep for a random interval and return how long it was."""
        seconds = self.next_delay()
        if seconds > 0:
            await self._sleep(seconds)
        return seconds
