"""Tests for retry, pacing and block-page detection."""

import pytest

from price_agent.ingestion.errors import BlockedResponseError, TransientFetchError
from price_agent.ingestion.resilience import (
    JitteredDelay,
    RetryPolicy,
    has_challenge_markers,
    is_html_block_page,
    with_retry,
)


class FakeSleep:
    """Records requested sleeps instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestRetryPolicy:
    """Tests for backoff delays."""

    def test_doubling(self) -> None:
        """Test delays double from the base."""
        policy = RetryPolicy(max_retries=3, base_delay=2.0)
        assert [policy.delay_for(i) for i in range(3)] == [2.0, 4.0, 8.0]


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        """Test that a successful call is not retried."""
        sleep = FakeSleep()

        async def ok() -> str:
            return "done"

        assert await with_retry(ok, sleep=sleep) == "done"
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self) -> None:
        """Test retry until success with 2s, 4s backoff."""
        sleep = FakeSleep()
        attempts = []

        async def flaky() -> list[int]:
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientFetchError("HTTP 503")
            return [1, 2]

        assert await with_retry(flaky, RetryPolicy(3, 2.0), sleep=sleep) == [1, 2]
        assert len(attempts) == 3
        assert sleep.calls == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self) -> None:
        """Test that the last error surfaces after max_retries."""
        sleep = FakeSleep()
        attempts = []

        async def always_fails() -> None:
            attempts.append(1)
            raise TransientFetchError(f"timeout #{len(attempts)}")

        with pytest.raises(TransientFetchError, match="timeout #4"):
            await with_retry(always_fails, RetryPolicy(3, 2.0), sleep=sleep)

        assert len(attempts) == 4
        assert sleep.calls == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_blocked_not_retried(self) -> None:
        """Test that bot-defense blocks fail immediately."""
        sleep = FakeSleep()
        attempts = []

        async def blocked() -> None:
            attempts.append(1)
            raise BlockedResponseError("captcha")

        with pytest.raises(BlockedResponseError):
            await with_retry(blocked, sleep=sleep)

        assert len(attempts) == 1
        assert sleep.calls == []


class TestJitteredDelay:
    """Tests for JitteredDelay."""

    @pytest.mark.asyncio
    async def test_within_bounds(self) -> None:
        """Test that delays stay inside the window."""
        sleep = FakeSleep()
        delay = JitteredDelay(1.0, 3.0, sleep=sleep)

        for _ in range(20):
            await delay()

        assert len(sleep.calls) == 20
        assert all(1.0 <= s <= 3.0 for s in sleep.calls)

    @pytest.mark.asyncio
    async def test_zero_window_does_not_sleep(self) -> None:
        """Test that a zero delay skips sleeping."""
        sleep = FakeSleep()
        assert await JitteredDelay(0, 0, sleep=sleep)() == 0
        assert sleep.calls == []

    def test_invalid_window(self) -> None:
        """Test that max below min is rejected."""
        with pytest.raises(ValueError):
            JitteredDelay(3.0, 1.0)


class TestBlockPageDetection:
    """Tests for is_html_block_page."""

    def test_html_document(self) -> None:
        """Test doctype and html openings."""
        assert is_html_block_page("<!DOCTYPE html><html><body>Hi</body></html>")
        assert is_html_block_page("  \n<html lang='ru'>")
        assert is_html_block_page(b"<!doctype html>")

    def test_json(self) -> None:
        """Test that JSON bodies are never block pages."""
        assert not is_html_block_page('{"items": [], "note": "captcha-free"}')
        assert not is_html_block_page("[]")

    def test_challenge_markers(self) -> None:
        """Test fragments of challenge pages without an html opening."""
        assert is_html_block_page("<div>Just a moment...</div>")
        assert is_html_block_page("Доступ ограничен: подозрительная активность")
        assert has_challenge_markers("Please complete the CAPTCHA")

    def test_empty(self) -> None:
        """Test empty bodies."""
        assert not is_html_block_page(None)
        assert not is_html_block_page("")
