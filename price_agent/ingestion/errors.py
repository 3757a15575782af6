"""Exception types raised by the ingestion pipeline."""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for ingestion failures."""


class FetchError(IngestionError):
    """A request to a store failed or returned something unusable."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Timeout, connection failure, 429 or 5xx. Worth retrying."""


class BlockedResponseError(FetchError):
    """The store answered with a bot-defense or challenge page instead of data."""


class UnknownStoreError(IngestionError):
    """The store slug is not configured or has no row in the stores table."""

    def __init__(self, slug: str, reason: str = "not configured"):
        super().__init__(f"Unknown store '{slug}': {reason}")
        self.slug = slug


class SweepInProgressError(IngestionError):
    """A sweep was requested while another one is still running."""
