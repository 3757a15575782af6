"""
Price Agent Ingestion Pipeline
==============================

Scrapes grocery prices from retailer sources and reconciles them with the
canonical product catalog.

Pipeline Stages:
1. Fetch - Adapters pull raw listings through the resilient Crawler
2. Normalize - Clean names, parse prices, map categories
3. Match - Fuzzy-match listing names to canonical products
4. Persist - Mark the store stale, then upsert matched prices
5. Invalidate - Drop cached price lookups for the store
"""

from price_agent.ingestion.registry import (
    SourceRegistry,
    SourceConfig,
    GlobalConfig,
    get_default_registry,
)
from price_agent.ingestion.errors import (
    IngestionError,
    FetchError,
    TransientFetchError,
    BlockedResponseError,
    UnknownStoreError,
    SweepInProgressError,
)
from price_agent.ingestion.crawler import (
    Crawler,
    FetchResult,
)
from price_agent.ingestion.resilience import (
    RetryPolicy,
    JitteredDelay,
    with_retry,
    is_html_block_page,
)
from price_agent.ingestion.normalizer import (
    normalize_name,
    parse_price,
    map_category,
)
from price_agent.ingestion.matcher import (
    ProductMatcher,
    MatchResult,
    dice_coefficient,
)
from price_agent.ingestion.orchestrator import (
    IngestionOrchestrator,
    RunStats,
    run_sweep,
    summarize,
)
from price_agent.ingestion.scheduler import SweepScheduler

__all__ = [
    # Registry
    "SourceRegistry",
    "SourceConfig",
    "GlobalConfig",
    "get_default_registry",
    # Errors
    "IngestionError",
    "FetchError",
    "TransientFetchError",
    "BlockedResponseError",
    "UnknownStoreError",
    "SweepInProgressError",
    # Crawler
    "Crawler",
    "FetchResult",
    # Resilience
    "RetryPolicy",
    "JitteredDelay",
    "with_retry",
    "is_html_block_page",
    # Normalizer
    "normalize_name",
    "parse_price",
    "map_category",
    # Matcher
    "ProductMatcher",
    "MatchResult",
    "dice_coefficient",
    # Orchestrator
    "IngestionOrchestrator",
    "RunStats",
    "run_sweep",
    "summarize",
    # Scheduler
    "SweepScheduler",
]
