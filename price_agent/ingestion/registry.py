"""
Source Registry Module
======================

Manages store source configurations loaded from YAML. Sources define which
retailer endpoints are scraped, which adapter handles them, and the
per-source request pacing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass
class DelayConfig:
    """Jittered pause between consecutive requests to one source."""

    min_seconds: float = 1.0
    max_seconds: float = 3.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DelayConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        min_seconds = float(data.get("min_seconds", 1.0))
        max_seconds = float(data.get("max_seconds", max(3.0, min_seconds)))
        if max_seconds < min_seconds:
            raise ValueError(f"Delay max_seconds ({max_seconds}) is below min_seconds ({min_seconds})")
        return cls(min_seconds=min_seconds, max_seconds=max_seconds)


@dataclass
class SourceConfig:
    """Configuration for a single store source."""

    slug: str
    name: str
    base_url: str
    adapter: str
    enabled: bool = True
    description: str = ""
    delay: DelayConfig = field(default_factory=DelayConfig)
    custom_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], default_delay: DelayConfig | None = None
    ) -> SourceConfig:
        """Create from dictionary."""
        delay_data = data.get("delay")
        if delay_data:
            delay = DelayConfig.from_dict(delay_data)
        elif default_delay:
            delay = default_delay
        else:
            delay = DelayConfig()

        slug = data["slug"]
        return cls(
            slug=slug,
            name=data.get("name", slug),
            base_url=data.get("base_url", "").rstrip("/"),
            adapter=data.get("adapter", slug),
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
            delay=delay,
            custom_config=data.get("custom_config") or {},
        )


@dataclass
class GlobalConfig:
    """Global HTTP and parsing settings shared by every adapter."""

    default_delay: DelayConfig = field(default_factory=DelayConfig)
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 15.0
    max_retries: int = 3
    backoff_base: float = 2.0
    max_pages: int = 10
    price_sanity_cutoff: float = 50000.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            default_delay=DelayConfig.from_dict(data.get("delay")),
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            request_timeout=float(data.get("request_timeout", 15.0)),
            max_retries=int(data.get("max_retries", 3)),
            backoff_base=float(data.get("backoff_base", 2.0)),
            max_pages=int(data.get("max_pages", 10)),
            price_sanity_cutoff=float(data.get("price_sanity_cutoff", 50000.0)),
        )


@dataclass
class MatchingConfig:
    """Configuration for the product name matcher."""

    threshold: float = 0.65

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MatchingConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        threshold = float(data.get("threshold", 0.65))
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Matching threshold must be within [0, 1], got {threshold}")
        return cls(threshold=threshold)


@dataclass
class PersistenceConfig:
    """Configuration for price persistence and cache invalidation."""

    stale_push_back_hours: float = 168.0
    max_age_hours: float | None = 24.0
    cache_prefix: str = "prices"

    @property
    def stale_push_back(self) -> timedelta:
        return timedelta(hours=self.stale_push_back_hours)

    @property
    def max_age(self) -> timedelta | None:
        if self.max_age_hours is None:
            return None
        return timedelta(hours=self.max_age_hours)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PersistenceConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        max_age = data.get("max_age_hours", 24.0)
        return cls(
            stale_push_back_hours=float(data.get("stale_push_back_hours", 168.0)),
            max_age_hours=float(max_age) if max_age is not None else None,
            cache_prefix=data.get("cache_prefix", "prices"),
        )


@dataclass
class ScheduleConfig:
    """Configuration for recurring sweeps."""

    interval_hours: float = 12.0
    cron_hours: list[int] = field(default_factory=lambda: [0, 12])
    in_process: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ScheduleConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            interval_hours=float(data.get("interval_hours", 12.0)),
            cron_hours=[int(h) for h in data.get("cron_hours", [0, 12])],
            in_process=bool(data.get("in_process", False)),
        )


class SourceRegistry:
    """
    Registry for managing store source configurations.

    Loads source definitions from a YAML file and provides methods
    to query and manage them. Source order in the file is the sweep order.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._matching: MatchingConfig = MatchingConfig()
        self._persistence: PersistenceConfig = PersistenceConfig()
        self._schedule: ScheduleConfig = ScheduleConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def matching(self) -> MatchingConfig:
        """Get matcher configuration."""
        return self._matching

    @property
    def persistence(self) -> PersistenceConfig:
        """Get persistence configuration."""
        return self._persistence

    @property
    def schedule(self) -> ScheduleConfig:
        """Get schedule configuration."""
        return self._schedule

    @property
    def config_path(self) -> Path | None:
        """Path of the loaded YAML file, if any."""
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self.load_dict(data)

    def load_dict(self, data: dict[str, Any]) -> None:
        """
        Load configuration from an already parsed mapping.

        Args:
            data: Mapping with the same layout as sources.yaml
        """
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._matching = MatchingConfig.from_dict(data.get("matching"))
        self._persistence = PersistenceConfig.from_dict(data.get("persistence"))
        self._schedule = ScheduleConfig.from_dict(data.get("schedule"))

        self._sources.clear()
        for source_data in data.get("sources", []):
            source = SourceConfig.from_dict(source_data, self._global_config.default_delay)
            self._sources[source.slug] = source

    def register_source(self, source: SourceConfig) -> None:
        """Add or replace a source."""
        self._sources[source.slug] = source

    def get_source(self, slug: str) -> SourceConfig | None:
        """
        Get a source configuration by slug.

        Args:
            slug: Store slug

        Returns:
            SourceConfig if found, None otherwise
        """
        return self._sources.get(slug)

    def list_sources(self) -> list[SourceConfig]:
        """
        Get all registered sources.

        Returns:
            List of all source configurations
        """
        return list(self._sources.values())

    def list_enabled_sources(self) -> list[SourceConfig]:
        """
        Get all enabled sources.

        Returns:
            List of enabled source configurations
        """
        return [s for s in self._sources.values() if s.enabled]


# Global registry instance
_default_registry: SourceRegistry | None = None


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path specified in SOURCES_CONFIG_PATH
    environment variable, or falls back to config/sources.yaml.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SourceRegistry()

        config_path = os.environ.get("SOURCES_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            # Default to config/sources.yaml relative to project root
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "sources.yaml"

        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
