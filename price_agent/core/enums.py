"""Enums for stores, categories and ingestion run states."""

from enum import Enum


class StoreSlug(str, Enum):
    """Retail chains the pipeline knows how to scrape."""

    PYATEROCHKA = "pyaterochka"
    MAGNIT = "magnit"
    LENTA = "lenta"
    PEREKRESTOK = "perekrestok"
    VKUSVILL = "vkusvill"


class CategorySlug(str, Enum):
    """Canonical product categories."""

    DAIRY = "dairy"
    BREAD = "bread"
    EGGS = "eggs"
    BAKALEYA = "bakaleya"
    FRUITS_VEGETABLES = "fruits-vegetables"
    MEAT_POULTRY = "meat-poultry"
    FISH_SEAFOOD = "fish-seafood"
    DRINKS = "drinks"
    FROZEN = "frozen"
    CONFECTIONERY = "confectionery"


class RunState(str, Enum):
    """Lifecycle of a single store ingestion run."""

    IDLE = "idle"
    SCRAPING = "scraping"
    PERSISTING = "persisting"
    INVALIDATING = "invalidating"
    DONE = "done"
    ERRORED = "errored"
