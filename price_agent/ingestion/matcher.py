"""
Product Matcher Module
======================

Matches free-text store product names to the canonical catalog using
Sørensen–Dice similarity over character bigrams of normalized names.

Matching rules:
- Each canonical product scores as the best of its name and aliases
- The highest-scoring product wins; ties go to the product seen first
  (the catalog is loaded in id order)
- A match is accepted when the score is >= threshold (default 0.65)
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from price_agent.core.schema import CanonicalProduct
from price_agent.ingestion.normalizer import normalize_name
from price_agent.ingestion.registry import MatchingConfig

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.65


def dice_coefficient(first: str, second: str) -> float:
    """
    Sørensen–Dice coefficient over character bigrams.

    Whitespace is ignored. Identical strings score 1.0; strings shorter than
    two characters score 0.0 unless identical.

    Args:
        first: First string
        second: Second string

    Returns:
        Similarity score between 0.0 and 1.0
    """
    first = "".join(first.split())
    second = "".join(second.split())

    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    first_bigrams = Counter(first[i : i + 2] for i in range(len(first) - 1))
    intersection = 0
    for i in range(len(second) - 1):
        bigram = second[i : i + 2]
        if first_bigrams[bigram] > 0:
            first_bigrams[bigram] -= 1
            intersection += 1

    return (2.0 * intersection) / (len(first) + len(second) - 2)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one raw name. Never persisted."""

    raw_name: str
    normalized_name: str
    product_id: int | None = None
    product_name: str | None = None
    score: float = 0.0

    @property
    def matched(self) -> bool:
        return self.product_id is not None


class ProductMatcher:
    """
    Matches store product names against a fixed canonical catalog.

    Normalized candidate strings are computed once at construction, so one
    matcher should be built per ingestion run and reused for every listing.
    """

    def __init__(
        self,
        products: Sequence[CanonicalProduct],
        threshold: float = DEFAULT_THRESHOLD,
        similarity: Callable[[str, str], float] = dice_coefficient,
    ) -> None:
        self.threshold = threshold
        self._similarity = similarity
        self._candidates: list[tuple[CanonicalProduct, list[str]]] = []
        for product in products:
            names = [normalize_name(n) for n in product.match_names]
            names = [n for n in names if n]
            if names:
                self._candidates.append((product, names))

    @classmethod
    def from_config(cls, products: Sequence[CanonicalProduct], config: MatchingConfig) -> ProductMatcher:
        """Create a matcher using registry configuration."""
        return cls(products, threshold=config.threshold)

    @property
    def catalog_size(self) -> int:
        return len(self._candidates)

    def match(self, raw_name: str) -> MatchResult:
        """
        Find the best canonical product for a raw store name.

        Args:
            raw_name: Product name as shown by the store

        Returns:
            MatchResult; product_id is None when nothing reaches the threshold
        """
        normalized = normalize_name(raw_name)
        if not normalized:
            return MatchResult(raw_name=raw_name, normalized_name=normalized)

        best: CanonicalProduct | None = None
        best_score = 0.0
        for product, names in self._candidates:
            score = max(self._similarity(normalized, n) for n in names)
            if score >= self.threshold and (best is None or score > best_score):
                best = product
                best_score = score

        if best is None:
            return MatchResult(raw_name=raw_name, normalized_name=normalized)

        return MatchResult(
            raw_name=raw_name,
            normalized_name=normalized,
            product_id=best.id,
            product_name=best.name,
            score=best_score,
        )

    def batch_match(self, raw_names: Iterable[str]) -> dict[str, MatchResult]:
        """Match several names; duplicates collapse to one entry."""
        return {name: self.match(name) for name in raw_names}


def match_name(
    raw_name: str,
    products: Sequence[CanonicalProduct],
    threshold: float = DEFAULT_THRESHOLD,
) -> MatchResult:
    """One-off match without keeping a matcher around."""
    return ProductMatcher(products, threshold=threshold).match(raw_name)
