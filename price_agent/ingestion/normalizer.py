"""
Data Normalizer Module
======================

Cleans raw store data before matching and persistence:
product names, price strings, minor-unit prices and store categories.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from price_agent.core.enums import CategorySlug

# Quantity plus unit, optionally followed by a second quantity for multipacks:
# "1 кг", "500 г", "1.5 л", "930мл", "12x100мл", "10 шт"
_UNITS = r"кг|мл|г|л|шт|уп|пач|пак|kg|ml|g|l|pcs|x|×"
_SECOND_UNITS = r"кг|мл|г|л|kg|ml|g|l"
_QUANTITY_RE = re.compile(
    rf"\d+[.,]?\d*\s*(?:{_UNITS})(?![а-яёa-z])"
    rf"\s*(?:\d+[.,]?\d*\s*(?:{_SECOND_UNITS})(?![а-яёa-z]))?",
    re.IGNORECASE,
)
_PUNCTUATION_RE = re.compile(r"[^а-яёa-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")

_PRICE_NUMBER_RE = re.compile(r"\d[\d ]*(?:[.,]\d+)?")
_CENT = Decimal("0.01")

# Checked in order; first hit wins
CATEGORY_PATTERNS: list[tuple[re.Pattern[str], CategorySlug]] = [
    (re.compile(r"молоч|dairy|кефир|творог|сметан|сыр|йогурт|ряженк|масло.*(слив|сметан)"), CategorySlug.DAIRY),
    (re.compile(r"хлеб|выпечк|батон|bread|bakery"), CategorySlug.BREAD),
    (re.compile(r"яйц|egg"), CategorySlug.EGGS),
    (re.compile(r"бакал|крупа|макарон|сахар|соль|мука|масло.*(подсолн|олив)|крупы"), CategorySlug.BAKALEYA),
    (
        re.compile(r"фрукт|овощ|fruit|vegetab|картоф|морков|помидор|огурц|лук|капуст|яблок|банан"),
        CategorySlug.FRUITS_VEGETABLES,
    ),
    (re.compile(r"мясо|птиц|курица|свинина|говядин|фарш|meat|poultry|колбас|сосис"), CategorySlug.MEAT_POULTRY),
    (re.compile(r"рыба|морепрод|сёмга|минтай|сельдь|fish|seafood"), CategorySlug.FISH_SEAFOOD),
    (re.compile(r"напитк|вода|сок|кофе|чай|drink|beverage"), CategorySlug.DRINKS),
    (re.compile(r"заморож|frozen|пельмен|мороженое"), CategorySlug.FROZEN),
    (re.compile(r"кондитер|шоколад|печенье|confect|сладк|снек"), CategorySlug.CONFECTIONERY),
]


def _normalize_once(raw: str) -> str:
    text = raw.lower()
    text = _QUANTITY_RE.sub("", text)
    text = _PUNCTUATION_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_name(raw: str | None) -> str:
    """
    Reduce a product name to the form used for fuzzy comparison.

    Lower-cases, drops quantity/unit suffixes, turns punctuation into spaces
    and collapses whitespace. Stripping punctuation can expose a new
    quantity ("3-кг" becomes "3 кг"), so the steps repeat until the output
    is stable. normalize_name(normalize_name(x)) == normalize_name(x).

    Args:
        raw: Product name as shown by the store

    Returns:
        Normalized name, possibly empty
    """
    if not raw:
        return ""
    current = raw
    while True:
        cleaned = _normalize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def parse_price(value: str | int | float | Decimal | None) -> Decimal | None:
    """
    Parse a store price into a Decimal.

    Handles Russian formatting: decimal comma, regular or non-breaking
    spaces as thousands separators, currency sign and per-unit suffixes.

    Examples:
        "89,90 ₽" -> 89.90
        "1 099 ₽" -> 1099
        "179,90 ₽/кг" -> 179.90

    Args:
        value: Price as string or number

    Returns:
        Decimal price, or None if nothing numeric could be read
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (Decimal, int, float)):
        number = str(value)
    else:
        text = str(value).replace("\xa0", " ").replace("\u202f", " ").replace("\u2009", " ")
        match = _PRICE_NUMBER_RE.search(text)
        if not match:
            return None
        number = match.group().replace(" ", "").replace(",", ".")

    try:
        result = Decimal(number)
    except InvalidOperation:
        return None
    # JSON payloads can carry NaN or Infinity
    return result if result.is_finite() else None


def normalize_price_magnitude(price: Decimal | None, cutoff: float | Decimal) -> Decimal | None:
    """
    Undo minor-unit prices.

    Some endpoints report kopecks instead of rubles without saying so. A
    grocery price above the cutoff (about 500x a typical item) is assumed to
    be in kopecks and divided by 100.
    """
    if price is None or not price.is_finite():
        return None
    if price > Decimal(str(cutoff)):
        return (price / 100).quantize(_CENT, rounding=ROUND_HALF_UP)
    return price


def map_category(store_category: str | None) -> str | None:
    """
    Map a store category label to a canonical category slug.

    Unrecognised labels are returned unchanged.
    """
    if not store_category:
        return store_category
    lower = store_category.lower()
    for pattern, slug in CATEGORY_PATTERNS:
        if pattern.search(lower):
            return slug.value
    return store_category
