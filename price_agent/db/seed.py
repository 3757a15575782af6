"""
Catalog Seed Data
=================

Stores, categories and the canonical product list (50 common grocery items
for Saint Petersburg stores) with the aliases store listings are known to use.
Seeding is idempotent: existing rows are left untouched.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from price_agent.db.models import CategoryDB, ProductAliasDB, ProductDB, StoreDB

logger = logging.getLogger(__name__)

# (name, slug, website_url)
STORES: list[tuple[str, str, str]] = [
    ("Пятёрочка", "pyaterochka", "https://5ka.ru"),
    ("Магнит", "magnit", "https://magnit.ru"),
    ("Лента", "lenta", "https://lenta.com"),
    ("Перекрёсток", "perekrestok", "https://www.perekrestok.ru"),
    ("ВкусВилл", "vkusvill", "https://vkusvill.ru"),
]

# (name, slug)
CATEGORIES: list[tuple[str, str]] = [
    ("Молочные продукты", "dairy"),
    ("Хлеб и выпечка", "bread"),
    ("Яйца", "eggs"),
    ("Бакалея", "bakaleya"),
    ("Фрукты и овощи", "fruits-vegetables"),
    ("Мясо и птица", "meat-poultry"),
    ("Рыба и морепродукты", "fish-seafood"),
    ("Напитки", "drinks"),
    ("Замороженные продукты", "frozen"),
    ("Кондитерские изделия", "confectionery"),
]

# (name, unit, category slug)
PRODUCTS: list[tuple[str, str, str]] = [
    # Dairy
    ("Молоко 3.2%", "л", "dairy"),
    ("Молоко 2.5%", "л", "dairy"),
    ("Кефир 3.2%", "л", "dairy"),
    ("Творог 5%", "кг", "dairy"),
    ("Сметана 20%", "кг", "dairy"),
    ("Масло сливочное 82.5%", "кг", "dairy"),
    ("Йогурт натуральный", "кг", "dairy"),
    ("Ряженка 4%", "л", "dairy"),
    ("Сыр Российский", "кг", "dairy"),
    ("Сыр Гауда", "кг", "dairy"),
    # Bread
    ("Хлеб белый нарезной", "шт", "bread"),
    ("Хлеб чёрный Бородинский", "шт", "bread"),
    ("Батон нарезной", "шт", "bread"),
    ("Хлеб цельнозерновой", "шт", "bread"),
    ("Булочки для гамбургеров", "уп", "bread"),
    # Eggs
    ("Яйца куриные С1", "уп", "eggs"),
    ("Яйца куриные С0", "уп", "eggs"),
    # Dry goods
    ("Рис длиннозёрный пропаренный", "кг", "bakaleya"),
    ("Гречка ядрица", "кг", "bakaleya"),
    ("Овсяные хлопья Геркулес", "кг", "bakaleya"),
    ("Макароны Спагетти", "кг", "bakaleya"),
    ("Макароны Пенне", "кг", "bakaleya"),
    ("Сахар-песок", "кг", "bakaleya"),
    ("Соль поваренная", "кг", "bakaleya"),
    ("Масло подсолнечное рафинированное", "л", "bakaleya"),
    ("Масло оливковое Extra Virgin", "л", "bakaleya"),
    ("Мука пшеничная в/с", "кг", "bakaleya"),
    # Fruits & vegetables
    ("Яблоки Голден", "кг", "fruits-vegetables"),
    ("Бананы", "кг", "fruits-vegetables"),
    ("Помидоры", "кг", "fruits-vegetables"),
    ("Огурцы", "кг", "fruits-vegetables"),
    ("Картофель", "кг", "fruits-vegetables"),
    ("Морковь", "кг", "fruits-vegetables"),
    ("Лук репчатый", "кг", "fruits-vegetables"),
    ("Капуста белокочанная", "кг", "fruits-vegetables"),
    # Meat
    ("Куриное филе", "кг", "meat-poultry"),
    ("Куриные бёдра", "кг", "meat-poultry"),
    ("Свинина (шея)", "кг", "meat-poultry"),
    ("Фарш говяжий", "кг", "meat-poultry"),
    # Fish
    ("Сёмга с/с", "кг", "fish-seafood"),
    ("Минтай мороженый", "кг", "fish-seafood"),
    ("Сельдь солёная", "кг", "fish-seafood"),
    # Drinks
    ("Вода питьевая негазированная 1.5 л", "шт", "drinks"),
    ("Сок апельсиновый 1 л", "шт", "drinks"),
    ("Кофе молотый", "кг", "drinks"),
    ("Чай чёрный листовой", "кг", "drinks"),
    # Frozen
    ("Пельмени", "кг", "frozen"),
    ("Мороженое пломбир", "кг", "frozen"),
    # Confectionery
    ("Шоколад тёмный 70%", "шт", "confectionery"),
    ("Печенье овсяное", "кг", "confectionery"),
]

# (product name, alias)
ALIASES: list[tuple[str, str]] = [
    ("Молоко 3.2%", "Молоко цельное 3.2%"),
    ("Молоко 3.2%", "Молоко пастеризованное 3.2%"),
    ("Молоко 2.5%", "Молоко пастеризованное 2.5%"),
    ("Яйца куриные С1", "Яйца С1 10шт"),
    ("Яйца куриные С1", "Яйцо куриное С1"),
    ("Яйца куриные С0", "Яйца отборные С0"),
    ("Масло сливочное 82.5%", "Масло крестьянское"),
    ("Масло сливочное 82.5%", "Масло традиционное 82.5%"),
    ("Хлеб белый нарезной", "Хлеб пшеничный нарезной"),
    ("Хлеб чёрный Бородинский", "Хлеб Бородинский"),
    ("Куриное филе", "Филе куриное охлаждённое"),
    ("Куриное филе", "Грудка куриная"),
    ("Фарш говяжий", "Фарш говядина"),
    ("Сёмга с/с", "Лосось слабосолёный"),
    ("Сёмга с/с", "Сёмга слабосолёная"),
    ("Кофе молотый", "Кофе натуральный молотый"),
    ("Чай чёрный листовой", "Чай чёрный крупнолистовой"),
]


def seed_catalog(session: Session) -> dict[str, int]:
    """
    Insert stores, categories, products and aliases that are missing.

    Args:
        session: Open database session; committed on success

    Returns:
        Number of newly inserted rows per table
    """
    counts = {"stores": 0, "categories": 0, "products": 0, "aliases": 0}

    existing_stores = set(session.execute(select(StoreDB.slug)).scalars().all())
    for name, slug, website_url in STORES:
        if slug not in existing_stores:
            session.add(StoreDB(name=name, slug=slug, website_url=website_url))
            counts["stores"] += 1

    categories = {c.slug: c for c in session.execute(select(CategoryDB)).scalars().all()}
    for name, slug in CATEGORIES:
        if slug not in categories:
            categories[slug] = CategoryDB(name=name, slug=slug)
            session.add(categories[slug])
            counts["categories"] += 1
    session.flush()

    products = {p.name: p for p in session.execute(select(ProductDB)).scalars().all()}
    for name, unit, category_slug in PRODUCTS:
        if name not in products:
            products[name] = ProductDB(name=name, unit=unit, category_id=categories[category_slug].id)
            session.add(products[name])
            counts["products"] += 1
    session.flush()

    existing_aliases = {
        (product_id, alias)
        for product_id, alias in session.execute(select(ProductAliasDB.product_id, ProductAliasDB.alias))
    }
    for product_name, alias in ALIASES:
        product_id = products[product_name].id
        if (product_id, alias) not in existing_aliases:
            session.add(ProductAliasDB(product_id=product_id, alias=alias))
            counts["aliases"] += 1

    session.commit()
    logger.info(f"Catalog seeded: {counts}")
    return counts
