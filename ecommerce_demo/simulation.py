"""Simulated page loads, order processing and fabricated shop data."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from faker import Faker

from .metrics import INVENTORY_CATEGORIES, ShopMetrics

HOMEPAGE_MS = (200, 1500)
PRODUCTS_MS = (300, 2000)
DEFAULT_PAGE_MS = (100, 2000)
ORDER_PROCESSING_MS = (200, 1200)

PAYMENT_FAILURE_RATE = 0.1
PRODUCTS_PER_PAGE = 20

INVENTORY_RANGE = (100, 1099)
ACTIVE_USERS_RANGE = (50, 549)

# Faker ships no commerce provider
DEPARTMENTS = (
    "Books", "Electronics", "Clothing", "Home", "Garden", "Sports",
    "Toys", "Beauty", "Grocery", "Automotive", "Music", "Health",
)
ADJECTIVES = (
    "Small", "Ergonomic", "Rustic", "Intelligent", "Gorgeous", "Incredible",
    "Practical", "Sleek", "Handcrafted", "Refined", "Awesome", "Licensed",
)
MATERIALS = (
    "Steel", "Wooden", "Concrete", "Plastic", "Cotton", "Granite",
    "Rubber", "Metal", "Soft", "Fresh", "Frozen", "Bronze",
)
NOUNS = (
    "Chair", "Car", "Computer", "Keyboard", "Mouse", "Bike",
    "Ball", "Gloves", "Pants", "Shirt", "Table", "Shoes", "Hat", "Towels",
)

Sleep = Callable[[float], Awaitable[Any]]


class RandomSource(Protocol):
    """What the simulation draws from; ``random.Random`` fits."""

    def random(self) -> float: ...

    def uniform(self, a: float, b: float) -> float: ...

    def randint(self, a: int, b: int) -> int: ...


class WorkUnit:
    """Random-latency stand-in for rendering a page or processing an order."""

    def __init__(self, metrics: ShopMetrics, rng: Optional[RandomSource] = None, sleep: Sleep = asyncio.sleep):
        self.metrics = metrics
        self.rng = rng if rng is not None else random.Random()
        self.sleep = sleep

    async def page_load(self, page_type: str, span_ms: Tuple[int, int] = DEFAULT_PAGE_MS) -> float:
        load_ms = self.rng.uniform(*span_ms)
        with self.metrics.page_load_timer(page_type):
            await self.sleep(load_ms / 1000.0)
        self.metrics.record_page_load(page_type, "success")
        return load_ms

    async def process_order(self) -> float:
        processing_ms = self.rng.uniform(*ORDER_PROCESSING_MS)
        await self.sleep(processing_ms / 1000.0)
        return processing_ms

    def payment_succeeds(self) -> bool:
        return self.rng.random() > PAYMENT_FAILURE_RATE


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: float
    category: str
    description: str
    in_stock: bool

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category,
            "description": self.description,
            "inStock": self.in_stock,
        }


def fake_product(fake: Faker) -> Product:
    name = " ".join(
        (fake.random_element(ADJECTIVES), fake.random_element(MATERIALS), fake.random_element(NOUNS))
    )
    return Product(
        id=fake.uuid4(),
        name=name,
        price=round(fake.pyfloat(min_value=1, max_value=1000, right_digits=2), 2),
        category=fake.random_element(DEPARTMENTS),
        description=fake.sentence(nb_words=14),
        in_stock=fake.pybool(),
    )


def fake_products(fake: Faker, count: int = PRODUCTS_PER_PAGE) -> List[Product]:
    return [fake_product(fake) for _ in range(count)]


def fake_customer(fake: Faker) -> Dict[str, str]:
    return {
        "name": fake.name(),
        "email": fake.email(),
        "address": fake.street_address(),
    }


def order_total(items: Sequence[Dict[str, Any]]) -> float:
    """Sum of price * quantity; malformed items raise."""
    return sum(item["price"] * item["quantity"] for item in items)


def first_category(items: Sequence[Dict[str, Any]]) -> str:
    first = items[0] if items else None
    if isinstance(first, dict) and first.get("category"):
        return str(first["category"])
    return "unknown"


def seed_inventory(metrics: ShopMetrics, rng: RandomSource) -> None:
    for category in INVENTORY_CATEGORIES:
        metrics.set_inventory(category, rng.randint(*INVENTORY_RANGE))


def refresh_active_users(metrics: ShopMetrics, rng: RandomSource) -> int:
    users = rng.randint(*ACTIVE_USERS_RANGE)
    metrics.set_active_users(users)
    return users


async def active_users_loop(metrics: ShopMetrics, rng: RandomSource, interval: float, sleep: Sleep = asyncio.sleep) -> None:
    while True:
        await sleep(interval)
        refresh_active_users(metrics, rng)
