"""Generate sample documents for seeding test collections."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any

DATA_TYPES = ("users", "products", "orders", "generic")
MAX_DOCUMENTS = 10_000

_CATEGORIES = ("electronics", "clothing", "food", "books")
_ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")


def _user(index: int, now: datetime, rng: random.Random) -> dict[str, Any]:
    return {
        "id": index,
        "name": f"User {index}",
        "email": f"user{index}@example.com",
        "age": rng.randint(18, 67),
        "createdAt": now,
        "isActive": rng.random() > 0.3,
    }


def _product(index: int, now: datetime, rng: random.Random) -> dict[str, Any]:
    return {
        "id": index,
        "name": f"Product {index}",
        "price": rng.randint(1000, 10999),
        "category": rng.choice(_CATEGORIES),
        "stock": rng.randint(0, 99),
        "createdAt": now,
    }


def _order(index: int, now: datetime, rng: random.Random) -> dict[str, Any]:
    return {
        "id": index,
        "customerId": rng.randint(1, 100),
        "totalAmount": rng.randint(10000, 109999),
        "status": rng.choice(_ORDER_STATUSES),
        "items": [
            {
                "productId": rng.randint(1, 100),
                "quantity": rng.randint(1, 10),
                "price": rng.randint(1000, 10999),
            }
            for _ in range(rng.randint(1, 5))
        ],
        "createdAt": now,
    }


def _generic(index: int, now: datetime, rng: random.Random) -> dict[str, Any]:
    return {
        "id": index,
        "title": f"Item {index}",
        "description": f"This is item number {index}.",
        "value": rng.random() * 1000,
        "createdAt": now,
    }


_BUILDERS = {
    "users": _user,
    "products": _product,
    "orders": _order,
}


def generate_documents(data_type: str, count: int, *, seed: int | None = None) -> list[dict[str, Any]]:
    """Return ``count`` documents of ``data_type``.

    Unknown types produce generic documents. ``count`` must be within
    ``1..MAX_DOCUMENTS``.
    """

    if not 1 <= count <= MAX_DOCUMENTS:
        raise ValueError(f"count must be between 1 and {MAX_DOCUMENTS}")
    rng = random.Random(seed)
    now = datetime.now(timezone.utc)
    builder = _BUILDERS.get(data_type, _generic)
    return [builder(index, now, rng) for index in range(1, count + 1)]
