"""Dataclasses for catalogue records."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class Product:
    """Sellable card game. Prices are whole FCFA."""

    id: str
    name: str
    price: int
    description: str = ""
    stock_quantity: int = 0
    status: str = "active"
    category: str = ""
    game_rules: str = ""
    compare_at_price: int | None = None
    images: list[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0


@dataclass(slots=True)
class Testimonial:
    customer_name: str
    content: str
    rating: int = 5
    product_id: str | None = None
    location: str = ""


@dataclass(slots=True)
class KnowledgeEntry:
    """FAQ-style answer, optionally scoped to one product."""

    id: str
    question: str
    answer: str
    category: str = "general"
    tags: list[str] = field(default_factory=list)
    product_id: str | None = None


@dataclass(slots=True)
class Customer:
    """Returning buyer, looked up by normalised phone number."""

    phone: str
    first_name: str
    last_name: str
    city: str
    address: str
