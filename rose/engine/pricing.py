"""Volume discounts, delivery costs and FCFA formatting."""

from __future__ import annotations

import unicodedata

# (minimum quantity, rate), highest threshold first.
VOLUME_DISCOUNT_TIERS: tuple[tuple[int, float], ...] = (
    (4, 0.20),
    (3, 0.15),
    (2, 0.10),
)

DELIVERY_ZONES: dict[str, int] = {
    "dakar": 0,
    "abidjan": 2500,
    "thies": 3000,
    "saint-louis": 3000,
    "kaolack": 3000,
    "ziguinchor": 3000,
    "touba": 3000,
    "mbour": 3000,
    "pikine": 3000,
    "guediawaye": 3000,
    "rufisque": 3000,
}
DEFAULT_DELIVERY_COST = 2500


def discount_rate(quantity: int) -> float:
    for threshold, rate in VOLUME_DISCOUNT_TIERS:
        if quantity >= threshold:
            return rate
    return 0.0


def volume_discount(quantity: int, unit_price: int) -> int:
    """Discount in FCFA on ``quantity`` units; non-decreasing in quantity."""

    if quantity <= 0 or unit_price <= 0:
        return 0
    return round(unit_price * quantity * discount_rate(quantity))


def _city_key(city: str) -> str:
    folded = unicodedata.normalize("NFKD", city.strip().lower())
    return "".join(char for char in folded if not unicodedata.combining(char)).replace(" ", "-")


def delivery_cost(city: str) -> int:
    return DELIVERY_ZONES.get(_city_key(city), DEFAULT_DELIVERY_COST)


def format_fcfa(amount: int) -> str:
    """``28000`` -> ``"28 000 FCFA"``."""

    return f"{amount:,}".replace(",", " ") + " FCFA"
