"""One-time catalogue seeding.

If the catalogue database holds no products, load the JSON seed bundled
with the repository (``data/catalogue_seed.json`` by default). This keeps a
fresh deployment usable while letting operators replace the data later.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from rose.catalogue.models import KnowledgeEntry, Product, Testimonial
from rose.catalogue.store import SQLiteCatalogueStore

logger = logging.getLogger("rose.init")


def load_seed(path: Path) -> dict[str, list[dict[str, Any]]]:
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict) or not isinstance(data.get("products"), list):
        raise ValueError(f"{path} must be a JSON object with a 'products' array")
    return data


def seed_catalogue(store: SQLiteCatalogueStore, data: dict[str, list[dict[str, Any]]]) -> int:
    """Upsert every record of ``data`` and return the number of products written."""

    for record in data.get("products", []):
        store.upsert_product(
            Product(
                id=str(record["id"]),
                name=record["name"],
                price=int(record["price"]),
                description=record.get("description", ""),
                stock_quantity=int(record.get("stock_quantity", 0)),
                status=record.get("status", "active"),
                category=record.get("category", ""),
                game_rules=record.get("game_rules", ""),
                compare_at_price=record.get("compare_at_price"),
                images=list(record.get("images", [])),
            )
        )
    for record in data.get("testimonials", []):
        store.add_testimonial(
            Testimonial(
                customer_name=record["customer_name"],
                content=record["content"],
                rating=int(record.get("rating", 5)),
                product_id=record.get("product_id"),
                location=record.get("location", ""),
            )
        )
    for record in data.get("knowledge", []):
        store.upsert_knowledge(
            KnowledgeEntry(
                id=str(record["id"]),
                question=record["question"],
                answer=record["answer"],
                category=record.get("category", "general"),
                tags=list(record.get("tags", [])),
                product_id=record.get("product_id"),
            )
        )
    return len(data.get("products", []))


def seed_on_startup(store: SQLiteCatalogueStore, seed_path: Path | None) -> int:
    """Load ``seed_path`` into ``store`` when the catalogue is empty."""

    if seed_path is None:
        return 0
    if store.count_products():
        logger.debug("Catalogue already populated; skipping seed")
        return 0
    if not seed_path.exists():
        logger.warning("Catalogue is empty and seed file %s is missing", seed_path)
        return 0

    count = seed_catalogue(store, load_seed(seed_path))
    logger.info("Seeded %d products from %s", count, seed_path)
    return count
