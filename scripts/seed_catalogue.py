#!/usr/bin/env python
"""Load a JSON catalogue export into the catalogue SQLite database."""

from __future__ import annotations

import argparse
from pathlib import Path

from rose.catalogue.store import SQLiteCatalogueStore
from rose.core.config import get_settings
from rose.init_data import load_seed, seed_catalogue


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Seed products, testimonials and FAQ entries")
    parser.add_argument(
        "--input-file",
        type=Path,
        default=settings.catalogue_seed_path,
        help="JSON object with 'products', 'testimonials' and 'knowledge' arrays.",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=settings.catalogue_db_path,
        help="Catalogue SQLite file to write.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the input without writing to the database.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.input_file is None or not args.input_file.exists():
        raise SystemExit(f"Seed file not found: {args.input_file}")

    data = load_seed(args.input_file)
    if args.dry_run:
        print(
            f"{len(data['products'])} products, {len(data.get('testimonials', []))} testimonials, "
            f"{len(data.get('knowledge', []))} knowledge entries (dry run)"
        )
        return

    store = SQLiteCatalogueStore(args.db_path)
    count = seed_catalogue(store, data)
    print(f"Seeded {count} products into {args.db_path} ({store.count_products()} total)")


if __name__ == "__main__":
    main()
