#!/usr/bin/env python
"""Export the FastAPI OpenAPI schema to openapi.yaml at the repository root."""

from __future__ import annotations

import argparse
from pathlib import Path

import yaml

from rose.core.config import Settings
from rose.main import create_app


def parse_args() -> argparse.Namespace:
    repo_root = Path(__file__).resolve().parent.parent
    parser = argparse.ArgumentParser(description="Export the chat API OpenAPI schema")
    parser.add_argument(
        "--output",
        type=Path,
        default=repo_root / "openapi.yaml",
        help="Destination YAML file.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    # Export against a throwaway catalogue so no real database is touched.
    scratch = args.output.parent / ".openapi-export"
    settings = Settings(
        catalogue_db_path=scratch / "catalogue.db",
        sessions_db_path=scratch / "sessions.db",
        catalogue_seed_path=None,
    )
    schema = create_app(settings).openapi()
    args.output.write_text(yaml.safe_dump(schema, sort_keys=False, allow_unicode=True), encoding="utf-8")
    print(f"Wrote {args.output}")


if __name__ == "__main__":
    main()
