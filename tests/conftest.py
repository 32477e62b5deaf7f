from __future__ import annotations

import json
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def catalogue_seed(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "catalogue.json").read_text(encoding="utf-8"))


@pytest.fixture
def express_order_script(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "express_order.json").read_text(encoding="utf-8"))
