"""Pytest integration fixtures: an app wired to throwaway databases."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from rose.core.config import Settings
from rose.main import create_app


@pytest.fixture()
def settings(tmp_path, fixtures_dir) -> Settings:
    return Settings(
        environment="test",
        catalogue_db_path=tmp_path / "catalogue.db",
        sessions_db_path=tmp_path / "sessions.db",
        catalogue_seed_path=fixtures_dir / "catalogue.json",
        openai_api_key=None,
        anthropic_api_key=None,
        typing_delay_max_ms=0,
        store_retry_backoff_seconds=0.0,
        rate_limit_enabled=False,
    )


@pytest.fixture()
def client(settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings), raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture()
def chat(client):
    """Post one widget message; extra keyword arguments are sent as-is."""

    def send(session_id: str, message: str, product_id: str | None = "couples", **extra):
        payload = {"sessionId": session_id, "productId": product_id, "message": message, **extra}
        return client.post("/chat", json=payload)

    return send
