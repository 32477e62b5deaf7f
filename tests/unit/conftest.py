"""Pytest unit test fixtures."""

from __future__ import annotations

from typing import Callable, Sequence

import pytest

from rose.cache.ttl import TTLCache
from rose.catalogue.accessor import CatalogueAccessor
from rose.catalogue.store import SQLiteCatalogueStore
from rose.core.errors import CompletionError
from rose.core.metrics import MetricsCollector
from rose.engine.analyzer import KeywordIntentAnalyzer
from rose.engine.llm import ChatMessage, CompletionClient
from rose.engine.machine import ConversationStateMachine
from rose.engine.payment import PaymentHandoff
from rose.engine.pipeline import ResponsePipeline
from rose.engine.recommendations import RecommendationGenerator
from rose.init_data import seed_catalogue
from rose.sessions.registry import SessionRegistry
from rose.sessions.store import SQLiteSessionStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedCompletionClient(CompletionClient):
    """Returns queued replies in order; an exception instance is raised instead."""

    def __init__(self, name: str, replies: Sequence[str | Exception]) -> None:
        self.name = name
        self._replies = list(replies)
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    async def complete(self, system_prompt, messages, *, temperature, max_tokens) -> str:
        self.calls.append((system_prompt, list(messages)))
        if not self._replies:
            raise CompletionError(f"{self.name} has no scripted reply left")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def catalogue_store(tmp_path, catalogue_seed) -> SQLiteCatalogueStore:
    store = SQLiteCatalogueStore(tmp_path / "catalogue.db")
    seed_catalogue(store, catalogue_seed)
    return store


@pytest.fixture()
def session_store(tmp_path) -> SQLiteSessionStore:
    return SQLiteSessionStore(tmp_path / "sessions.db")


@pytest.fixture()
def catalogue(catalogue_store) -> CatalogueAccessor:
    cache = TTLCache(max_size=100, default_ttl=60.0, fetch_timeout=5.0, max_concurrent_fetches=4)
    return CatalogueAccessor(catalogue_store, cache, retry_attempts=2, retry_backoff=0.0, sleep=_no_sleep)


@pytest.fixture()
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture()
def build_pipeline(catalogue, metrics) -> Callable[..., ResponsePipeline]:
    def factory(clients: Sequence[CompletionClient] = (), structured: bool = False) -> ResponsePipeline:
        return ResponsePipeline(
            catalogue,
            RecommendationGenerator(catalogue),
            clients,
            structured=structured,
            metrics=metrics,
        )

    return factory


@pytest.fixture()
def build_machine(catalogue, session_store, metrics, build_pipeline) -> Callable[..., ConversationStateMachine]:
    def factory(
        clients: Sequence[CompletionClient] = (),
        store: SQLiteSessionStore | None = session_store,
    ) -> ConversationStateMachine:
        recommendations = RecommendationGenerator(catalogue)
        return ConversationStateMachine(
            SessionRegistry(store),
            catalogue,
            KeywordIntentAnalyzer(),
            build_pipeline(clients),
            recommendations,
            PaymentHandoff(),
            metrics=metrics,
        )

    return factory


@pytest.fixture()
def machine(build_machine) -> ConversationStateMachine:
    return build_machine()


@pytest.fixture()
def scripted_client() -> Callable[..., ScriptedCompletionClient]:
    return ScriptedCompletionClient
