"""FastAPI application entry point for the Rose sales assistant."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rose.api.chat import create_chat_router
from rose.cache.ttl import TTLCache
from rose.catalogue.accessor import CatalogueAccessor
from rose.catalogue.store import SQLiteCatalogueStore
from rose.core.config import Settings, get_settings
from rose.core.errors import unhandled_exception_handler
from rose.core.logging import configure_logging, request_id_middleware
from rose.core.metrics import MetricsCollector
from rose.core.rate_limit import create_rate_limit_middleware
from rose.engine.analyzer import KeywordIntentAnalyzer
from rose.engine.llm import AnthropicMessagesClient, CompletionClient, OpenAIChatClient
from rose.engine.machine import ConversationStateMachine
from rose.engine.pacing import typing_delay_for
from rose.engine.payment import PaymentHandoff
from rose.engine.pipeline import ResponsePipeline
from rose.engine.recommendations import RecommendationGenerator
from rose.init_data import seed_on_startup
from rose.sessions.registry import SessionRegistry
from rose.sessions.store import SQLiteSessionStore

logger = logging.getLogger("rose.app")


def build_completion_clients(settings: Settings) -> list[CompletionClient]:
    """Providers in priority order; a provider without a key is skipped."""

    common: dict[str, Any] = {
        "timeout": settings.llm_timeout_seconds,
        "min_interval": settings.llm_min_interval_seconds,
        "max_concurrency": settings.llm_max_concurrency,
    }
    clients: list[CompletionClient] = []
    if settings.openai_enabled:
        clients.append(
            OpenAIChatClient(
                settings.openai_api_key or "",
                settings.openai_model,
                base_url=settings.openai_base_url,
                **common,
            )
        )
    if settings.anthropic_enabled:
        clients.append(AnthropicMessagesClient(settings.anthropic_api_key or "", settings.anthropic_model, **common))
    return clients


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    catalogue_store = SQLiteCatalogueStore(settings.catalogue_db_path)
    session_store = SQLiteSessionStore(settings.sessions_db_path)
    cache = TTLCache(
        max_size=settings.cache_max_size,
        default_ttl=settings.cache_default_ttl_seconds,
        fetch_timeout=settings.cache_fetch_timeout_seconds,
        max_concurrent_fetches=settings.cache_max_concurrent_fetches,
    )
    catalogue = CatalogueAccessor(
        catalogue_store,
        cache,
        product_ttl=settings.product_ttl_seconds,
        testimonials_ttl=settings.testimonials_ttl_seconds,
        knowledge_ttl=settings.knowledge_ttl_seconds,
        retry_attempts=settings.store_retry_attempts,
        retry_backoff=settings.store_retry_backoff_seconds,
    )
    metrics = MetricsCollector()
    registry = SessionRegistry(session_store, max_age_seconds=settings.session_max_age_seconds)
    recommendations = RecommendationGenerator(catalogue)
    pipeline = ResponsePipeline(
        catalogue,
        recommendations,
        build_completion_clients(settings),
        brand_name=settings.brand_name,
        whatsapp_number=settings.whatsapp_number,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        history_turns=settings.llm_history_turns,
        structured=settings.llm_structured_output,
        metrics=metrics,
    )
    machine = ConversationStateMachine(
        registry,
        catalogue,
        KeywordIntentAnalyzer(),
        pipeline,
        recommendations,
        PaymentHandoff(
            xof_per_eur=settings.xof_per_eur,
            min_card_charge_cents=settings.min_card_charge_cents,
            wave_payment_url=settings.wave_payment_url,
        ),
        typing_delay=typing_delay_for(settings.typing_delay_min_ms, settings.typing_delay_max_ms),
        metrics=metrics,
        whatsapp_number=settings.whatsapp_number,
        default_city=settings.default_city,
    )

    app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")
    app.state.settings = settings
    app.state.machine = machine
    app.state.metrics = metrics
    app.state.background_tasks = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(create_rate_limit_middleware(settings))
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(create_chat_router(machine))

    @app.on_event("startup")
    async def startup() -> None:
        level = configure_logging(settings.log_level)
        logger.info(
            "Logging configured at %s level for %s environment",
            logging.getLevelName(level),
            settings.environment,
        )
        try:
            await asyncio.to_thread(seed_on_startup, catalogue_store, settings.catalogue_seed_path)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Catalogue seeding skipped: %s", exc)

        if not pipeline.clients:
            logger.info("No LLM provider configured; replies use rule templates only")
        app.state.background_tasks = [
            asyncio.create_task(cache.run_sweeper(settings.cache_sweep_interval_seconds)),
            asyncio.create_task(registry.run_sweeper(settings.session_sweep_interval_seconds)),
        ]

    @app.on_event("shutdown")
    async def shutdown() -> None:
        for task in app.state.background_tasks:
            task.cancel()
        app.state.background_tasks = []

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Return basic service status for monitoring."""

        return {"status": "ok"}

    @app.get("/ready", tags=["health"])
    async def readiness_probe() -> dict[str, Any]:
        """Readiness endpoint that verifies both SQLite databases.

        The catalogue must be queryable and hold at least one product; the
        session store must be reachable. A missing catalogue degrades the
        service, an unreachable session store fails it.
        """

        components = {
            "catalogue_db": _check_database(settings.catalogue_db_path, "SELECT COUNT(*) FROM products"),
            "sessions_db": _check_database(settings.sessions_db_path, "SELECT COUNT(*) FROM sessions"),
        }
        catalogue_ok = components["catalogue_db"]["ok"] and components["catalogue_db"].get("rows", 0) > 0
        if components["catalogue_db"]["ok"] and not catalogue_ok:
            components["catalogue_db"]["error"] = "catalogue is empty"
            components["catalogue_db"]["ok"] = False

        if catalogue_ok and components["sessions_db"]["ok"]:
            overall = "ok"
        elif components["sessions_db"]["ok"]:
            overall = "degraded"
        else:
            overall = "fail"

        return {
            "status": overall,
            "environment": settings.environment,
            "llm_providers": [client.name for client in pipeline.clients],
            "components": components,
        }

    @app.get("/metrics", tags=["metrics"])
    async def metrics_endpoint() -> dict[str, Any]:
        snapshot = metrics.snapshot()
        stats = cache.stats()
        return {
            "total_turns": snapshot.total_turns,
            "intents": snapshot.intents,
            "steps": snapshot.steps,
            "fallbacks": snapshot.fallbacks,
            "active_sessions": len(registry),
            "cache": {
                "entries": stats.entries,
                "max_size": stats.max_size,
                "hits": stats.hits,
                "misses": stats.misses,
                "evictions": stats.evictions,
                "stale_fallbacks": stats.stale_fallbacks,
                "active_fetches": stats.active_fetches,
                "queued_fetches": stats.queued_fetches,
            },
        }

    return app


def _check_database(path: Path, probe: str) -> dict[str, Any]:
    result: dict[str, Any] = {"path": str(path), "ok": False}
    if not Path(path).exists():
        result["error"] = "database file not found"
        return result
    try:
        with sqlite3.connect(path) as conn:
            (rows,) = conn.execute(probe).fetchone()
    except sqlite3.Error as exc:
        result["error"] = str(exc)
        return result
    result["ok"] = True
    result["rows"] = int(rows)
    return result


app = create_app()
