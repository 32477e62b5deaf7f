"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Rose Sales Assistant", description="Human-readable service name.")
    brand_name: str = Field(default="VIENS ON S'CONNAÎT", description="Storefront brand shown in replies.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    catalogue_db_path: Path = Field(
        default=Path("db/catalogue.db"),
        description="SQLite file holding products, testimonials, knowledge base and customers.",
    )
    sessions_db_path: Path = Field(
        default=Path("db/sessions.db"),
        description="SQLite file holding conversation snapshots and transcripts.",
    )
    catalogue_seed_path: Path | None = Field(
        default=Path("data/catalogue_seed.json"),
        description="JSON seed loaded into an empty catalogue on startup.",
    )

    openai_api_key: str | None = Field(default=None, description="Primary LLM provider key.")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible base URL (OpenRouter works too).",
    )
    openai_model: str = Field(default="gpt-4o", description="Primary chat model.")
    anthropic_api_key: str | None = Field(default=None, description="Secondary LLM provider key.")
    anthropic_model: str = Field(default="claude-3-5-sonnet-latest", description="Secondary chat model.")
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=300, ge=16)
    llm_timeout_seconds: float = Field(default=15.0, gt=0)
    llm_history_turns: int = Field(default=6, ge=0, description="History turns sent with each prompt.")
    llm_structured_output: bool = Field(
        default=False,
        description="Ask the model for a JSON reply and validate it strictly.",
    )
    llm_min_interval_seconds: float = Field(
        default=0.2,
        ge=0.0,
        description="Minimum interval (seconds) between calls to the same provider.",
    )
    llm_max_concurrency: int = Field(default=4, ge=1)

    cache_max_size: int = Field(default=1000, ge=1)
    cache_default_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    cache_max_concurrent_fetches: int = Field(default=10, ge=1)
    cache_sweep_interval_seconds: float = Field(default=60.0, gt=0)
    product_ttl_seconds: float = Field(default=600.0, gt=0)
    testimonials_ttl_seconds: float = Field(default=900.0, gt=0)
    knowledge_ttl_seconds: float = Field(default=1800.0, gt=0)

    store_retry_attempts: int = Field(default=3, ge=1)
    store_retry_backoff_seconds: float = Field(default=0.5, ge=0.0)

    session_max_age_seconds: float = Field(default=24 * 3600.0, gt=0)
    session_sweep_interval_seconds: float = Field(default=600.0, gt=0)

    typing_delay_min_ms: int = Field(default=0, ge=0, description="Lower bound of the simulated typing delay.")
    typing_delay_max_ms: int = Field(default=0, ge=0, description="Upper bound of the simulated typing delay.")

    whatsapp_number: str = Field(default="221781362728", description="Support WhatsApp number (digits only).")
    default_city: str = Field(default="Dakar", description="City assumed when an address omits it.")
    xof_per_eur: float = Field(default=655.957, gt=0, description="Fixed XOF/EUR parity.")
    min_card_charge_cents: int = Field(default=50, ge=1, description="Smallest amount the card processor accepts.")
    wave_payment_url: str = Field(
        default="https://pay.wave.com/m/M_OfAgT8X_IT6P/c/sn/",
        description="Wave merchant link; the FCFA amount is appended as a query parameter.",
    )

    rate_limit_enabled: bool = Field(default=True, description="Throttle chat routes per client IP.")
    rate_limit_per_minute: int = Field(default=30, ge=1)
    rate_limit_burst_per_second: int = Field(default=5, ge=1)
    rate_limit_paths: List[str] = Field(
        default_factory=lambda: ["/chat", "/chat/*"],
        description="Paths the limiter applies to; a trailing \"/*\" matches a prefix.",
    )
    trust_x_forwarded_for: bool = Field(
        default=False,
        description="Use X-Forwarded-For for the client IP (only behind a trusted proxy).",
    )

    frontend_origin: AnyHttpUrl | None = Field(
        default=None,
        description="Allowed storefront origin (CORS). If omitted, defaults to the local dev server.",
    )
    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the full list of allowed CORS origins."""

        origins: list[str] = []
        if self.frontend_origin:
            origins.append(str(self.frontend_origin).rstrip("/"))
        else:
            origins.extend(["http://localhost:3000", "http://127.0.0.1:3000"])

        for origin in self.additional_origins:
            origins.append(str(origin).rstrip("/"))

        seen: set[str] = set()
        unique: list[str] = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique.append(origin)
        return unique

    @property
    def openai_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def anthropic_enabled(self) -> bool:
        return bool(self.anthropic_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
