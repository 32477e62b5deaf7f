"""Cached, retrying async facade over the catalogue store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from rose.cache.ttl import TTLCache
from rose.catalogue.knowledge import STATIC_FAQ, KnowledgeIndex
from rose.catalogue.models import Customer, Product, Testimonial
from rose.catalogue.store import SQLiteCatalogueStore
from rose.core.errors import ProductNotFoundError, StoreUnavailableError

logger = logging.getLogger("rose.catalogue")


class CatalogueAccessor:
    """Every engine read of product data goes through here."""

    def __init__(
        self,
        store: SQLiteCatalogueStore,
        cache: TTLCache,
        *,
        product_ttl: float = 600.0,
        testimonials_ttl: float = 900.0,
        knowledge_ttl: float = 1800.0,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.cache = cache
        self._product_ttl = product_ttl
        self._testimonials_ttl = testimonials_ttl
        self._knowledge_ttl = knowledge_ttl
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff = retry_backoff
        self._sleep = sleep

    async def _call(self, operation: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store call off the loop, retrying transient failures."""

        for attempt in range(1, self._retry_attempts + 1):
            try:
                return await asyncio.to_thread(operation, *args)
            except StoreUnavailableError as exc:
                if attempt == self._retry_attempts:
                    raise
                logger.warning(
                    "Store call %s failed (attempt %d/%d): %s",
                    getattr(operation, "__name__", operation),
                    attempt,
                    self._retry_attempts,
                    exc,
                )
                await self._sleep(self._retry_backoff * attempt)
        raise StoreUnavailableError("retry loop exhausted")

    async def get_product(self, product_id: str, force_refresh: bool = False) -> Product:
        """Return the product or raise :class:`ProductNotFoundError`."""

        async def fetch() -> Product:
            product = await self._call(self.store.get_product, product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            return product

        return await self.cache.get_or_fetch(
            f"product:{product_id}",
            fetch,
            ttl=self._product_ttl,
            force_refresh=force_refresh,
        )

    async def find_product(self, product_id: str | None) -> Product | None:
        if not product_id:
            return None
        try:
            return await self.get_product(product_id)
        except ProductNotFoundError:
            return None

    async def recommendation_candidates(self, exclude_product_id: str | None, limit: int = 10) -> list[Product]:
        async def fetch() -> list[Product]:
            return await self._call(self.store.list_active_products, exclude_product_id, limit)

        return await self.cache.get_or_fetch(
            f"candidates:{exclude_product_id or '-'}:{limit}",
            fetch,
            ttl=self._product_ttl,
        )

    async def testimonials(self, product_id: str | None, limit: int = 5) -> list[Testimonial]:
        async def fetch() -> list[Testimonial]:
            return await self._call(self.store.list_testimonials, product_id, limit)

        return await self.cache.get_or_fetch(
            f"testimonials:{product_id or '-'}:{limit}",
            fetch,
            ttl=self._testimonials_ttl,
        )

    async def knowledge(self, product_id: str | None) -> KnowledgeIndex:
        """Knowledge index for a product, stored rows first then the static FAQ."""

        async def fetch() -> KnowledgeIndex:
            entries = await self._call(self.store.list_knowledge, product_id)
            return KnowledgeIndex([*entries, *STATIC_FAQ])

        return await self.cache.get_or_fetch(
            f"knowledge:{product_id or '-'}",
            fetch,
            ttl=self._knowledge_ttl,
        )

    async def find_customer(self, phone: str) -> Customer | None:
        return await self._call(self.store.find_customer, phone)

    async def remember_customer(self, customer: Customer) -> None:
        await self._call(self.store.upsert_customer, customer)
