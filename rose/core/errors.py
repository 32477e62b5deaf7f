"""Exception types and handling utilities."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("rose.errors")


class RoseError(Exception):
    """Base class for engine errors."""


class StoreUnavailableError(RoseError):
    """The catalogue or session store could not be reached."""


class ProductNotFoundError(RoseError):
    """The requested product does not exist or is not sellable."""

    def __init__(self, product_id: str) -> None:
        super().__init__(f"product {product_id!r} not found")
        self.product_id = product_id


class CompletionError(RoseError):
    """An LLM provider call failed or returned an unusable payload."""


class OrderDraftLocked(RoseError):
    """A finalized order draft was mutated."""


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Une erreur inattendue est survenue. Merci de réessayer dans un instant.",
        },
    )
