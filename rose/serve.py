"""Launch script that starts Uvicorn with the configured application."""

from __future__ import annotations

import logging
import os

import uvicorn

from rose.core.config import get_settings

logger = logging.getLogger("rose.launcher")


def main() -> None:
    settings = get_settings()
    port = int(os.environ.get("PORT", "8000"))
    host = os.environ.get("HOST", "0.0.0.0")
    logger.debug("Starting %s on %s:%d", settings.app_name, host, port)
    uvicorn.run("rose.main:app", host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
