"""
Relay server entrypoint.

``create_app`` wires logging, CORS, the error envelope and the document relay
routes; dirty rooms are flushed to disk when the application shuts down.
Serve ``layoutsync.server.app:app`` with any ASGI server.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from layoutsync import __version__
from layoutsync.logging_config import default_log_dir, init_logging
from layoutsync.server.core.errors import WRITER_HEADER, register_exception_handlers
from layoutsync.server.core.relay import HUB
from layoutsync.server.routes.documents import router as documents_router

LOGGER = logging.getLogger(__name__)

APP_VERSION = os.getenv("LAYOUTSYNC_VERSION", __version__)
LOG_FILE = "relay.log"
LOCAL_ORIGINS: Sequence[str] = ("http://127.0.0.1:8000", "http://localhost:8000")


def cors_origins(allowed_origins: Optional[Sequence[str]] = None) -> List[str]:
    """Explicit or local origins plus ``LAYOUTSYNC_CORS_ORIGINS``, deduplicated."""
    origins = list(LOCAL_ORIGINS if allowed_origins is None else allowed_origins)
    for origin in os.getenv("LAYOUTSYNC_CORS_ORIGINS", "").split(","):
        if origin.strip():
            origins.append(origin.strip())
    return list(dict.fromkeys(origins))


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await HUB.flush_all()
    LOGGER.info("Relay stopped", extra=HUB.stats())


def create_app(
    *,
    enable_cors: bool = True,
    allowed_origins: Optional[Sequence[str]] = None,
    configure_logging: bool = True,
) -> FastAPI:
    app = FastAPI(title="layoutsync relay", version=APP_VERSION, lifespan=_lifespan)
    app.state.version = APP_VERSION

    if configure_logging:
        level = os.getenv("LAYOUTSYNC_LOG_LEVEL", "INFO")
        app.state.log_path = init_logging(default_log_dir(), level=level, filename=LOG_FILE)
        LOGGER.info(
            "Relay logging configured",
            extra={"log_path": str(app.state.log_path), "log_level": level},
        )

    if enable_cors:
        origins = cors_origins(allowed_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type", WRITER_HEADER],
        )
        LOGGER.debug("CORS origins", extra={"origins": origins})

    register_exception_handlers(app)
    app.include_router(documents_router)
    return app


app = create_app(configure_logging=os.getenv("LAYOUTSYNC_CONFIGURE_LOGGING", "1") != "0")

__all__ = ["app", "cors_origins", "create_app"]
