from __future__ import annotations

"""
JSON error envelope for the relay.

Every failure leaves the server as ``{"ok": false, "code", "message",
"details"?}``.  Handlers run inside the caller's writer context (taken from
the ``X-Writer-ID`` header) so their log lines stay attributable.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from layoutsync.logging_config import writer_context

LOGGER = logging.getLogger(__name__)

WRITER_HEADER = "X-Writer-ID"


class RelayError(Exception):
    """A request the relay refuses, with a stable machine-readable ``code``."""

    def __init__(
        self,
        status: int,
        code: str,
        message: Optional[str] = None,
        *,
        details: Any = None,
    ) -> None:
        super().__init__(message or code)
        self.status = status
        self.code = code
        self.message = message or code.replace("_", " ")
        self.details = details


def _writer_id(request: Request) -> Optional[str]:
    return request.headers.get(WRITER_HEADER) or None


@contextmanager
def _request_scope(request: Request) -> Iterator[Optional[str]]:
    writer_id = _writer_id(request)
    if not writer_id:
        yield None
        return
    with writer_context(writer_id):
        yield writer_id


def envelope(
    status: int,
    code: str,
    message: str,
    *,
    details: Any = None,
    writer_id: Optional[str] = None,
) -> JSONResponse:
    body = {"ok": False, "code": code, "message": message}
    if details is not None:
        body["details"] = details
    response = JSONResponse(body, status_code=status)
    if writer_id:
        response.headers[WRITER_HEADER] = writer_id
    return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def _relay_error(request: Request, exc: RelayError) -> JSONResponse:
        with _request_scope(request) as writer_id:
            LOGGER.info(
                "Relay request refused",
                extra={"code": exc.code, "status": exc.status, "path": request.url.path},
            )
            return envelope(
                exc.status,
                exc.code,
                exc.message,
                details=exc.details,
                writer_id=writer_id,
            )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        with _request_scope(request) as writer_id:
            detail = exc.detail
            return envelope(
                exc.status_code,
                f"http_{exc.status_code}",
                str(detail) if detail else "Request failed",
                details=detail if isinstance(detail, (dict, list)) else None,
                writer_id=writer_id,
            )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        with _request_scope(request) as writer_id:
            LOGGER.debug("Request validation failed", extra={"errors": len(exc.errors())})
            return envelope(
                422,
                "validation_error",
                "Request validation failed",
                details=[
                    {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", ""))}
                    for err in exc.errors()
                ],
                writer_id=writer_id,
            )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        error_id = uuid.uuid4().hex
        with _request_scope(request) as writer_id:
            LOGGER.error(
                "Unhandled relay exception",
                exc_info=exc,
                extra={"error_id": error_id, "path": request.url.path},
            )
            return envelope(
                500,
                "internal_error",
                "Internal server error",
                details={"error_id": error_id},
                writer_id=writer_id,
            )


__all__ = ["RelayError", "WRITER_HEADER", "envelope", "register_exception_handlers"]
