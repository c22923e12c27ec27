"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from utils.errors import AuthExchangeError, DropReelError, ListingError, NotFoundError, StorageError

logger = logging.getLogger(__name__)


def register_middleware(app: FastAPI) -> None:
    """Attach any app-level middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto structured JSON responses."""

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(ListingError)
    async def listing_failed(request: Request, exc: ListingError) -> JSONResponse:
        status_code = 401 if exc.status_code == 401 else 404 if exc.status_code == 409 else 502
        return _error_response(status_code, exc)

    @app.exception_handler(StorageError)
    async def storage_failed(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return _error_response(500, exc)

    @app.exception_handler(AuthExchangeError)
    async def auth_exchange_failed(request: Request, exc: AuthExchangeError) -> JSONResponse:
        return _error_response(502, exc)

    @app.exception_handler(DropReelError)
    async def generic(request: Request, exc: DropReelError) -> JSONResponse:
        return _error_response(500, exc)


def _error_response(status_code: int, exc: DropReelError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "errorCode": exc.error_code},
    )
