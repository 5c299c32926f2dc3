"""Map service errors to JSON responses.

Bodies are ``{"error": ..., "detail": ...}``; request validation errors
keep FastAPI's default 422 shape.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from etf_backend.errors import (
    EtfServiceError,
    PersistenceError,
    RateLimited,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    error: str,
    detail=None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Register the service error handlers on the app."""

    @app.exception_handler(UpstreamUnavailable)
    async def handle_upstream(_request: Request, exc: UpstreamUnavailable) -> JSONResponse:
        logger.warning(f"Upstream unavailable: {exc.message}")
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(ValidationError)
    async def handle_validation(_request: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RateLimited)
    async def handle_rate_limited(_request: Request, exc: RateLimited) -> JSONResponse:
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(exc.status_code, exc.message, headers=headers)

    @app.exception_handler(PersistenceError)
    async def handle_persistence(_request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error(f"Persistence failure: {exc.message}")
        return _error_response(exc.status_code, exc.message, detail=exc.failed or None)

    @app.exception_handler(EtfServiceError)
    async def handle_service_error(_request: Request, exc: EtfServiceError) -> JSONResponse:
        logger.error(f"Unhandled service error: {exc.message}")
        return _error_response(exc.status_code, exc.message)
