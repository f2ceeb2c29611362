"""API middleware: CORS, request logging, and error handling.

Starlette runs middleware last-added-first, so ``main.py`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware`` and the
logger sees the final status code of converted errors.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from reporttuner.api.schemas import ErrorResponse
from reporttuner.utils.errors import (
    ConcurrencyConflict,
    DataIntegrityError,
    ProviderRejection,
    ReportTunerError,
    TransientIOError,
)
from reporttuner.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Most specific first; anything else is a 500.
_STATUS_FOR_ERROR: list[tuple[type[ReportTunerError], int, str]] = [
    (ConcurrencyConflict, 409, "Operation conflicts with one already in progress"),
    (DataIntegrityError, 422, "Stored data failed validation"),
    (TransientIOError, 503, "Service temporarily unavailable"),
    (ProviderRejection, 502, "Upstream provider rejected the request"),
]
_DEFAULT_ERROR = (500, "Internal server error")


def _lookup(exc: ReportTunerError) -> tuple[int, str]:
    for error_type, status_code, detail in _STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            return status_code, detail
    return _DEFAULT_ERROR


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; override with specific origins in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``ReportTunerError`` subclasses into structured JSON errors.

    The message is logged server-side; the client only sees the error class
    name and a fixed detail for its status code.  Other exceptions fall
    through to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except ReportTunerError as exc:
            status_code, detail = _lookup(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=detail,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
