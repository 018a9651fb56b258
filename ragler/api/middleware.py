"""API middleware: request logging and typed-error translation.

Starlette runs middleware last-added-first, so ``main.create_app`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware``; the
logger then sees the final status code after errors were converted.
"""

from __future__ import annotations

import math
import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ragler.api.schemas import ErrorResponse
from ragler.utils.errors import RaglerError, RateLimitError
from ragler.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; all origins unless *allowed_origins* is given."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def error_response(exc: RaglerError) -> JSONResponse:
    """Render a :class:`RaglerError` as its structured JSON body."""
    body = ErrorResponse(
        reason=exc.reason,
        message=exc.message,
        retryable=exc.retryable,
        details=exc.details,
    )
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)


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
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert errors escaping a route into structured JSON responses.

    Typed errors keep their status code, reason and retryable flag.
    Anything else becomes a 500 ``INTERNAL_ERROR``; the traceback is
    logged server-side and never sent to the client.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except RaglerError as exc:
            log = _logger.warning if exc.status_code < 500 else _logger.error
            log(
                "application_error",
                error_type=type(exc).__name__,
                reason=exc.reason,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(exc)
        except Exception:
            _logger.exception("unhandled_error", path=str(request.url.path))
            body = ErrorResponse(reason="INTERNAL_ERROR", message="Internal server error")
            return JSONResponse(status_code=500, content=body.model_dump())
