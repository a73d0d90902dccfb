"""Middleware and error handlers for the API.

Key Features:
    - Structured Logging: One ``http_request`` event per request (access log)
    - CORS: Cross-origin resource sharing configuration
    - Error Handling: Ollama-style ``{"error": ...}`` bodies for HTTP errors,
      verbatim passthrough of backend error responses, and a catch-all 500

Middleware Stack:
    1. StructuredLoggingMiddleware: Logs all HTTP requests
    2. CORSMiddleware: Handles cross-origin requests
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from ollama_proxy.api.dependencies import get_request_context
from ollama_proxy.api.http_errors import UpstreamPassthroughError
from ollama_proxy.api.models import ErrorResponse
from ollama_proxy.telemetry.structured_logging import log_request_event

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that emits a structured access-log event for every request.

    For streaming responses the event is emitted once the response has
    started; the stream's own outcome is logged by the chat/generate use
    cases when the pump finishes.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()
        status_code: int | None = None
        error_type: str | None = None
        error_message: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            status_code = getattr(exc, "status_code", status.HTTP_500_INTERNAL_SERVER_ERROR)
            error_type = type(exc).__name__
            error_message = str(exc)
            raise
        finally:
            ctx = get_request_context(request)
            latency_ms = (time.perf_counter() - start_time) * 1000
            event = {
                "event": "http_request",
                "request_id": ctx.request_id,
                "client_ip": ctx.client_ip,
                "user_agent": ctx.user_agent,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "latency_ms": round(latency_ms, 3),
            }
            if error_type:
                event["error_type"] = error_type
                event["error_message"] = error_message
            log_request_event(event)


def setup_middleware(app: FastAPI, origins: list[str]) -> None:
    """Configure middleware for the FastAPI app.

    Args:
        app: FastAPI application instance.
        origins: Allowed CORS origins. ``["*"]`` allows every origin.
    """
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers.

    Registers handlers for:
    - UpstreamPassthroughError (backend status and body, verbatim)
    - HTTPException (Ollama-style error body)
    - RequestValidationError (400)
    - Exception (500 - catch-all)
    """

    async def passthrough_exception_handler(
        request: Request, exc: UpstreamPassthroughError
    ) -> Response:
        return Response(
            content=exc.body,
            status_code=exc.status_code,
            media_type=exc.content_type or "text/plain",
        )

    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        ctx = get_request_context(request)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=str(exc.detail),
                error_type="HTTPException",
                request_id=ctx.request_id,
            ).model_dump(),
            headers=exc.headers,
        )

    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        ctx = get_request_context(request)
        error_details = exc.errors()
        logger.warning("validation_error: request_id=%s, errors=%s", ctx.request_id, error_details)
        if error_details:
            first_error = error_details[0]
            error_msg = f"Validation error: {first_error.get('msg', 'Invalid request')} at {first_error.get('loc', [])}"
        else:
            error_msg = "Invalid request parameters"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(
                error=error_msg,
                error_type="ValidationError",
                request_id=ctx.request_id,
            ).model_dump(),
        )

    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler that never exposes internal error details."""
        ctx = get_request_context(request)
        logger.exception(
            "unhandled_exception: request_id=%s, error_type=%s, error=%s",
            ctx.request_id,
            type(exc).__name__,
            str(exc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="An unexpected error occurred. Please try again later.",
                error_type=type(exc).__name__,
                request_id=ctx.request_id,
            ).model_dump(),
        )

    app.exception_handler(UpstreamPassthroughError)(passthrough_exception_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(global_exception_handler)


__all__ = ["StructuredLoggingMiddleware", "setup_exception_handlers", "setup_middleware"]
