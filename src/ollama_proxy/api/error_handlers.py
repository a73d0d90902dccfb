"""Shared error handling utilities for route handlers.

All route handlers use handle_route_errors() to convert exceptions into
HTTP responses with consistent logging.

Error Handling Strategy:
    - InvalidRequestError, ValueError -> 400 Bad Request
    - UpstreamStatusError -> backend status and body forwarded verbatim
    - UpstreamUnavailableError -> 502 Bad Gateway
    - UpstreamProtocolError -> 502 Bad Gateway
    - UpstreamTimeoutError -> 504 Gateway Timeout
    - StreamingNotSupportedError -> 500 Internal Server Error
    - Unknown Errors -> 500 Internal Server Error (no internal details)

Logging:
    Errors are logged with the standard logger and as ``api_error``
    structured events carrying request_id, error_type and http_status.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import NoReturn

from fastapi import HTTPException, status

from ollama_proxy.api.http_errors import (
    upstream_passthrough_error,
    upstream_protocol_error,
    upstream_timeout_error,
    upstream_unavailable_error,
)
from ollama_proxy.api.models import RequestContext
from ollama_proxy.domain.exceptions import (
    InvalidRequestError,
    StreamingNotSupportedError,
    UpstreamProtocolError,
    UpstreamStatusError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from ollama_proxy.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)


def handle_route_errors(
    ctx: RequestContext,
    operation_name: str,
    *,
    start_time: float | None = None,
    timeout_seconds: float | None = None,
    event_builder: Callable[[], dict[str, object]] | None = None,
) -> Callable[[Exception], NoReturn]:
    """Create an error handler function for a route handler.

    Args:
        ctx: Request context with request_id for logging.
        operation_name: Name of the operation ("chat", "generate", ...).
        start_time: perf_counter() value at request start, for latency.
        timeout_seconds: Backend timeout, quoted in 504 messages.
        event_builder: Returns extra fields for the structured event.

    Returns:
        Function that takes an exception and raises HTTPException.

    Example:
        >>> handle_error = handle_route_errors(ctx, "chat")
        >>> try:
        ...     result = await use_case.execute(...)
        ... except Exception as exc:
        ...     handle_error(exc)
    """

    def _log_event(exc: Exception, http_status: int, **extra: object) -> None:
        event: dict[str, object] = {
            "event": "api_error",
            "operation": operation_name,
            "status": "error",
            "request_id": ctx.request_id,
            "client_ip": ctx.client_ip,
            "error_type": type(exc).__name__,
            "error_message": str(exc),
            "http_status": http_status,
        }
        if start_time is not None:
            event["latency_ms"] = round((time.perf_counter() - start_time) * 1000, 3)
        if event_builder:
            event.update({k: v for k, v in (event_builder() or {}).items() if v is not None})
        event.update({k: v for k, v in extra.items() if v is not None})
        log_request_event(event)

    def handle_error(exc: Exception) -> NoReturn:
        """Handle exception and raise appropriate HTTPException."""
        match exc:
            case HTTPException():
                raise exc

            case InvalidRequestError() | ValueError():
                logger.warning(
                    "%s_validation_error: request_id=%s, error=%s",
                    operation_name,
                    ctx.request_id,
                    exc,
                )
                _log_event(exc, status.HTTP_400_BAD_REQUEST)
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Invalid {operation_name} request: {exc!s}",
                ) from exc

            case UpstreamStatusError() as upstream_exc:
                logger.warning(
                    "%s_upstream_status: request_id=%s, status_code=%s",
                    operation_name,
                    ctx.request_id,
                    upstream_exc.status_code,
                )
                _log_event(exc, upstream_exc.status_code, upstream_status=upstream_exc.status_code)
                raise upstream_passthrough_error(upstream_exc) from exc

            case UpstreamUnavailableError():
                logger.error(
                    "%s_upstream_unavailable: request_id=%s, error=%s",
                    operation_name,
                    ctx.request_id,
                    exc,
                )
                _log_event(exc, status.HTTP_502_BAD_GATEWAY)
                raise upstream_unavailable_error() from exc

            case UpstreamTimeoutError():
                logger.error(
                    "%s_upstream_timeout: request_id=%s, error=%s",
                    operation_name,
                    ctx.request_id,
                    exc,
                )
                _log_event(exc, status.HTTP_504_GATEWAY_TIMEOUT)
                raise upstream_timeout_error(timeout_seconds) from exc

            case UpstreamProtocolError():
                logger.error(
                    "%s_upstream_protocol_error: request_id=%s, error=%s",
                    operation_name,
                    ctx.request_id,
                    exc,
                )
                _log_event(exc, status.HTTP_502_BAD_GATEWAY)
                raise upstream_protocol_error() from exc

            case StreamingNotSupportedError():
                logger.error(
                    "%s_streaming_unsupported: request_id=%s, error=%s",
                    operation_name,
                    ctx.request_id,
                    exc,
                )
                _log_event(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Streaming is not supported by this server.",
                ) from exc

            case _:
                logger.exception(
                    "unexpected_error_%s: request_id=%s, error_type=%s",
                    operation_name,
                    ctx.request_id,
                    type(exc).__name__,
                )
                _log_event(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"An internal error occurred (request_id: {ctx.request_id}).",
                ) from exc

    return handle_error


__all__ = ["handle_route_errors"]
