"""Reusable HTTPException types and builders for proxy error responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from ollama_proxy.domain.exceptions import UpstreamStatusError


class UpstreamPassthroughError(HTTPException):
    """HTTPException whose body is the backend's raw error body.

    The exception handler registered in ``api.middleware`` writes ``body``
    with the backend's status code and content type, untouched.
    """

    def __init__(self, status_code: int, body: bytes, content_type: str | None = None) -> None:
        super().__init__(status_code=status_code, detail=body.decode("utf-8", errors="replace"))
        self.body = body
        self.content_type = content_type


def upstream_passthrough_error(exc: UpstreamStatusError) -> UpstreamPassthroughError:
    return UpstreamPassthroughError(exc.status_code, exc.body, exc.content_type)


def upstream_unavailable_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Unable to connect to the upstream backend. Please check the base URL.",
    )


def upstream_timeout_error(timeout_seconds: float | None = None) -> HTTPException:
    suffix = f" within {timeout_seconds:g}s" if timeout_seconds else ""
    return HTTPException(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        detail=f"The upstream backend did not respond{suffix}.",
    )


def upstream_protocol_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="The upstream backend returned a response that could not be decoded.",
    )


__all__ = [
    "UpstreamPassthroughError",
    "upstream_passthrough_error",
    "upstream_protocol_error",
    "upstream_timeout_error",
    "upstream_unavailable_error",
]
