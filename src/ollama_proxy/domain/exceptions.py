"""Domain exceptions for the Ollama proxy.

This module defines pure domain exceptions with no framework dependencies.
They describe what went wrong while translating a request between the
inbound Ollama protocol and the upstream OpenAI-compatible backend.

Design Principles:
    - Framework-agnostic: No FastAPI, httpx, or Pydantic deps
    - Hierarchical: All domain exceptions inherit from DomainError
    - Descriptive: Exception names clearly indicate the failure side

Exception Hierarchy:
    - DomainError: Base exception for all domain errors
    - InvalidRequestError: Inbound request violates invariants
    - UpstreamError: Base for backend failures
        - UpstreamStatusError: Backend answered with a non-success status
        - UpstreamUnavailableError: Backend could not be reached
        - UpstreamTimeoutError: Backend did not answer in time
        - UpstreamProtocolError: Backend answered with an undecodable body
        - UpstreamStreamError: Backend stream failed after it started
    - DownstreamClosedError: The inbound client went away mid-stream
    - StreamingNotSupportedError: Response sink cannot flush
"""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain errors.

    Catching DomainError will catch every proxy-specific failure, which the
    API layer uses to convert domain errors into HTTP responses.
    """


class InvalidRequestError(DomainError):
    """Raised when an inbound request violates domain invariants.

    Common causes:
        - Empty message list
        - Message role outside user/assistant/system
        - Image payload that is not valid base64
    """


class UpstreamError(DomainError):
    """Base exception for failures talking to the upstream backend."""


class UpstreamStatusError(UpstreamError):
    """Raised when the backend answers with a non-success status.

    The status code and raw body are carried so the API layer can forward
    them to the inbound client verbatim.

    Attributes:
        status_code: HTTP status returned by the backend.
        body: Raw response body returned by the backend.
        content_type: Content-Type header of the backend response, if any.
    """

    def __init__(self, status_code: int, body: bytes, content_type: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.content_type = content_type
        super().__init__(f"Upstream returned HTTP {status_code}")


class UpstreamUnavailableError(UpstreamError):
    """Raised when the backend cannot be reached (DNS, refused, reset)."""


class UpstreamTimeoutError(UpstreamError):
    """Raised when the backend does not answer within the configured timeout."""


class UpstreamProtocolError(UpstreamError):
    """Raised when a non-streaming backend response body cannot be decoded."""


class UpstreamStreamError(UpstreamError):
    """Raised when reading an already-started upstream stream fails.

    Note:
        Only the streaming pump sees this exception. It ends the stream
        with a terminal record instead of surfacing an error.
    """


class DownstreamClosedError(DomainError):
    """Raised by a response sink when the inbound client has gone away.

    This is normal cancellation, not a failure of the proxy.
    """


class StreamingNotSupportedError(DomainError):
    """Raised when a response sink cannot flush incremental writes."""
