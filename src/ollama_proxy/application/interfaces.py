"""Interfaces (Protocols) for application layer dependencies.

This module defines Protocol-based interfaces that infrastructure and API
implementations must satisfy. The application layer depends on these
interfaces, not concrete implementations, so the upstream backend and the
downstream response can both be replaced by test doubles.

Key Interfaces:
    - BackendClientInterface: OpenAI-compatible backend operations
    - UpstreamStreamInterface: An open upstream response body
    - ResponseSinkInterface: Incremental downstream writer with flush
    - RequestLoggerInterface: Structured request logging
    - MetricsCollectorInterface: Basic metrics collection

Note:
    Implementations don't need to explicitly inherit from these protocols;
    they just need to implement the required methods.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ollama_proxy.domain.entities import CompletionRequest


class UpstreamStreamInterface(Protocol):
    """Protocol for an open upstream response body.

    The body is consumed once, as raw byte chunks of arbitrary size. Chunk
    boundaries carry no meaning; line framing is the consumer's job.
    """

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Iterate over raw body chunks.

        Raises:
            UpstreamStreamError: If reading from the backend fails.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        ...


class BackendClientInterface(Protocol):
    """Protocol for OpenAI-compatible backend clients.

    All methods are async. Failures are reported as domain exceptions:
    UpstreamStatusError for non-success statuses, UpstreamUnavailableError
    and UpstreamTimeoutError for transport failures, and
    UpstreamProtocolError for undecodable bodies.
    """

    async def list_models(self) -> list[dict[str, Any]]:
        """Return the ``data`` array of ``GET {base_url}/models``."""
        ...

    async def create_completion(self, request: CompletionRequest) -> dict[str, Any]:
        """Issue a non-streaming completion and return the decoded body."""
        ...

    async def stream_completion(self, request: CompletionRequest) -> UpstreamStreamInterface:
        """Issue a streaming completion.

        Returns once the backend has answered with a success status. The
        caller owns the returned stream and must close it.
        """
        ...


@runtime_checkable
class ResponseSinkInterface(Protocol):
    """Protocol for the downstream side of a streaming response.

    A sink accepts bytes and pushes them to the client on flush. The
    streaming pump refuses sinks that do not implement flush.
    """

    async def write(self, data: bytes) -> None:
        """Buffer bytes for the client.

        Raises:
            DownstreamClosedError: If the client has gone away.
        """
        ...

    async def flush(self) -> None:
        """Push buffered bytes to the client immediately.

        Raises:
            DownstreamClosedError: If the client has gone away.
        """
        ...


class RequestLoggerInterface(Protocol):
    """Protocol for request logging implementations."""

    def log_request(self, data: dict[str, Any]) -> None:
        """Log a request event with structured data.

        Args:
            data: Dictionary with request event data. Required keys:
                - event: Event type identifier (e.g., "api_request")
                - status: Request status ("success" or "error")
                - request_id: Unique request identifier for tracing
                - operation: Operation name (e.g., "chat", "generate")
            Optional keys include model, client_ip, latency_ms,
            error_type, error_message and stream statistics.
        """
        ...


class MetricsCollectorInterface(Protocol):
    """Protocol for metrics collection implementations."""

    def record_request(
        self,
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        """Record a request metric.

        Args:
            model: Model name identifier. Use "system" for non-model
                operations such as list_models.
            operation: Operation name identifier ("chat", "generate",
                "list_models").
            latency_ms: Request latency in milliseconds.
            success: Whether the request succeeded.
            error: Error type name if request failed. None if succeeded.
        """
        ...
