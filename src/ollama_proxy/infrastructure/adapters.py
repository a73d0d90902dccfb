"""Infrastructure adapters implementing application layer interfaces.

Key Adapters:
    - RequestLoggerAdapter: Wraps structured logging for RequestLoggerInterface
    - MetricsCollectorAdapter: Wraps MetricsCollector for MetricsCollectorInterface
    - build_backend_client: Builds the httpx backend client from ProxySettings

Note:
    AsyncBackendClient already satisfies BackendClientInterface and raises
    domain exceptions, so it is injected without a wrapper.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ollama_proxy.client.async_client import AsyncBackendClient, BackendClientConfig
from ollama_proxy.telemetry.metrics import MetricsCollector
from ollama_proxy.telemetry.structured_logging import log_request_event

if TYPE_CHECKING:
    import httpx

    from ollama_proxy.infrastructure.config import ProxySettings


class RequestLoggerAdapter:
    """Static adapter delegating to log_request_event."""

    @staticmethod
    def log_request(data: dict[str, Any]) -> None:
        log_request_event(data)


class MetricsCollectorAdapter:
    """Static adapter delegating to the class-level MetricsCollector."""

    @staticmethod
    def record_request(
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        MetricsCollector.record_request(
            model=model,
            operation=operation,
            latency_ms=latency_ms,
            success=success,
            error=error,
        )


def build_backend_client(
    settings: ProxySettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncBackendClient:
    """Create the shared backend client described by the settings."""
    return AsyncBackendClient(
        BackendClientConfig(
            base_url=settings.base_url,
            api_key=settings.api_key_value,
            chat_timeout=settings.chat_timeout,
            models_timeout=settings.models_timeout,
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
        ),
        transport=transport,
    )


__all__ = ["MetricsCollectorAdapter", "RequestLoggerAdapter", "build_backend_client"]
