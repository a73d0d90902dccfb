"""Infrastructure layer for the Ollama proxy.

Contains configuration loading and the adapters that bind telemetry and the
backend client to the application layer interfaces.
"""

from ollama_proxy.infrastructure.adapters import (
    MetricsCollectorAdapter,
    RequestLoggerAdapter,
    build_backend_client,
)
from ollama_proxy.infrastructure.config import ProxySettings, load_settings

__all__ = [
    "MetricsCollectorAdapter",
    "ProxySettings",
    "RequestLoggerAdapter",
    "build_backend_client",
    "load_settings",
]
