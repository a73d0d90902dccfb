"""HTTP client for the upstream OpenAI-compatible backend."""

from ollama_proxy.client.async_client import (
    AsyncBackendClient,
    BackendClientConfig,
    HttpxUpstreamStream,
)

__all__ = ["AsyncBackendClient", "BackendClientConfig", "HttpxUpstreamStream"]
