"""Asynchronous client for the upstream OpenAI-compatible backend.

This module provides the httpx-based implementation of
BackendClientInterface. One client instance (and one connection pool) is
shared by every inbound request.

Key behaviors:
    - Uses httpx.AsyncClient with pooled keep-alive connections
    - Sends ``Authorization: Bearer <key>`` only when a key is configured
    - Non-streaming calls and the model list use a bounded total timeout
    - Streaming calls bound only the time until response headers arrive;
      an already-started stream may run indefinitely
    - Translates httpx failures into domain exceptions

Concurrency:
    - All operations are async and safe for concurrent use
    - The underlying httpx.AsyncClient is created lazily and shared
"""

from __future__ import annotations

import asyncio
import json
import logging
import types
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from ollama_proxy.domain.entities import CompletionRequest
from ollama_proxy.domain.exceptions import (
    UpstreamProtocolError,
    UpstreamStatusError,
    UpstreamStreamError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"
MODELS_PATH = "/models"


@dataclass(slots=True, frozen=True)
class BackendClientConfig:
    """Configuration for AsyncBackendClient.

    Attributes:
        base_url: Upstream base URL, e.g. ``https://api.openai.com/v1``.
        api_key: Bearer token. None (or empty) sends no Authorization header.
        chat_timeout: Seconds allowed for a completion call. For streams this
            bounds only connection setup and response headers.
        models_timeout: Total seconds allowed for the model list call.
        max_connections: Connection pool size.
        max_keepalive_connections: Idle connections kept open.
    """

    base_url: str
    api_key: str | None = None
    chat_timeout: float = 60.0
    models_timeout: float = 30.0
    max_connections: int = 100
    max_keepalive_connections: int = 20


class HttpxUpstreamStream:
    """An open streaming response from the backend.

    Implements UpstreamStreamInterface over an httpx.Response that was
    sent with ``stream=True``.
    """

    __slots__ = ("_response",)

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise UpstreamStreamError(f"Upstream stream read failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._response.aclose()


class AsyncBackendClient:
    """Async client for an OpenAI-compatible backend.

    Can be used as an async context manager for automatic resource cleanup.

    Attributes:
        config: Client configuration (BackendClientConfig).
        client: httpx.AsyncClient instance (initialized lazily).

    Lifecycle:
        - Client is initialized lazily on first use
        - Call close() or use context manager exit to cleanup
    """

    __slots__ = ("_transport", "client", "config")

    def __init__(
        self,
        config: BackendClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend client.

        Args:
            config: Client configuration.
            transport: Optional httpx transport, e.g. httpx.MockTransport.
        """
        self.config = config
        self.client: httpx.AsyncClient | None = None
        self._transport = transport

    async def __aenter__(self) -> AsyncBackendClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Create the shared httpx.AsyncClient on first use."""
        if self.client is None:
            limits = httpx.Limits(
                max_keepalive_connections=self.config.max_keepalive_connections,
                max_connections=self.config.max_connections,
            )
            self.client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=self._headers(),
                timeout=httpx.Timeout(self.config.chat_timeout),
                limits=limits,
                transport=self._transport,
            )
        return self.client

    async def close(self) -> None:
        """Close the connection pool. Safe to call multiple times."""
        if self.client:
            await self.client.aclose()
            self.client = None

    @staticmethod
    async def _raise_for_status(response: httpx.Response) -> None:
        """Raise UpstreamStatusError carrying the backend's status and body."""
        if response.is_success:
            return
        try:
            body = await response.aread()
        finally:
            await response.aclose()
        logger.warning(
            "upstream_error_status: url=%s status=%d bytes=%d",
            response.request.url,
            response.status_code,
            len(body),
        )
        raise UpstreamStatusError(response.status_code, body, response.headers.get("content-type"))

    @staticmethod
    def _transport_error(exc: httpx.RequestError, operation: str) -> Exception:
        match exc:
            case httpx.TimeoutException():
                logger.warning("upstream_timeout: operation=%s error=%s", operation, exc)
                return UpstreamTimeoutError(f"Upstream timed out during {operation}: {exc!r}")
            case _:
                logger.warning("upstream_unavailable: operation=%s error=%s", operation, exc)
                return UpstreamUnavailableError(f"Upstream unreachable during {operation}: {exc!r}")

    @staticmethod
    def _decode_json(response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("upstream_invalid_json: operation=%s error=%s", operation, exc)
            raise UpstreamProtocolError(f"Upstream returned invalid JSON for {operation}") from exc

    async def list_models(self) -> list[dict[str, Any]]:
        """Return the ``data`` array of ``GET /models``.

        Raises:
            UpstreamStatusError: If the backend answers with a non-success status.
            UpstreamTimeoutError: If the call exceeds models_timeout.
            UpstreamUnavailableError: If the backend cannot be reached.
            UpstreamProtocolError: If the body is not a model list.
        """
        client = await self._ensure_client()
        try:
            response = await client.get(MODELS_PATH, timeout=self.config.models_timeout)
        except httpx.RequestError as exc:
            raise self._transport_error(exc, "list_models") from exc

        await self._raise_for_status(response)
        data = self._decode_json(response, "list_models")

        match data:
            case {"data": list() as entries}:
                return entries
            case _:
                msg = f"Expected model list object, got {type(data).__name__}"
                raise UpstreamProtocolError(msg)

    async def create_completion(self, request: CompletionRequest) -> dict[str, Any]:
        """Issue a non-streaming ``POST /chat/completions``.

        Raises:
            UpstreamStatusError: If the backend answers with a non-success status.
            UpstreamTimeoutError: If the call exceeds chat_timeout.
            UpstreamUnavailableError: If the backend cannot be reached.
            UpstreamProtocolError: If the body is not a JSON object.
        """
        client = await self._ensure_client()
        try:
            response = await client.post(CHAT_COMPLETIONS_PATH, json=request.to_payload())
        except httpx.RequestError as exc:
            raise self._transport_error(exc, "chat_completion") from exc

        await self._raise_for_status(response)
        data = self._decode_json(response, "chat_completion")
        if not isinstance(data, dict):
            msg = f"Expected completion object, got {type(data).__name__}"
            raise UpstreamProtocolError(msg)
        return data

    async def stream_completion(self, request: CompletionRequest) -> HttpxUpstreamStream:
        """Issue a streaming ``POST /chat/completions``.

        Waits at most chat_timeout for the response headers. Once they
        arrive the body has no read timeout. The caller owns the returned
        stream and must close it.

        Raises:
            UpstreamStatusError: If the backend answers with a non-success status.
            UpstreamTimeoutError: If headers do not arrive within chat_timeout.
            UpstreamUnavailableError: If the backend cannot be reached.
        """
        client = await self._ensure_client()
        http_request = client.build_request(
            "POST",
            CHAT_COMPLETIONS_PATH,
            json=request.to_payload(),
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(self.config.chat_timeout, read=None),
        )
        try:
            async with asyncio.timeout(self.config.chat_timeout):
                response = await client.send(http_request, stream=True)
        except TimeoutError as exc:
            logger.warning("upstream_timeout: operation=stream_completion")
            raise UpstreamTimeoutError(
                f"Upstream did not answer within {self.config.chat_timeout}s"
            ) from exc
        except httpx.RequestError as exc:
            raise self._transport_error(exc, "stream_completion") from exc

        await self._raise_for_status(response)
        return HttpxUpstreamStream(response)


__all__ = ["AsyncBackendClient", "BackendClientConfig", "HttpxUpstreamStream"]
