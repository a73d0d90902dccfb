"""NDJSON streaming responses driven by the streaming pump.

Starlette's StreamingResponse pulls from an async iterator. The pump instead
pushes records into a sink and decides itself when to flush, so
NDJSONStreamingResponse overrides ``stream_response`` and hands the pump an
ASGI-backed sink: ``write`` buffers bytes, ``flush`` sends them as one
``http.response.body`` message with ``more_body=True``.

Response Headers:
    - Content-Type: application/json
    - Cache-Control: no-cache
    - Connection: keep-alive
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import anyio
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Send

from ollama_proxy.api.models import ErrorResponse
from ollama_proxy.application.streaming import StreamingResponsePump
from ollama_proxy.domain.exceptions import DownstreamClosedError, StreamingNotSupportedError

logger = logging.getLogger(__name__)

STREAM_MEDIA_TYPE = "application/json"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

# Raised by the ASGI send path once the client is gone
_DISCONNECT_ERRORS = (
    OSError,
    ClientDisconnect,
    anyio.BrokenResourceError,
    anyio.ClosedResourceError,
)


class ASGIResponseSink:
    """ResponseSinkInterface over an ASGI ``send`` callable."""

    __slots__ = ("_buffer", "_send")

    def __init__(self, send: Send) -> None:
        self._send = send
        self._buffer = bytearray()

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    async def flush(self) -> None:
        if not self._buffer:
            return
        chunk = bytes(self._buffer)
        self._buffer.clear()
        try:
            await self._send({"type": "http.response.body", "body": chunk, "more_body": True})
        except _DISCONNECT_ERRORS as exc:
            raise DownstreamClosedError("client disconnected") from exc


SinkFactory = Callable[[Send], object]


class NDJSONStreamingResponse(StreamingResponse):
    """Streaming response whose body is produced by a StreamingResponsePump.

    Attributes:
        pump: Pump over an already-opened upstream stream.
        request_id: Request identifier used in logs and error bodies.
    """

    def __init__(
        self,
        pump: StreamingResponsePump,
        *,
        request_id: str | None = None,
        sink_factory: SinkFactory = ASGIResponseSink,
    ) -> None:
        super().__init__(content=(), media_type=STREAM_MEDIA_TYPE, headers=STREAM_HEADERS)
        self.pump = pump
        self.request_id = request_id
        self._sink_factory = sink_factory

    async def stream_response(self, send: Send) -> None:
        sink = self._sink_factory(send)
        try:
            self.pump.check_sink(sink)
        except StreamingNotSupportedError as exc:
            logger.error("stream_sink_unsupported: request_id=%s error=%s", self.request_id, exc)
            await self._send_unsupported(send, exc)
            await self._close_pump()
            return

        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )
        try:
            await self.pump.run(sink)  # type: ignore[arg-type]
        finally:
            await self._close_pump()

        try:
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except _DISCONNECT_ERRORS:
            logger.debug("stream_end_not_delivered: request_id=%s", self.request_id)

    async def _close_pump(self) -> None:
        # Must run even when the response task is being cancelled.
        with anyio.CancelScope(shield=True):
            await self.pump.aclose()

    async def _send_unsupported(self, send: Send, exc: Exception) -> None:
        body = ErrorResponse(
            error=str(exc),
            error_type=type(exc).__name__,
            request_id=self.request_id,
        ).model_dump_json().encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": 500,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode("latin-1")),
                ],
            }
        )
        await send({"type": "http.response.body", "body": body, "more_body": False})


__all__ = [
    "ASGIResponseSink",
    "NDJSONStreamingResponse",
    "STREAM_HEADERS",
    "STREAM_MEDIA_TYPE",
]
