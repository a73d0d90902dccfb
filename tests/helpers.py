"""Reusable test utilities for Ollama proxy tests.

In-memory response sinks, fake upstream streams and NDJSON decoding.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from datetime import UTC, datetime
from typing import Any

from ollama_proxy.domain.exceptions import DownstreamClosedError, UpstreamStreamError

FIXED_NOW = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)


def fixed_clock() -> datetime:
    return FIXED_NOW


def decode_ndjson(body: bytes) -> list[dict[str, Any]]:
    """Decode an NDJSON body, asserting every record ends with a newline."""
    if not body:
        return []
    assert body.endswith(b"\n"), "NDJSON body must end with a newline"
    return [json.loads(line) for line in body.split(b"\n") if line]


class RecordingSink:
    """Sink that keeps everything it was asked to flush."""

    def __init__(self) -> None:
        self.pending = bytearray()
        self.flushed: list[bytes] = []

    async def write(self, data: bytes) -> None:
        self.pending.extend(data)

    async def flush(self) -> None:
        self.flushed.append(bytes(self.pending))
        self.pending.clear()

    @property
    def body(self) -> bytes:
        return b"".join(self.flushed)

    def records(self) -> list[dict[str, Any]]:
        return decode_ndjson(self.body)


class ClosingSink(RecordingSink):
    """Sink whose client disconnects after ``accept`` successful flushes."""

    def __init__(self, accept: int) -> None:
        super().__init__()
        self.accept = accept
        self.attempts = 0

    async def flush(self) -> None:
        self.attempts += 1
        if len(self.flushed) >= self.accept:
            self.pending.clear()
            raise DownstreamClosedError("client went away")
        await super().flush()


class NoFlushSink:
    """Sink that can write but not flush."""

    def __init__(self) -> None:
        self.written = bytearray()

    async def write(self, data: bytes) -> None:
        self.written.extend(data)


class FakeUpstream:
    """UpstreamStreamInterface over a fixed list of chunks.

    Attributes:
        fail_after: Raise UpstreamStreamError once this many chunks were
            yielded. None never fails.
        closed: Number of aclose() calls.
    """

    def __init__(self, chunks: Iterable[bytes], fail_after: int | None = None) -> None:
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.closed = 0
        self.chunks_read = 0

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise UpstreamStreamError("connection reset")
            self.chunks_read += 1
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise UpstreamStreamError("connection reset")

    async def aclose(self) -> None:
        self.closed += 1


async def aiter_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


def sse_lines(*payloads: dict[str, Any] | str) -> list[bytes]:
    """Encode each payload as one ``data:`` line."""
    return [
        f"data: {payload if isinstance(payload, str) else json.dumps(payload)}\n".encode()
        for payload in payloads
    ]


def content_chunk(content: str | None) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": content}}]}
