"""Streaming response pump: upstream SSE in, inbound NDJSON out.

The pump reads the upstream completion body line by line, extracts the
content fragment of each ``data:`` event, and writes one inbound-protocol
record per non-empty fragment to the downstream sink, flushing after every
record so tokens reach the client as they arrive.

Pump Flow:
    1. Split raw body chunks into ``\\n``-terminated lines. A trailing
       fragment without a newline at end of body is dropped. Lines longer
       than ``MAX_LINE_BYTES`` are discarded and count as malformed.
    2. Strip whitespace, skip empty lines, strip the ``data:`` prefix.
    3. ``[DONE]`` ends the loop without being parsed.
    4. Undecodable or malformed events are skipped silently.
    5. Each non-empty fragment becomes a done=False record, written and
       flushed before the next line is read.
    6. However the loop ends, exactly one done=True record is attempted.
       A failure to deliver it is tolerated.

Backpressure:
    There is no queue between reading and writing. The next upstream read
    happens only after the previous write and flush completed, so a slow
    client slows the upstream through flow control.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import StrEnum

from ollama_proxy.application.interfaces import ResponseSinkInterface, UpstreamStreamInterface
from ollama_proxy.application.translators import final_record, partial_record
from ollama_proxy.domain.entities import Clock, ResponseRecord, StreamDelta, utc_now
from ollama_proxy.domain.exceptions import (
    DownstreamClosedError,
    StreamingNotSupportedError,
    UpstreamStreamError,
)

logger = logging.getLogger(__name__)

SSE_DATA_FIELD = "data:"
DONE_SENTINEL = "[DONE]"
RECORD_SEPARATOR = b"\n"
MAX_LINE_BYTES = 1024 * 1024

RecordEncoder = Callable[[ResponseRecord], bytes]
"""Serializes one record to JSON bytes (without the trailing newline)."""


class TerminalReason(StrEnum):
    """Why the pump stopped reading upstream."""

    SENTINEL = "sentinel"
    EOF = "eof"
    UPSTREAM_ERROR = "upstream_error"
    DOWNSTREAM_CLOSED = "downstream_closed"


@dataclass(slots=True)
class PumpResult:
    """Outcome of one pump run.

    Attributes:
        records_emitted: Number of done=False records delivered.
        lines_skipped: Number of non-empty lines discarded as malformed.
        reason: Why the read loop ended.
        final_record_sent: Whether the done=True record was delivered.
    """

    records_emitted: int = 0
    lines_skipped: int = 0
    reason: TerminalReason = TerminalReason.EOF
    final_record_sent: bool = False


async def iter_lines(
    chunks: AsyncIterator[bytes],
    max_line_bytes: int = MAX_LINE_BYTES,
) -> AsyncIterator[bytes | None]:
    """Re-frame arbitrary byte chunks into ``\\n``-terminated lines.

    A final fragment without a terminating newline is not a line and is
    dropped. A line longer than ``max_line_bytes`` is discarded as it
    arrives and reported as a single None.
    """
    buffer = bytearray()
    oversized = False
    async for chunk in chunks:
        buffer.extend(chunk)
        while (index := buffer.find(b"\n")) >= 0:
            line = bytes(buffer[: index + 1])
            del buffer[: index + 1]
            if oversized or len(line) > max_line_bytes:
                oversized = False
                yield None
            else:
                yield line
        if len(buffer) > max_line_bytes:
            oversized = True
            buffer.clear()
    if buffer or oversized:
        logger.debug("stream_trailing_fragment_dropped: bytes=%d", len(buffer))


def extract_event_data(raw_line: bytes) -> str | None:
    """Return the event payload of one line, or None for an empty line.

    Raises:
        UnicodeDecodeError: If the line is not valid UTF-8.
    """
    text = raw_line.decode("utf-8").strip()
    if not text:
        return None
    if text.startswith(SSE_DATA_FIELD):
        text = text[len(SSE_DATA_FIELD) :].lstrip()
    return text


def parse_delta(payload: str) -> StreamDelta | None:
    """Parse one event payload, returning None when it is malformed."""
    try:
        return StreamDelta.from_chunk(json.loads(payload))
    except (ValueError, RecursionError):
        return None


class StreamingResponsePump:
    """Drives one streaming translation from an upstream body to a sink.

    The pump owns the upstream stream: it is closed when run() returns,
    whatever the outcome.

    Attributes:
        model: Model name echoed on every record.
    """

    __slots__ = ("_clock", "_encode", "_max_line_bytes", "_on_complete", "_upstream", "model")

    def __init__(
        self,
        upstream: UpstreamStreamInterface,
        model: str,
        encode: RecordEncoder,
        *,
        clock: Clock = utc_now,
        on_complete: Callable[[PumpResult], None] | None = None,
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self._upstream = upstream
        self.model = model
        self._encode = encode
        self._clock = clock
        self._on_complete = on_complete
        self._max_line_bytes = max_line_bytes

    @staticmethod
    def check_sink(sink: object) -> None:
        """Reject sinks that cannot flush incremental writes.

        Raises:
            StreamingNotSupportedError: If the sink lacks write or flush.
        """
        if not isinstance(sink, ResponseSinkInterface):
            raise StreamingNotSupportedError(f"{type(sink).__name__} does not support flushing")

    async def aclose(self) -> None:
        """Close the upstream stream. Safe to call more than once."""
        await self._upstream.aclose()

    async def run(self, sink: ResponseSinkInterface) -> PumpResult:
        """Pump the whole upstream body into the sink.

        Raises:
            StreamingNotSupportedError: If the sink cannot flush. Raised
                before anything is read or written.
        """
        try:
            self.check_sink(sink)
        except StreamingNotSupportedError:
            await self.aclose()
            raise

        result = PumpResult()
        try:
            result.reason = await self._pump_deltas(sink, result)
            result.final_record_sent = await self._emit_final(sink)
        finally:
            await self.aclose()

        logger.debug(
            "stream_finished: model=%s reason=%s records=%d skipped=%d",
            self.model,
            result.reason,
            result.records_emitted,
            result.lines_skipped,
        )
        if self._on_complete is not None:
            self._on_complete(result)
        return result

    async def _pump_deltas(self, sink: ResponseSinkInterface, result: PumpResult) -> TerminalReason:
        try:
            async for raw_line in iter_lines(self._upstream.aiter_bytes(), self._max_line_bytes):
                if raw_line is None:
                    result.lines_skipped += 1
                    logger.debug("stream_line_oversized: model=%s limit=%d", self.model, self._max_line_bytes)
                    continue
                try:
                    payload = extract_event_data(raw_line)
                except UnicodeDecodeError:
                    result.lines_skipped += 1
                    continue
                if payload is None:
                    continue
                if payload == DONE_SENTINEL:
                    return TerminalReason.SENTINEL

                delta = parse_delta(payload)
                if delta is None:
                    result.lines_skipped += 1
                    logger.debug("stream_line_skipped: model=%s line=%r", self.model, payload[:200])
                    continue
                if not delta.has_content:
                    continue

                await self._deliver(sink, partial_record(self.model, delta.content or "", clock=self._clock))
                result.records_emitted += 1
        except UpstreamStreamError as exc:
            logger.warning("stream_upstream_failed: model=%s error=%s", self.model, exc)
            return TerminalReason.UPSTREAM_ERROR
        except DownstreamClosedError:
            logger.info("stream_client_disconnected: model=%s", self.model)
            return TerminalReason.DOWNSTREAM_CLOSED
        except Exception as exc:
            logger.warning(
                "stream_upstream_failed: model=%s error_type=%s error=%s", self.model, type(exc).__name__, exc
            )
            return TerminalReason.UPSTREAM_ERROR
        return TerminalReason.EOF

    async def _emit_final(self, sink: ResponseSinkInterface) -> bool:
        try:
            await self._deliver(sink, final_record(self.model, clock=self._clock))
        except DownstreamClosedError:
            return False
        except Exception as exc:
            logger.warning(
                "stream_final_record_failed: model=%s error_type=%s error=%s", self.model, type(exc).__name__, exc
            )
            return False
        return True

    async def _deliver(self, sink: ResponseSinkInterface, record: ResponseRecord) -> None:
        await sink.write(self._encode(record) + RECORD_SEPARATOR)
        await sink.flush()


__all__ = [
    "DONE_SENTINEL",
    "MAX_LINE_BYTES",
    "PumpResult",
    "RecordEncoder",
    "StreamingResponsePump",
    "TerminalReason",
    "extract_event_data",
    "iter_lines",
    "parse_delta",
]
