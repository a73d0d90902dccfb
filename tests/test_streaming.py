"""
Behavioral tests for the streaming response pump.

The pump is driven with in-memory upstream streams and sinks; every test
checks the NDJSON records the client would see.
"""

from __future__ import annotations

import json

import pytest

from ollama_proxy.api.mappers import encode_chat_record, encode_generate_record
from ollama_proxy.application.streaming import (
    PumpResult,
    StreamingResponsePump,
    TerminalReason,
    extract_event_data,
    iter_lines,
    parse_delta,
)
from ollama_proxy.domain.exceptions import StreamingNotSupportedError
from tests.helpers import (
    ClosingSink,
    FakeUpstream,
    NoFlushSink,
    RecordingSink,
    aiter_chunks,
    content_chunk,
    fixed_clock,
    sse_lines,
)


def _pump(upstream: FakeUpstream, *, encode=encode_chat_record, on_complete=None) -> StreamingResponsePump:
    return StreamingResponsePump(upstream, "m", encode, clock=fixed_clock, on_complete=on_complete)


def _contents(records: list[dict]) -> list[str]:
    return [record["message"]["content"] for record in records if not record["done"]]


class TestLineFraming:
    @pytest.mark.asyncio
    async def test_lines_are_reassembled_across_chunks(self):
        chunks = [b"data: {\"a\"", b": 1}\ndata: [DO", b"NE]\n"]
        lines = [line async for line in iter_lines(aiter_chunks(chunks))]
        assert lines == [b"data: {\"a\": 1}\n", b"data: [DONE]\n"]

    @pytest.mark.asyncio
    async def test_several_lines_in_one_chunk(self):
        lines = [line async for line in iter_lines(aiter_chunks([b"a\nb\n\nc\n"]))]
        assert lines == [b"a\n", b"b\n", b"\n", b"c\n"]

    @pytest.mark.asyncio
    async def test_trailing_fragment_without_newline_is_dropped(self):
        lines = [line async for line in iter_lines(aiter_chunks([b"a\n", b"partial"]))]
        assert lines == [b"a\n"]

    @pytest.mark.asyncio
    async def test_overlong_line_is_discarded_as_it_arrives(self):
        chunks = [b"ok\n", b"x" * 6, b"x" * 6, b"yy\nnext\n"]
        lines = [line async for line in iter_lines(aiter_chunks(chunks), max_line_bytes=8)]
        assert lines == [b"ok\n", None, b"next\n"]

    @pytest.mark.asyncio
    async def test_overlong_line_inside_one_chunk(self):
        lines = [line async for line in iter_lines(aiter_chunks([b"y" * 20 + b"\nok\n"]), max_line_bytes=8)]
        assert lines == [None, b"ok\n"]


class TestEventData:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (b"data: {\"x\": 1}\n", "{\"x\": 1}"),
            (b"data:{\"x\": 1}\r\n", "{\"x\": 1}"),
            (b"   data: [DONE]  \n", "[DONE]"),
            (b"{\"x\": 1}\n", "{\"x\": 1}"),
            (b"\n", None),
            (b"  \r\n", None),
        ],
    )
    def test_prefix_and_whitespace_are_stripped(self, raw, expected):
        assert extract_event_data(raw) == expected

    def test_parse_delta_returns_none_for_malformed_payloads(self):
        assert parse_delta("{not json") is None
        assert parse_delta("[1, 2]") is None
        assert parse_delta("{\"a\": " * 100_000 + "1" + "}" * 100_000) is None
        assert parse_delta(json.dumps(content_chunk("A"))).content == "A"


@pytest.mark.asyncio
class TestStreamingResponsePump:
    """End-to-end pump behavior against in-memory sinks."""

    async def test_scenario_single_delta_then_done(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))
        sink = RecordingSink()

        result = await _pump(upstream).run(sink)

        records = sink.records()
        assert len(records) == 2
        assert records[0] == {
            "model": "m",
            "created_at": "2025-01-02T03:04:05Z",
            "message": {"role": "assistant", "content": "A"},
            "done": False,
        }
        assert records[1]["done"] is True
        assert records[1]["done_reason"] == "stop"
        assert records[1]["message"]["content"] == ""
        assert result.reason is TerminalReason.SENTINEL
        assert result.records_emitted == 1
        assert result.final_record_sent is True

    async def test_each_record_is_flushed_individually(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), content_chunk("B"), "[DONE]"))
        sink = RecordingSink()

        await _pump(upstream).run(sink)

        assert len(sink.flushed) == 3
        assert all(chunk.endswith(b"\n") and chunk.count(b"\n") == 1 for chunk in sink.flushed)

    async def test_empty_upstream_still_yields_one_final_record(self):
        sink = RecordingSink()

        result = await _pump(FakeUpstream([])).run(sink)

        records = sink.records()
        assert len(records) == 1
        assert records[0]["done"] is True
        assert result.reason is TerminalReason.EOF

    async def test_sentinel_stops_reading(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]", content_chunk("after")))
        sink = RecordingSink()

        await _pump(upstream).run(sink)

        assert _contents(sink.records()) == ["A"]

    async def test_malformed_lines_are_skipped_without_ending_the_stream(self):
        chunks = [
            b"data: {broken\n",
            *sse_lines(content_chunk("A")),
            b"data: \xff\xfe\n",
            b"data: [1, 2, 3]\n",
            *sse_lines(content_chunk("B"), "[DONE]"),
        ]
        sink = RecordingSink()

        result = await _pump(FakeUpstream(chunks)).run(sink)

        assert _contents(sink.records()) == ["A", "B"]
        assert result.lines_skipped == 3
        assert sum(1 for r in sink.records() if r["done"]) == 1

    async def test_empty_and_contentless_deltas_emit_nothing(self):
        chunks = [
            b"\n",
            b"   \r\n",
            *sse_lines(
                {"choices": [{"delta": {"role": "assistant", "content": ""}}]},
                {"choices": []},
                {"choices": [{"delta": {}, "finish_reason": "stop"}]},
                content_chunk("X"),
                "[DONE]",
            ),
        ]
        sink = RecordingSink()

        result = await _pump(FakeUpstream(chunks)).run(sink)

        assert _contents(sink.records()) == ["X"]
        assert result.records_emitted == 1
        assert result.lines_skipped == 0

    async def test_record_count_matches_non_empty_deltas(self):
        deltas = ["a", "", "b", None, "c"]
        chunks = sse_lines(*(content_chunk(d) for d in deltas))
        sink = RecordingSink()

        await _pump(FakeUpstream(chunks)).run(sink)

        assert _contents(sink.records()) == ["a", "b", "c"]

    async def test_deltas_split_across_chunk_boundaries(self):
        body = b"".join(sse_lines(content_chunk("Hel"), content_chunk("lo"), "[DONE]"))
        chunks = [body[i : i + 7] for i in range(0, len(body), 7)]
        sink = RecordingSink()

        await _pump(FakeUpstream(chunks)).run(sink)

        assert _contents(sink.records()) == ["Hel", "lo"]

    async def test_unterminated_last_line_is_dropped(self):
        chunks = [*sse_lines(content_chunk("A")), b'data: {"choices": [{"delta": {"content": "B"}}]}']
        sink = RecordingSink()

        result = await _pump(FakeUpstream(chunks)).run(sink)

        assert _contents(sink.records()) == ["A"]
        assert sink.records()[-1]["done"] is True
        assert result.reason is TerminalReason.EOF

    async def test_upstream_failure_ends_stream_with_final_record(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), content_chunk("B")), fail_after=1)
        sink = RecordingSink()

        result = await _pump(upstream).run(sink)

        records = sink.records()
        assert _contents(records) == ["A"]
        assert records[-1]["done"] is True
        assert result.reason is TerminalReason.UPSTREAM_ERROR
        assert upstream.closed >= 1

    async def test_client_disconnect_stops_reading_upstream(self):
        upstream = FakeUpstream(sse_lines(*(content_chunk(str(i)) for i in range(10)), "[DONE]"))
        sink = ClosingSink(accept=2)

        result = await _pump(upstream).run(sink)

        assert _contents(sink.records()) == ["0", "1"]
        assert result.reason is TerminalReason.DOWNSTREAM_CLOSED
        assert result.final_record_sent is False
        # One failed content write plus one attempted final record
        assert sink.attempts == 4
        assert upstream.chunks_read == 3
        assert upstream.closed >= 1

    async def test_final_record_failure_is_tolerated(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))
        sink = ClosingSink(accept=1)

        result = await _pump(upstream).run(sink)

        assert _contents(sink.records()) == ["A"]
        assert result.reason is TerminalReason.SENTINEL
        assert result.final_record_sent is False

    async def test_deeply_nested_line_is_skipped(self):
        nested = "[" * 100_000 + "]" * 100_000
        upstream = FakeUpstream(sse_lines(content_chunk("A"), nested, content_chunk("B"), "[DONE]"))
        sink = RecordingSink()

        result = await _pump(upstream).run(sink)

        records = sink.records()
        assert _contents(records) == ["A", "B"]
        assert sum(1 for r in records if r["done"]) == 1
        assert records[-1]["done"] is True
        assert result.lines_skipped == 1
        assert result.reason is TerminalReason.SENTINEL

    async def test_overlong_line_counts_as_malformed(self):
        upstream = FakeUpstream([b"data: " + b"x" * 300 + b"\n", *sse_lines(content_chunk("A"), "[DONE]")])
        sink = RecordingSink()
        pump = StreamingResponsePump(upstream, "m", encode_chat_record, clock=fixed_clock, max_line_bytes=128)

        result = await pump.run(sink)

        assert _contents(sink.records()) == ["A"]
        assert result.lines_skipped == 1
        assert result.reason is TerminalReason.SENTINEL

    async def test_encoder_failure_still_ends_with_final_record(self):
        def encode(record):
            if record.content == "bad":
                raise TypeError("cannot encode record")
            return encode_chat_record(record)

        upstream = FakeUpstream(sse_lines(content_chunk("A"), content_chunk("bad"), content_chunk("C"), "[DONE]"))
        sink = RecordingSink()

        result = await _pump(upstream, encode=encode).run(sink)

        records = sink.records()
        assert _contents(records) == ["A"]
        assert records[-1]["done"] is True
        assert result.reason is TerminalReason.UPSTREAM_ERROR
        assert result.final_record_sent is True
        assert upstream.closed >= 1

    async def test_final_record_encoding_failure_is_tolerated(self):
        def encode(record):
            if record.done:
                raise TypeError("cannot encode record")
            return encode_chat_record(record)

        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))
        sink = RecordingSink()

        result = await _pump(upstream, encode=encode).run(sink)

        assert _contents(sink.records()) == ["A"]
        assert result.reason is TerminalReason.SENTINEL
        assert result.final_record_sent is False

    async def test_sink_without_flush_is_rejected_before_any_write(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))
        sink = NoFlushSink()

        with pytest.raises(StreamingNotSupportedError):
            await _pump(upstream).run(sink)  # type: ignore[arg-type]

        assert sink.written == bytearray()
        assert upstream.chunks_read == 0
        assert upstream.closed == 1

    async def test_on_complete_receives_the_result(self):
        seen: list[PumpResult] = []
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))

        result = await _pump(upstream, on_complete=seen.append).run(RecordingSink())

        assert seen == [result]

    async def test_generate_encoder_produces_generate_records(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))
        sink = RecordingSink()

        await _pump(upstream, encode=encode_generate_record).run(sink)

        records = sink.records()
        assert records[0] == {
            "model": "m",
            "created_at": "2025-01-02T03:04:05Z",
            "response": "A",
            "done": False,
        }
        assert records[1]["response"] == ""
        assert records[1]["done"] is True
