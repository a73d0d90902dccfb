"""
Tests for API <-> domain mappers and the ASGI streaming response.
"""

from __future__ import annotations

import base64
import json

import anyio
import pytest

from ollama_proxy.api.mappers import (
    api_to_domain_chat_request,
    api_to_domain_generate_request,
    decode_image,
    domain_to_api_models,
    encode_chat_record,
)
from ollama_proxy.api.models import ChatRequest as APIChatRequest
from ollama_proxy.api.models import GenerateRequest as APIGenerateRequest
from ollama_proxy.api.streaming import ASGIResponseSink, NDJSONStreamingResponse
from ollama_proxy.application.streaming import StreamingResponsePump
from ollama_proxy.domain.entities import ModelSummary, ResponseRecord
from ollama_proxy.domain.exceptions import DownstreamClosedError, InvalidRequestError
from tests.helpers import FIXED_NOW, FakeUpstream, NoFlushSink, content_chunk, decode_ndjson, fixed_clock, sse_lines


class TestImageDecoding:
    def test_plain_base64(self):
        assert decode_image(base64.b64encode(b"png-bytes").decode()) == b"png-bytes"

    def test_data_url_prefix_is_accepted(self):
        encoded = base64.b64encode(b"jpeg-bytes").decode()
        assert decode_image(f"data:image/jpeg;base64,{encoded}") == b"jpeg-bytes"

    @pytest.mark.parametrize("value", ["***", "abc", "data:image/png;base64,%%%"])
    def test_invalid_base64_is_an_invalid_request(self, value):
        with pytest.raises(InvalidRequestError):
            decode_image(value)


class TestRequestMapping:
    def test_chat_request_keeps_order_and_flags(self):
        api_req = APIChatRequest.model_validate(
            {
                "model": "m",
                "messages": [
                    {"role": "system", "content": "s"},
                    {"role": "user", "content": "u", "images": [base64.b64encode(b"i").decode()]},
                ],
                "stream": True,
                "keep_alive": "5m",
            }
        )

        domain = api_to_domain_chat_request(api_req)

        assert [m.role for m in domain.messages] == ["system", "user"]
        assert domain.messages[1].images == (b"i",)
        assert domain.stream is True
        assert domain.keep_alive == "5m"

    def test_generate_request_mapping(self):
        api_req = APIGenerateRequest.model_validate({"model": "m", "prompt": "p", "system": "s"})

        domain = api_to_domain_generate_request(api_req)

        assert (domain.model, domain.prompt, domain.system, domain.stream) == ("m", "p", "s", False)


def test_chat_record_encoding_omits_unset_done_reason():
    record = ResponseRecord(model="m", created_at=FIXED_NOW, content="tok", done=False)

    assert json.loads(encode_chat_record(record)) == {
        "model": "m",
        "created_at": "2025-01-02T03:04:05Z",
        "message": {"role": "assistant", "content": "tok"},
        "done": False,
    }


def test_model_list_mapping():
    response = domain_to_api_models([ModelSummary(name="a", model="a")])
    assert response.model_dump(mode="json")["models"][0]["digest"] == "dummy"


class _RecordingSend:
    def __init__(self, fail_after: int | None = None) -> None:
        self.messages: list[dict] = []
        self.fail_after = fail_after

    async def __call__(self, message: dict) -> None:
        if self.fail_after is not None and len(self.messages) >= self.fail_after:
            raise anyio.BrokenResourceError
        self.messages.append(message)

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")


@pytest.mark.asyncio
class TestASGIStreaming:
    async def test_sink_sends_one_body_message_per_flush(self):
        send = _RecordingSend()
        sink = ASGIResponseSink(send)

        await sink.write(b"a")
        await sink.write(b"b\n")
        await sink.flush()
        await sink.flush()

        assert send.messages == [{"type": "http.response.body", "body": b"ab\n", "more_body": True}]

    async def test_sink_reports_disconnect(self):
        sink = ASGIResponseSink(_RecordingSend(fail_after=0))
        await sink.write(b"x")

        with pytest.raises(DownstreamClosedError):
            await sink.flush()

    async def test_response_streams_records_then_ends_body(self):
        pump = StreamingResponsePump(
            FakeUpstream(sse_lines(content_chunk("A"), "[DONE]")), "m", encode_chat_record, clock=fixed_clock
        )
        send = _RecordingSend()

        await NDJSONStreamingResponse(pump, request_id="r1").stream_response(send)

        start = send.messages[0]
        assert start["type"] == "http.response.start"
        assert start["status"] == 200
        assert (b"content-type", b"application/json") in start["headers"]
        assert (b"cache-control", b"no-cache") in start["headers"]
        assert (b"connection", b"keep-alive") in start["headers"]
        assert send.messages[-1] == {"type": "http.response.body", "body": b"", "more_body": False}
        assert [r["done"] for r in decode_ndjson(send.body)] == [False, True]

    async def test_client_disconnect_ends_response_quietly(self):
        upstream = FakeUpstream(sse_lines(*(content_chunk(str(i)) for i in range(5)), "[DONE]"))
        pump = StreamingResponsePump(upstream, "m", encode_chat_record, clock=fixed_clock)
        send = _RecordingSend(fail_after=2)

        await NDJSONStreamingResponse(pump).stream_response(send)

        assert len(send.messages) == 2
        assert upstream.closed >= 1

    async def test_sink_without_flush_fails_before_any_body(self):
        upstream = FakeUpstream(sse_lines(content_chunk("A"), "[DONE]"))
        pump = StreamingResponsePump(upstream, "m", encode_chat_record, clock=fixed_clock)
        send = _RecordingSend()

        await NDJSONStreamingResponse(pump, request_id="r1", sink_factory=lambda _send: NoFlushSink()).stream_response(
            send
        )

        assert send.messages[0]["status"] == 500
        assert json.loads(send.body)["request_id"] == "r1"
        assert upstream.chunks_read == 0
        assert upstream.closed >= 1
