"""Chat route for the Ollama ``/api/chat`` endpoint.

Endpoint:
    POST /api/chat
        - Request: ChatRequest (model, messages, stream, options, keep_alive)
        - Response: ChatResponse (non-streaming) or an NDJSON stream of
          ChatResponse records (streaming)

Request Flow:
    1. Body parsed and validated (ChatRequest), 400 on failure
    2. Mapped to the domain entity (images decoded)
    3. Executed via ChatUseCase against the configured backend
    4. Returned as one JSON object, or as a stream driven by the pump

Streaming:
    - stream=true selects the NDJSON stream; the default is one JSON object
    - One ``{"done": false}`` record per content delta, flushed immediately
    - Exactly one final ``{"done": true}`` record, also after upstream errors
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from ollama_proxy.api.dependencies import (
    get_chat_use_case,
    get_request_context,
    get_settings,
    parse_request_json,
)
from ollama_proxy.api.error_handlers import handle_route_errors
from ollama_proxy.api.mappers import (
    api_to_domain_chat_request,
    domain_to_api_chat_response,
    encode_chat_record,
)
from ollama_proxy.api.models import ChatRequest
from ollama_proxy.api.streaming import NDJSONStreamingResponse
from ollama_proxy.application.streaming import StreamingResponsePump
from ollama_proxy.application.use_cases import ChatUseCase
from ollama_proxy.infrastructure.config import ProxySettings

logger = logging.getLogger(__name__)

router = APIRouter()

UseCaseDep = Annotated[ChatUseCase, Depends(get_chat_use_case)]
SettingsDep = Annotated[ProxySettings, Depends(get_settings)]


@router.post("/api/chat", tags=["Chat"], response_model=None)
async def chat(
    request: Request,
    use_case: UseCaseDep,
    settings: SettingsDep,
) -> Response:
    """Chat completion endpoint.

    Args:
        request: FastAPI Request object. Body must contain ChatRequest JSON.
        use_case: ChatUseCase instance (injected via DI).
        settings: Proxy settings (injected via DI).

    Returns:
        - JSONResponse with one ChatResponse if stream is false
        - NDJSONStreamingResponse if stream is true

    Raises:
        HTTPException: With appropriate status code:
            - 400: Invalid JSON, invalid messages or invalid images
            - 502: Backend unreachable or undecodable
            - 504: Backend did not answer in time
            - backend status: Backend error forwarded verbatim
    """
    ctx = get_request_context(request)
    start_time = time.perf_counter()
    api_req: ChatRequest | None = None

    handle_error = handle_route_errors(
        ctx,
        "chat",
        start_time=start_time,
        timeout_seconds=settings.chat_timeout,
        event_builder=lambda: {
            "model": api_req.model if api_req else None,
            "stream": api_req.stream if api_req else None,
        },
    )

    api_req = await parse_request_json(request, ChatRequest)

    try:
        domain_req = api_to_domain_chat_request(api_req)
        result = await use_case.execute(
            domain_req,
            ctx.request_id,
            ctx.client_ip,
            encode=encode_chat_record,
        )

        if isinstance(result, StreamingResponsePump):
            logger.info("streaming_chat_started: request_id=%s, model=%s", ctx.request_id, result.model)
            return NDJSONStreamingResponse(result, request_id=ctx.request_id)

        response = domain_to_api_chat_response(result)
        return JSONResponse(content=response.model_dump(mode="json", exclude_none=True))

    except HTTPException:
        raise
    except Exception as exc:
        handle_error(exc)
