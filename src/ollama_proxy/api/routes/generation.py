"""Generation route for the Ollama ``/api/generate`` endpoint.

Endpoint:
    POST /api/generate
        - Request: GenerateRequest (model, prompt, system, images, stream, ...)
        - Response: GenerateResponse (non-streaming) or an NDJSON stream of
          GenerateResponse records (streaming)

The prompt is sent to the backend as a chat conversation, so this route
shares the chat translation, error mapping and streaming pump.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from ollama_proxy.api.dependencies import (
    get_generate_use_case,
    get_request_context,
    get_settings,
    parse_request_json,
)
from ollama_proxy.api.error_handlers import handle_route_errors
from ollama_proxy.api.mappers import (
    api_to_domain_generate_request,
    domain_to_api_generate_response,
    encode_generate_record,
)
from ollama_proxy.api.models import GenerateRequest
from ollama_proxy.api.streaming import NDJSONStreamingResponse
from ollama_proxy.application.streaming import StreamingResponsePump
from ollama_proxy.application.use_cases import GenerateUseCase
from ollama_proxy.infrastructure.config import ProxySettings

logger = logging.getLogger(__name__)

router = APIRouter()

UseCaseDep = Annotated[GenerateUseCase, Depends(get_generate_use_case)]
SettingsDep = Annotated[ProxySettings, Depends(get_settings)]


@router.post("/api/generate", tags=["Generation"], response_model=None)
async def generate(
    request: Request,
    use_case: UseCaseDep,
    settings: SettingsDep,
) -> Response:
    """Generate text from a single prompt.

    Returns:
        - JSONResponse with one GenerateResponse if stream is false
        - NDJSONStreamingResponse if stream is true
    """
    ctx = get_request_context(request)
    api_req: GenerateRequest | None = None

    handle_error = handle_route_errors(
        ctx,
        "generate",
        start_time=time.perf_counter(),
        timeout_seconds=settings.chat_timeout,
        event_builder=lambda: {
            "model": api_req.model if api_req else None,
            "stream": api_req.stream if api_req else None,
        },
    )

    api_req = await parse_request_json(request, GenerateRequest)

    try:
        domain_req = api_to_domain_generate_request(api_req)
        result = await use_case.execute(
            domain_req,
            ctx.request_id,
            ctx.client_ip,
            encode=encode_generate_record,
        )

        if isinstance(result, StreamingResponsePump):
            logger.info("streaming_generate_started: request_id=%s, model=%s", ctx.request_id, result.model)
            return NDJSONStreamingResponse(result, request_id=ctx.request_id)

        response = domain_to_api_generate_response(result)
        return JSONResponse(content=response.model_dump(mode="json", exclude_none=True))

    except HTTPException:
        raise
    except Exception as exc:
        handle_error(exc)
