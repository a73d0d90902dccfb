"""Mappers between API models and domain entities.

Design Principles:
    - Unidirectional: API -> Domain (requests) and Domain -> API (responses)
    - Isolated: All mapping logic centralized in this module

Key Mappers:
    - api_to_domain_*: Convert API request models to domain entities
    - domain_to_api_*: Convert domain entities to API response models
    - encode_*_record: Serialize one streaming record for the NDJSON body
"""

from __future__ import annotations

import base64
import binascii

from ollama_proxy.api.models import (
    ChatMessage as APIChatMessage,
    ChatRequest as APIChatRequest,
    ChatResponse as APIChatResponse,
    GenerateRequest as APIGenerateRequest,
    GenerateResponse as APIGenerateResponse,
    ModelInfo as APIModelInfo,
    ModelsResponse,
    ResponseMessage,
)
from ollama_proxy.domain.entities import (
    ASSISTANT_ROLE,
    ChatMessage,
    ChatRequest,
    GenerateRequest,
    ModelSummary,
    ResponseRecord,
)
from ollama_proxy.domain.exceptions import InvalidRequestError


def decode_image(value: str) -> bytes:
    """Decode one base64 image, accepting an optional ``data:`` URL prefix.

    Raises:
        InvalidRequestError: If the value is not valid base64.
    """
    payload = value.partition(",")[2] if value.startswith("data:") else value
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError("images must contain valid base64 data") from exc


def _decode_images(images: list[str] | None) -> tuple[bytes, ...]:
    return tuple(decode_image(image) for image in images or ())


def api_to_domain_message(api_msg: APIChatMessage) -> ChatMessage:
    return ChatMessage(
        role=api_msg.role,
        content=api_msg.content,
        images=_decode_images(api_msg.images),
    )


def api_to_domain_chat_request(api_req: APIChatRequest) -> ChatRequest:
    """Convert an API chat request to the domain entity.

    Raises:
        InvalidRequestError: If an image is not valid base64 or the
            request violates domain invariants.
    """
    try:
        return ChatRequest(
            model=api_req.model,
            messages=tuple(api_to_domain_message(msg) for msg in api_req.messages),
            stream=api_req.stream,
            options=api_req.options,
            keep_alive=api_req.keep_alive,
        )
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc


def api_to_domain_generate_request(api_req: APIGenerateRequest) -> GenerateRequest:
    return GenerateRequest(
        model=api_req.model,
        prompt=api_req.prompt,
        system=api_req.system,
        images=_decode_images(api_req.images),
        stream=api_req.stream,
        options=api_req.options,
        keep_alive=api_req.keep_alive,
    )


def domain_to_api_chat_response(record: ResponseRecord) -> APIChatResponse:
    return APIChatResponse(
        model=record.model,
        created_at=record.created_at,
        message=ResponseMessage(role=ASSISTANT_ROLE, content=record.content),
        done=record.done,
        done_reason=record.done_reason,
    )


def domain_to_api_generate_response(record: ResponseRecord) -> APIGenerateResponse:
    return APIGenerateResponse(
        model=record.model,
        created_at=record.created_at,
        response=record.content,
        done=record.done,
        done_reason=record.done_reason,
    )


def encode_chat_record(record: ResponseRecord) -> bytes:
    """Serialize one chat stream record; done_reason is omitted when unset."""
    return domain_to_api_chat_response(record).model_dump_json(exclude_none=True).encode("utf-8")


def encode_generate_record(record: ResponseRecord) -> bytes:
    return domain_to_api_generate_response(record).model_dump_json(exclude_none=True).encode("utf-8")


def domain_to_api_models(models: list[ModelSummary]) -> ModelsResponse:
    return ModelsResponse(
        models=[
            APIModelInfo(
                name=summary.name,
                model=summary.model,
                modified_at=summary.modified_at,
                size=summary.size,
                digest=summary.digest,
                details=dict(summary.details),
            )
            for summary in models
        ]
    )


__all__ = [
    "api_to_domain_chat_request",
    "api_to_domain_generate_request",
    "api_to_domain_message",
    "decode_image",
    "domain_to_api_chat_response",
    "domain_to_api_generate_response",
    "domain_to_api_models",
    "encode_chat_record",
    "encode_generate_record",
]
