"""Translation between the inbound Ollama protocol and the OpenAI wire format.

All functions here are pure: they take domain entities or decoded JSON and
return domain entities. Anything time-dependent takes an injectable clock.

Key Functions:
    - build_completion_request: inbound ChatRequest -> outbound CompletionRequest
    - encode_message: one ChatMessage -> one outbound message object
    - translate_completion: upstream completion body -> final ResponseRecord
    - partial_record/final_record: streaming record constructors
    - translate_model_list: upstream ``data`` array -> ModelSummary list
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from ollama_proxy.domain.entities import (
    DONE_REASON,
    EPOCH,
    BackendFlavor,
    ChatMessage,
    ChatRequest,
    Clock,
    CompletionRequest,
    ModelSummary,
    ResponseRecord,
    utc_now,
)

logger = logging.getLogger(__name__)

LITELLM_SETTINGS: Mapping[str, Any] = {"modify_params": True}
"""Fixed setting asking LiteLLM to adapt parameters to the target provider."""

IMAGE_DATA_URL_PREFIX = "data:image/jpeg;base64,"

# Ollama option name -> OpenAI request field
OPENAI_OPTION_FIELDS: Mapping[str, str] = {
    "temperature": "temperature",
    "top_p": "top_p",
    "seed": "seed",
    "stop": "stop",
    "num_predict": "max_tokens",
    "frequency_penalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
}


def encode_content_parts(message: ChatMessage) -> list[dict[str, Any]]:
    """Encode a user message as OpenAI content parts.

    Each image becomes an ``image_url`` part holding a JPEG data URL, in
    order, followed by a text part when the message has text. A message
    without images becomes a single text part.
    """
    if not message.images:
        return [{"type": "text", "text": message.content}]

    parts: list[dict[str, Any]] = [
        {
            "type": "image_url",
            "image_url": {"url": IMAGE_DATA_URL_PREFIX + base64.b64encode(image).decode("ascii")},
        }
        for image in message.images
    ]
    if message.content:
        parts.append({"type": "text", "text": message.content})
    return parts


def encode_message(message: ChatMessage, flavor: BackendFlavor) -> dict[str, Any]:
    """Encode one inbound message for the given backend flavor.

    Only user messages sent to the OpenAI flavor use content parts. Every
    other combination is plain text, and images on non-user messages are
    dropped.
    """
    if flavor is BackendFlavor.OPENAI and message.role == "user":
        return {"role": message.role, "content": encode_content_parts(message)}

    if message.images:
        logger.debug(
            "dropping_images: role=%s flavor=%s count=%d",
            message.role,
            flavor,
            len(message.images),
        )
    return {"role": message.role, "content": message.content}


def _openai_extras(options: Mapping[str, Any] | None) -> dict[str, Any]:
    if not options:
        return {}
    return {
        target: options[source]
        for source, target in OPENAI_OPTION_FIELDS.items()
        if options.get(source) is not None
    }


def build_completion_request(request: ChatRequest, flavor: BackendFlavor) -> CompletionRequest:
    """Translate an inbound chat request into the outbound completion request.

    Model, stream flag and message order/count are preserved. LiteLLM
    requests drop options and keep_alive and carry the fixed
    ``litellm_settings`` block. OpenAI requests map the recognised
    generation options onto OpenAI fields. keep_alive is never forwarded.
    """
    messages = tuple(encode_message(message, flavor) for message in request.messages)

    match flavor:
        case BackendFlavor.LITELLM:
            extras: dict[str, Any] = {"litellm_settings": dict(LITELLM_SETTINGS)}
        case BackendFlavor.OPENAI:
            extras = _openai_extras(request.options)
        case _:
            raise ValueError(f"Unsupported backend flavor: {flavor!r}")

    return CompletionRequest(
        model=request.model,
        messages=messages,
        stream=request.stream,
        extras=extras,
    )


def extract_message_content(body: Mapping[str, Any]) -> str:
    """Return the first choice's message content, or "" when there is none."""
    choices = body.get("choices") or []
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, Mapping):
        return ""
    message = first.get("message") or {}
    if not isinstance(message, Mapping):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


def translate_completion(body: Mapping[str, Any], model: str, *, clock: Clock = utc_now) -> ResponseRecord:
    """Translate a non-streaming upstream completion into a final record.

    Zero choices is not an error: the record carries empty content.
    """
    return ResponseRecord(
        model=model,
        created_at=clock(),
        content=extract_message_content(body),
        done=True,
        done_reason=DONE_REASON,
    )


def partial_record(model: str, content: str, *, clock: Clock = utc_now) -> ResponseRecord:
    return ResponseRecord(model=model, created_at=clock(), content=content, done=False)


def final_record(model: str, *, clock: Clock = utc_now) -> ResponseRecord:
    """Terminal streaming record: empty content, done=True."""
    return ResponseRecord(
        model=model,
        created_at=clock(),
        content="",
        done=True,
        done_reason=DONE_REASON,
    )


def _modified_at(entry: Mapping[str, Any]) -> datetime:
    created = entry.get("created")
    if isinstance(created, int | float) and not isinstance(created, bool):
        try:
            return datetime.fromtimestamp(created, UTC)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    return EPOCH


def translate_model_list(entries: list[dict[str, Any]]) -> list[ModelSummary]:
    """Translate upstream model entries into inbound model summaries.

    Entries without a string ``id`` are skipped. Fields the upstream
    protocol does not provide keep their ModelSummary defaults.
    """
    summaries: list[ModelSummary] = []
    for entry in entries:
        model_id = entry.get("id") if isinstance(entry, Mapping) else None
        if not isinstance(model_id, str) or not model_id:
            logger.debug("skipping_model_entry: entry=%r", entry)
            continue
        summaries.append(
            ModelSummary(
                name=model_id,
                model=model_id,
                modified_at=_modified_at(entry),
            )
        )
    return summaries


__all__ = [
    "IMAGE_DATA_URL_PREFIX",
    "LITELLM_SETTINGS",
    "build_completion_request",
    "encode_content_parts",
    "encode_message",
    "extract_message_content",
    "final_record",
    "partial_record",
    "translate_completion",
    "translate_model_list",
]
