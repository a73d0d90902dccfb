"""Request and response models for the Ollama-compatible REST API.

This module defines Pydantic v2 models for the inbound wire protocol. They
mirror the Ollama server's JSON shapes so existing Ollama clients can talk
to the proxy unchanged.

Key Behaviors:
    - Request models ignore unknown fields (Ollama clients send fields such
      as ``format`` or ``template`` the proxy does not use)
    - Message roles are restricted to user/assistant/system
    - Message content is never stripped; whitespace is meaningful in tokens
    - Response models reject extra fields and omit unset optional fields
      when serialized with ``exclude_none``

Key Models:
    - Request Models: ChatRequest, GenerateRequest
    - Response Models: ChatResponse, GenerateResponse, ModelsResponse,
      VersionResponse, MetricsResponse, ErrorResponse
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """A chat message in the inbound conversation.

    Attributes:
        role: Message role. Must be "user", "assistant", or "system".
        content: Text content of the message. Defaults to "".
        images: Base64-encoded images. Forwarded only on user messages.
    """

    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant", "system"] = Field(
        ..., description="Message role: 'user', 'assistant', or 'system'"
    )
    content: str = Field("", description="Text content of the message")
    images: list[str] | None = Field(None, description="Base64-encoded images")


class ChatRequest(BaseModel):
    """Request model for ``POST /api/chat``.

    Attributes:
        model: Model name, forwarded as-is. Defaults to "".
        messages: Conversation, at least one message.
        stream: Whether to stream NDJSON records. Defaults to False.
        options: Free-form generation options.
        keep_alive: Advisory keep-alive hint; accepted and ignored.
    """

    model_config = ConfigDict(extra="ignore")

    model: str = Field("", description="Model to use")
    messages: list[ChatMessage] = Field(..., min_length=1, description="List of chat messages")
    stream: bool = Field(False, description="Whether to stream the response")
    options: dict[str, Any] | None = Field(None, description="Generation options")
    keep_alive: str | float | None = Field(None, description="Keep-alive hint (ignored)")


class GenerateRequest(BaseModel):
    """Request model for ``POST /api/generate``.

    Attributes:
        model: Model name, forwarded as-is. Defaults to "".
        prompt: Prompt text. Defaults to "".
        system: System prompt sent before the prompt. Optional.
        images: Base64-encoded images attached to the prompt.
        stream: Whether to stream NDJSON records. Defaults to False.
        options: Free-form generation options.
        keep_alive: Advisory keep-alive hint; accepted and ignored.
    """

    model_config = ConfigDict(extra="ignore")

    model: str = Field("", description="Model to use")
    prompt: str = Field("", description="The prompt to generate text from")
    system: str | None = Field(None, description="System message for the model")
    images: list[str] | None = Field(None, description="Base64-encoded images")
    stream: bool = Field(False, description="Whether to stream the response")
    options: dict[str, Any] | None = Field(None, description="Generation options")
    keep_alive: str | float | None = Field(None, description="Keep-alive hint (ignored)")


class ResponseMessage(BaseModel):
    """Assistant message carried by chat responses."""

    model_config = ConfigDict(extra="forbid")

    role: Literal["assistant"] = Field("assistant", description="Message role")
    content: str = Field(..., description="Message text (incremental when streaming)")


class ChatResponse(BaseModel):
    """Response (or one stream record) of ``POST /api/chat``.

    Attributes:
        model: Model name echoed from the request.
        created_at: Time the record was produced (UTC).
        message: Assistant message. Empty content on the final stream record.
        done: True on the final record only.
        done_reason: Set on final records only.
    """

    model_config = ConfigDict(extra="forbid")

    model: str = Field(..., description="Model name")
    created_at: datetime = Field(..., description="Record creation time")
    message: ResponseMessage = Field(..., description="Assistant message")
    done: bool = Field(..., description="Whether response is complete")
    done_reason: str | None = Field(None, description="Why generation finished")


class GenerateResponse(BaseModel):
    """Response (or one stream record) of ``POST /api/generate``."""

    model_config = ConfigDict(extra="forbid")

    model: str = Field(..., description="Model name")
    created_at: datetime = Field(..., description="Record creation time")
    response: str = Field(..., description="Generated text (incremental when streaming)")
    done: bool = Field(..., description="Whether response is complete")
    done_reason: str | None = Field(None, description="Why generation finished")


class ModelInfo(BaseModel):
    """One entry of ``GET /api/tags``.

    Only name and model come from the backend; the other fields are
    placeholders because the backend's model list does not carry them.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Model name")
    model: str = Field(..., description="Model identifier")
    modified_at: datetime = Field(..., description="Last modification time")
    size: int = Field(0, ge=0, description="Model size in bytes")
    digest: str = Field(..., description="Model digest")
    details: dict[str, Any] = Field(default_factory=dict, description="Model details")


class ModelsResponse(BaseModel):
    """Response model for ``GET /api/tags``."""

    model_config = ConfigDict(extra="forbid")

    models: list[ModelInfo] = Field(..., description="List of available models")


class VersionResponse(BaseModel):
    """Response model for ``GET /api/version``."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(..., description="Advertised server version")


class MetricsResponse(BaseModel):
    """Response model for ``GET /metrics``."""

    model_config = ConfigDict(extra="forbid")

    total_requests: int = Field(..., ge=0)
    successful_requests: int = Field(..., ge=0)
    failed_requests: int = Field(..., ge=0)
    requests_by_model: dict[str, int] = Field(default_factory=dict)
    requests_by_operation: dict[str, int] = Field(default_factory=dict)
    average_latency_ms: float = Field(..., ge=0.0)
    p50_latency_ms: float = Field(..., ge=0.0)
    p95_latency_ms: float = Field(..., ge=0.0)
    p99_latency_ms: float = Field(..., ge=0.0)
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    last_request_time: datetime | None = None
    first_request_time: datetime | None = None


class ErrorResponse(BaseModel):
    """Standardized error body returned by the error handlers.

    Attributes:
        error: Human-readable error message.
        error_type: Type/category of error. None if not available.
        request_id: Request identifier for tracking. None if not available.
    """

    model_config = ConfigDict(extra="forbid")

    error: str = Field(..., description="Error message")
    error_type: str | None = Field(None, description="Error type")
    request_id: str | None = Field(None, description="Request identifier if available")


@dataclass(slots=True, frozen=True)
class RequestContext:
    """Per-request metadata used for logging.

    Attributes:
        request_id: Unique identifier generated for the request.
        client_ip: Remote address of the caller, if known.
        user_agent: User-Agent header, if sent.
    """

    request_id: str
    client_ip: str | None
    user_agent: str | None
