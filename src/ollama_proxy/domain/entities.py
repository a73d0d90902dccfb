"""Domain entities for the Ollama proxy.

This module defines pure domain models for the two wire protocols the proxy
sits between. Entities contain validation and invariants but no I/O and no
framework dependencies.

Design Principles:
    - Immutability: All entities are frozen dataclasses (slots=True)
    - Validation: Invariants enforced in __post_init__ methods
    - No I/O: Entities contain no file/network operations
    - Framework-agnostic: No FastAPI, httpx, or Pydantic deps

Key Entities:
    - ChatMessage/ChatRequest/GenerateRequest: Inbound requests
    - CompletionRequest: Outbound OpenAI-compatible request
    - StreamDelta: One parsed upstream streaming chunk
    - ResponseRecord: One inbound-protocol response object (partial or final)
    - ModelSummary: One entry of the inbound model list
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Self

VALID_ROLES = frozenset({"user", "assistant", "system"})
"""Message roles accepted on the inbound chat endpoint."""

ASSISTANT_ROLE = "assistant"
"""Role attached to every message produced by the proxy."""

DONE_REASON = "stop"
"""done_reason reported on every terminal record."""

PLACEHOLDER_DIGEST = "dummy"
"""Digest reported for upstream models, which carry no content hash."""

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
"""modified_at reported when the upstream model entry has no timestamp."""

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(UTC)


class BackendFlavor(StrEnum):
    """Kind of OpenAI-compatible backend behind the proxy.

    Attributes:
        OPENAI: The OpenAI API (or a strict clone). User images are sent
            as structured content parts.
        LITELLM: A LiteLLM gateway. Content is sent as plain text and the
            gateway is asked to adapt parameters for the target provider.
    """

    OPENAI = "openai"
    LITELLM = "litellm"


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """A single message in an inbound conversation.

    Attributes:
        role: Message role. Must be one of VALID_ROLES.
        content: Message text. May be empty when images are attached.
        images: Raw image payloads (already decoded from base64). Only
            user messages forward them upstream.

    Raises:
        ValueError: If role is not one of VALID_ROLES.
    """

    role: str
    content: str = ""
    images: tuple[bytes, ...] = ()

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid role '{self.role}'. Must be one of {sorted(VALID_ROLES)}")


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """Inbound chat request.

    Attributes:
        model: Model name, forwarded to the backend as-is (may be empty).
        messages: Ordered conversation. Must contain at least one message.
        stream: Whether the caller wants an NDJSON stream.
        options: Free-form generation options. Only forwarded to OpenAI.
        keep_alive: Advisory keep-alive hint. Never forwarded.

    Raises:
        ValueError: If messages is empty.
    """

    model: str
    messages: tuple[ChatMessage, ...]
    stream: bool = False
    options: Mapping[str, Any] | None = None
    keep_alive: str | float | None = None

    def __post_init__(self) -> None:
        if not self.messages:
            raise ValueError("messages must contain at least one message")


@dataclass(slots=True, frozen=True)
class GenerateRequest:
    """Inbound single-prompt generation request.

    Attributes:
        model: Model name, forwarded as-is.
        prompt: Prompt text sent as the user message.
        system: Optional system prompt, sent before the user message.
        images: Raw image payloads attached to the user message.
        stream: Whether the caller wants an NDJSON stream.
        options: Free-form generation options.
        keep_alive: Advisory keep-alive hint. Never forwarded.
    """

    model: str
    prompt: str = ""
    system: str | None = None
    images: tuple[bytes, ...] = ()
    stream: bool = False
    options: Mapping[str, Any] | None = None
    keep_alive: str | float | None = None

    def to_chat_request(self) -> ChatRequest:
        """Express the generation request as an equivalent chat request."""
        messages: list[ChatMessage] = []
        if self.system:
            messages.append(ChatMessage(role="system", content=self.system))
        messages.append(ChatMessage(role="user", content=self.prompt, images=self.images))
        return ChatRequest(
            model=self.model,
            messages=tuple(messages),
            stream=self.stream,
            options=self.options,
            keep_alive=self.keep_alive,
        )


@dataclass(slots=True, frozen=True)
class CompletionRequest:
    """Outbound request for ``POST {base_url}/chat/completions``.

    Attributes:
        model: Model name.
        messages: Messages already encoded for the backend flavor.
        stream: Whether to ask the backend for an SSE stream.
        extras: Backend-specific top-level fields merged into the payload.
    """

    model: str
    messages: tuple[dict[str, Any], ...]
    stream: bool = False
    extras: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body sent upstream."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": list(self.messages),
            "stream": self.stream,
        }
        payload.update(self.extras)
        return payload


@dataclass(slots=True, frozen=True)
class StreamDelta:
    """One parsed upstream streaming chunk.

    Attributes:
        content: Content fragment of the first choice, if any.
        finish_reason: Finish reason of the first choice, if any.
    """

    content: str | None = None
    finish_reason: str | None = None

    @classmethod
    def from_chunk(cls, chunk: Any) -> Self:
        """Build a delta from a decoded ``chat.completion.chunk`` object.

        A chunk without choices (e.g. a trailing usage chunk) yields an
        empty delta.

        Raises:
            ValueError: If the chunk does not have the expected shape.
        """
        if not isinstance(chunk, dict):
            raise ValueError("stream chunk must be a JSON object")
        choices = chunk.get("choices") or []
        if not isinstance(choices, list):
            raise ValueError("stream chunk 'choices' must be a list")
        if not choices:
            return cls()

        first = choices[0]
        if not isinstance(first, dict):
            raise ValueError("stream chunk choice must be a JSON object")
        delta = first.get("delta") or {}
        if not isinstance(delta, dict):
            raise ValueError("stream chunk 'delta' must be a JSON object")
        content = delta.get("content")
        if content is not None and not isinstance(content, str):
            raise ValueError("stream chunk content must be a string")
        finish_reason = first.get("finish_reason")
        return cls(content=content, finish_reason=finish_reason if isinstance(finish_reason, str) else None)

    @property
    def has_content(self) -> bool:
        return bool(self.content)


@dataclass(slots=True, frozen=True)
class ResponseRecord:
    """One inbound-protocol response object.

    Non-streaming calls produce one record with done=True. Streaming calls
    produce zero or more done=False records followed by exactly one
    done=True record with empty content.

    Attributes:
        model: Model name echoed from the inbound request.
        created_at: Time the record was produced (UTC).
        content: Assistant text carried by this record.
        done: Whether this is the final record of the response.
        done_reason: Set on final records only.
    """

    model: str
    created_at: datetime
    content: str
    done: bool
    done_reason: str | None = None


@dataclass(slots=True, frozen=True)
class ModelSummary:
    """One entry of the inbound model list.

    Only name/model come from real upstream data. The other fields are
    defaults because the upstream protocol does not carry them.
    """

    name: str
    model: str
    modified_at: datetime = EPOCH
    size: int = 0
    digest: str = PLACEHOLDER_DIGEST
    details: Mapping[str, Any] = field(default_factory=dict)
