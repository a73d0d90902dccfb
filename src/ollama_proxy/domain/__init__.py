"""Domain layer for the Ollama proxy.

This package contains pure domain models and exceptions with no dependencies
on frameworks, infrastructure, or external libraries.
"""

from ollama_proxy.domain.entities import (
    BackendFlavor,
    ChatMessage,
    ChatRequest,
    CompletionRequest,
    GenerateRequest,
    ModelSummary,
    ResponseRecord,
    StreamDelta,
)
from ollama_proxy.domain.exceptions import (
    DomainError,
    DownstreamClosedError,
    InvalidRequestError,
    StreamingNotSupportedError,
    UpstreamError,
    UpstreamProtocolError,
    UpstreamStatusError,
    UpstreamStreamError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

__all__ = [
    "BackendFlavor",
    "ChatMessage",
    "ChatRequest",
    "CompletionRequest",
    "DomainError",
    "DownstreamClosedError",
    "GenerateRequest",
    "InvalidRequestError",
    "ModelSummary",
    "ResponseRecord",
    "StreamDelta",
    "StreamingNotSupportedError",
    "UpstreamError",
    "UpstreamProtocolError",
    "UpstreamStatusError",
    "UpstreamStreamError",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
]
