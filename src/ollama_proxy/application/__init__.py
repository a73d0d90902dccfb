"""Application layer for the Ollama proxy.

This package contains the protocol translators, the streaming pump and the
use cases that orchestrate them. It depends only on the domain layer and
defines interfaces (protocols) for infrastructure dependencies.
"""

from ollama_proxy.application.interfaces import (
    BackendClientInterface,
    MetricsCollectorInterface,
    RequestLoggerInterface,
    ResponseSinkInterface,
    UpstreamStreamInterface,
)
from ollama_proxy.application.streaming import PumpResult, StreamingResponsePump, TerminalReason
from ollama_proxy.application.use_cases import (
    ChatUseCase,
    GenerateUseCase,
    ListModelsUseCase,
)

__all__ = [
    "BackendClientInterface",
    "ChatUseCase",
    "GenerateUseCase",
    "ListModelsUseCase",
    "MetricsCollectorInterface",
    "PumpResult",
    "RequestLoggerInterface",
    "ResponseSinkInterface",
    "StreamingResponsePump",
    "TerminalReason",
    "UpstreamStreamInterface",
]
