"""Use cases for the Ollama proxy.

This module defines application use cases that orchestrate translation,
backend calls, logging and metrics. Use cases depend only on the domain
layer and on the Protocols in ``application.interfaces``.

Design Principles:
    - Dependency Inversion: Depend on interfaces (Protocols), not implementations
    - Single Responsibility: Each use case handles one inbound operation
    - Framework-agnostic: No FastAPI, httpx, or Pydantic dependencies

Key Use Cases:
    - ChatUseCase: Inbound chat, streaming or not
    - GenerateUseCase: Inbound single-prompt generation, streaming or not
    - ListModelsUseCase: Inbound model list
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from ollama_proxy.application.streaming import PumpResult, RecordEncoder, StreamingResponsePump
from ollama_proxy.application.translators import (
    build_completion_request,
    translate_completion,
    translate_model_list,
)
from ollama_proxy.domain.entities import (
    BackendFlavor,
    ChatRequest,
    Clock,
    GenerateRequest,
    ModelSummary,
    ResponseRecord,
    utc_now,
)
from ollama_proxy.domain.exceptions import InvalidRequestError, UpstreamStatusError

if TYPE_CHECKING:
    from ollama_proxy.application.interfaces import (
        BackendClientInterface,
        MetricsCollectorInterface,
        RequestLoggerInterface,
    )


class _CompletionUseCase:
    """Shared orchestration for operations backed by ``/chat/completions``.

    Attributes:
        operation: Operation name used in logs and metrics.
    """

    operation = "completion"

    def __init__(
        self,
        client: BackendClientInterface,
        logger: RequestLoggerInterface,
        metrics: MetricsCollectorInterface,
        flavor: BackendFlavor,
        *,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the use case.

        Args:
            client: Backend client used for completions.
            logger: Request logger for recording request events.
            metrics: Metrics collector for tracking latency and errors.
            flavor: Backend flavor that decides the outbound encoding.
            clock: Source of ``created_at`` timestamps.
        """
        self._client = client
        self._logger = logger
        self._metrics = metrics
        self._flavor = flavor
        self._clock = clock

    def _record_success(
        self,
        model: str,
        latency_ms: float,
        request_id: str,
        client_ip: str | None,
        **extra: Any,
    ) -> None:
        self._logger.log_request(
            {
                "event": "api_request",
                "operation": self.operation,
                "status": "success",
                "model": model,
                "backend": str(self._flavor),
                "request_id": request_id,
                "client_ip": client_ip,
                "latency_ms": round(latency_ms, 3),
                **extra,
            }
        )
        self._metrics.record_request(
            model=model, operation=self.operation, latency_ms=latency_ms, success=True
        )

    def _record_error(
        self,
        model: str,
        latency_ms: float,
        request_id: str,
        client_ip: str | None,
        exc: Exception,
        stream: bool,
    ) -> None:
        error_type = type(exc).__name__
        event: dict[str, Any] = {
            "event": "api_request",
            "operation": self.operation,
            "status": "error",
            "model": model,
            "backend": str(self._flavor),
            "request_id": request_id,
            "client_ip": client_ip,
            "latency_ms": round(latency_ms, 3),
            "stream": stream,
            "error_type": error_type,
            "error_message": str(exc),
        }
        if isinstance(exc, UpstreamStatusError):
            event["upstream_status"] = exc.status_code
        self._logger.log_request(event)
        self._metrics.record_request(
            model=model, operation=self.operation, latency_ms=latency_ms, success=False, error=error_type
        )

    async def _run(
        self,
        request: ChatRequest,
        request_id: str,
        client_ip: str | None,
        encode: RecordEncoder | None,
    ) -> ResponseRecord | StreamingResponsePump:
        start_time = time.perf_counter()
        model = request.model

        try:
            completion = build_completion_request(request, self._flavor)

            if not request.stream:
                body = await self._client.create_completion(completion)
                record = translate_completion(body, model, clock=self._clock)
                self._record_success(
                    model,
                    (time.perf_counter() - start_time) * 1000,
                    request_id,
                    client_ip,
                    stream=False,
                )
                return record

            if encode is None:
                raise ValueError("A record encoder is required for streaming responses")

            upstream = await self._client.stream_completion(completion)
            headers_ms = (time.perf_counter() - start_time) * 1000

            def _on_complete(result: PumpResult) -> None:
                self._record_success(
                    model,
                    (time.perf_counter() - start_time) * 1000,
                    request_id,
                    client_ip,
                    stream=True,
                    upstream_headers_ms=round(headers_ms, 3),
                    records_emitted=result.records_emitted,
                    lines_skipped=result.lines_skipped,
                    terminal_reason=str(result.reason),
                    final_record_sent=result.final_record_sent,
                )

            return StreamingResponsePump(
                upstream,
                model,
                encode,
                clock=self._clock,
                on_complete=_on_complete,
            )

        except ValueError as exc:
            self._record_error(
                model, (time.perf_counter() - start_time) * 1000, request_id, client_ip, exc, request.stream
            )
            raise InvalidRequestError(f"Invalid request: {exc!s}") from exc

        except Exception as exc:
            self._record_error(
                model, (time.perf_counter() - start_time) * 1000, request_id, client_ip, exc, request.stream
            )
            raise


class ChatUseCase(_CompletionUseCase):
    """Use case for inbound chat requests.

    Translates the request for the configured backend flavor, then either
    returns one final ResponseRecord or a StreamingResponsePump that the
    API layer drives against its response sink.
    """

    operation = "chat"

    async def execute(
        self,
        request: ChatRequest,
        request_id: str,
        client_ip: str | None = None,
        *,
        encode: RecordEncoder | None = None,
    ) -> ResponseRecord | StreamingResponsePump:
        """Execute a chat request.

        Args:
            request: Validated inbound chat request.
            request_id: Unique request identifier for tracing and logging.
            client_ip: Client IP address for logging. None if unavailable.
            encode: Record serializer. Required when request.stream is True.

        Returns:
            If request.stream is False: the final ResponseRecord.
            If request.stream is True: a pump over the already-opened
            upstream stream. Upstream failures before the stream opened
            have been raised at this point; later ones end the stream.

        Raises:
            InvalidRequestError: If the request cannot be translated.
            UpstreamError: If the backend fails before a response starts.
        """
        return await self._run(request, request_id, client_ip, encode)


class GenerateUseCase(_CompletionUseCase):
    """Use case for inbound single-prompt generation requests.

    The prompt (and optional system prompt) are sent as a chat
    conversation, so generation shares the chat translation and pump.
    """

    operation = "generate"

    async def execute(
        self,
        request: GenerateRequest,
        request_id: str,
        client_ip: str | None = None,
        *,
        encode: RecordEncoder | None = None,
    ) -> ResponseRecord | StreamingResponsePump:
        return await self._run(request.to_chat_request(), request_id, client_ip, encode)


class ListModelsUseCase:
    """Use case for listing upstream models in the inbound format."""

    def __init__(
        self,
        client: BackendClientInterface,
        logger: RequestLoggerInterface,
        metrics: MetricsCollectorInterface,
    ) -> None:
        self._client = client
        self._logger = logger
        self._metrics = metrics

    async def execute(self, request_id: str, client_ip: str | None = None) -> list[ModelSummary]:
        """Fetch the upstream model list and translate it.

        Raises:
            UpstreamError: If the backend call fails.
        """
        start_time = time.perf_counter()

        try:
            entries = await self._client.list_models()
            models = translate_model_list(entries)
            latency_ms = (time.perf_counter() - start_time) * 1000

            self._logger.log_request(
                {
                    "event": "api_request",
                    "operation": "list_models",
                    "status": "success",
                    "request_id": request_id,
                    "client_ip": client_ip,
                    "latency_ms": round(latency_ms, 3),
                    "model_count": len(models),
                }
            )
            self._metrics.record_request(
                model="system", operation="list_models", latency_ms=latency_ms, success=True
            )
            return models

        except Exception as exc:
            latency_ms = (time.perf_counter() - start_time) * 1000
            self._logger.log_request(
                {
                    "event": "api_request",
                    "operation": "list_models",
                    "status": "error",
                    "request_id": request_id,
                    "client_ip": client_ip,
                    "latency_ms": round(latency_ms, 3),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                }
            )
            self._metrics.record_request(
                model="system",
                operation="list_models",
                latency_ms=latency_ms,
                success=False,
                error=type(exc).__name__,
            )
            raise
