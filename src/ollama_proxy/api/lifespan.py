"""Application lifespan management.

Lifespan Responsibilities:
    - Startup:
        1. Route request events (JSONL file or the logging tree)
        2. Create the shared backend client from the settings
        3. Initialize infrastructure adapters (logger, metrics)
        4. Build the use cases for the configured backend flavor
        5. Store them on app.state for FastAPI Depends
    - Shutdown:
        1. Close the backend client's connection pool

Settings are read from ``app.state.settings``, set by create_app(). An
optional ``app.state.backend_transport`` replaces the network transport
of the backend client.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from ollama_proxy.api.dependencies import set_dependencies
from ollama_proxy.application.use_cases import ChatUseCase, GenerateUseCase, ListModelsUseCase
from ollama_proxy.infrastructure.adapters import (
    MetricsCollectorAdapter,
    RequestLoggerAdapter,
    build_backend_client,
)
from ollama_proxy.telemetry.structured_logging import configure_request_log

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ollama_proxy.infrastructure.config import ProxySettings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan_context(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan (startup and shutdown).

    Args:
        app: FastAPI application instance. Its state carries the settings
            in and the use cases out.

    Yields:
        None. Control is yielded to the application for request handling.
    """
    settings: ProxySettings = app.state.settings
    logger.info(
        "LIFESPAN: Starting Ollama proxy (backend=%s, base_url=%s)",
        settings.backend,
        settings.base_url,
    )

    configure_request_log(settings.request_log_file)
    if settings.request_log_file is not None:
        logger.info("LIFESPAN: Request events written to %s", settings.request_log_file)

    client = build_backend_client(settings, transport=getattr(app.state, "backend_transport", None))
    logger_adapter = RequestLoggerAdapter()
    metrics_adapter = MetricsCollectorAdapter()

    set_dependencies(
        app,
        chat_use_case=ChatUseCase(client, logger_adapter, metrics_adapter, settings.backend),
        generate_use_case=GenerateUseCase(client, logger_adapter, metrics_adapter, settings.backend),
        list_models_use_case=ListModelsUseCase(client, logger_adapter, metrics_adapter),
    )
    logger.info("LIFESPAN: Dependencies initialized for dependency injection")

    try:
        yield
    finally:
        logger.info("LIFESPAN: Shutting down Ollama proxy")
        await client.close()
        logger.info("LIFESPAN: Backend client closed")


__all__ = ["lifespan_context"]
