"""FastAPI application factory for the Ollama proxy.

The proxy serves the Ollama REST API and forwards every request to an
OpenAI-compatible (or LiteLLM) backend, translating requests, responses
and streams between the two protocols.

Architecture:
    - FastAPI application with lifespan management
    - One shared async backend client per application
    - Settings stored on ``app.state``; no module-level application

Endpoints:
    - GET/HEAD / - Liveness ("Ollama is running")
    - GET /api/version - Advertised Ollama version
    - GET /api/tags - Backend models in the Ollama format
    - POST /api/chat - Chat completion (JSON or NDJSON stream)
    - POST /api/generate - Prompt completion (JSON or NDJSON stream)
    - GET /metrics - Request metrics
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI

from ollama_proxy import __version__
from ollama_proxy.api.lifespan import lifespan_context
from ollama_proxy.api.middleware import setup_exception_handlers, setup_middleware
from ollama_proxy.api.routes import chat_router, generation_router, models_router, system_router

if TYPE_CHECKING:
    import httpx

    from ollama_proxy.infrastructure.config import ProxySettings

logger = logging.getLogger(__name__)


def create_app(
    settings: ProxySettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        settings: Immutable proxy settings.
        transport: Optional httpx transport for the backend client. Used by
            tests to serve backend responses in-process.

    Returns:
        Configured FastAPI application. The backend client is created when
        the application starts and closed when it stops.
    """
    app = FastAPI(
        title="Ollama Proxy",
        description="Ollama-compatible API in front of an OpenAI-compatible backend",
        version=__version__,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=lifespan_context,
    )
    app.state.settings = settings
    app.state.backend_transport = transport

    setup_middleware(app, settings.origins)
    setup_exception_handlers(app)

    app.include_router(system_router)
    app.include_router(models_router)
    app.include_router(chat_router)
    app.include_router(generation_router)

    return app


__all__ = ["create_app"]
