"""System routes: liveness, version and metrics.

Endpoints:
    GET /, HEAD /
        - Response: "Ollama is running" (text/plain), as Ollama clients
          probe the root path to detect a server

    GET /api/version
        - Response: VersionResponse with the advertised Ollama version

    GET /metrics
        - Response: MetricsResponse (request counts and latency percentiles)
        - Query Params: window_minutes (optional, default: all time)
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ollama_proxy.api.dependencies import get_settings
from ollama_proxy.api.models import MetricsResponse, VersionResponse
from ollama_proxy.infrastructure.config import ProxySettings
from ollama_proxy.telemetry.metrics import MetricsCollector

logger = logging.getLogger(__name__)

router = APIRouter()

ROOT_MESSAGE = "Ollama is running"

SettingsDep = Annotated[ProxySettings, Depends(get_settings)]


@router.api_route("/", methods=["GET", "HEAD"], tags=["System"], response_class=PlainTextResponse)
async def root() -> PlainTextResponse:
    return PlainTextResponse(ROOT_MESSAGE)


@router.get("/api/version", tags=["System"], response_model=VersionResponse)
async def version(settings: SettingsDep) -> VersionResponse:
    return VersionResponse(version=settings.advertised_version)


@router.get("/metrics", tags=["System"], response_model=MetricsResponse)
async def get_metrics(window_minutes: int | None = None) -> MetricsResponse:
    """Get service metrics.

    Args:
        window_minutes: Optional time window in minutes. If provided, only
            requests from the last N minutes are included.

    Returns:
        MetricsResponse with request counts, per-model and per-operation
        breakdowns, latency percentiles and error counts.
    """
    return MetricsResponse.model_validate(MetricsCollector.get_metrics_json(window_minutes))
