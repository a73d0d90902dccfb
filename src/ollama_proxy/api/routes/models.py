"""Model list route.

Endpoint:
    GET /api/tags
        - Response: ModelsResponse built from the backend's ``/models`` list
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from ollama_proxy.api.dependencies import get_list_models_use_case, get_request_context, get_settings
from ollama_proxy.api.error_handlers import handle_route_errors
from ollama_proxy.api.mappers import domain_to_api_models
from ollama_proxy.api.models import ModelsResponse
from ollama_proxy.application.use_cases import ListModelsUseCase
from ollama_proxy.infrastructure.config import ProxySettings

logger = logging.getLogger(__name__)

router = APIRouter()

UseCaseDep = Annotated[ListModelsUseCase, Depends(get_list_models_use_case)]
SettingsDep = Annotated[ProxySettings, Depends(get_settings)]


@router.get("/api/tags", tags=["Models"], response_model=ModelsResponse)
async def list_models(
    request: Request,
    use_case: UseCaseDep,
    settings: SettingsDep,
) -> ModelsResponse:
    """List the backend's models in the Ollama format.

    Raises:
        HTTPException: 502/504 when the backend is unreachable or slow;
            the backend's own status when it answers with an error.
    """
    ctx = get_request_context(request)
    handle_error = handle_route_errors(
        ctx,
        "list_models",
        start_time=time.perf_counter(),
        timeout_seconds=settings.models_timeout,
    )

    try:
        models = await use_case.execute(request_id=ctx.request_id, client_ip=ctx.client_ip)
        return domain_to_api_models(models)
    except HTTPException:
        raise
    except Exception as exc:
        handle_error(exc)
