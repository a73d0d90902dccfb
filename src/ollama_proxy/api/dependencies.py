"""Dependency injection for FastAPI endpoints.

Components are built once during lifespan startup and stored on
``app.state``; the functions here read them back for route handlers via
FastAPI's Depends() system. Nothing is kept in module-level globals, so
several apps (e.g. in tests) can coexist in one process.

Dependency Flow:
    1. Lifespan startup builds the backend client, adapters and use cases
    2. set_dependencies() stores them on app.state
    3. get_*() functions retrieve them (raise 503 if not initialized)
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, TypeVar

from fastapi import FastAPI, HTTPException, Request, status
from pydantic import BaseModel, ValidationError

from ollama_proxy.api.models import RequestContext
from ollama_proxy.application.use_cases import ChatUseCase, GenerateUseCase, ListModelsUseCase
from ollama_proxy.infrastructure.config import ProxySettings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

MAX_REQUEST_BODY_BYTES = 64 * 1024 * 1024
"""Largest accepted request body (images are sent inline as base64)."""


def set_dependencies(
    app: FastAPI,
    *,
    chat_use_case: ChatUseCase,
    generate_use_case: GenerateUseCase,
    list_models_use_case: ListModelsUseCase,
) -> None:
    """Store the use cases built at startup on the application."""
    app.state.chat_use_case = chat_use_case
    app.state.generate_use_case = generate_use_case
    app.state.list_models_use_case = list_models_use_case


def _require_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        logger.error("dependency_unavailable: name=%s", name)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return value


def get_settings(request: Request) -> ProxySettings:
    return _require_state(request, "settings")


def get_chat_use_case(request: Request) -> ChatUseCase:
    return _require_state(request, "chat_use_case")


def get_generate_use_case(request: Request) -> GenerateUseCase:
    return _require_state(request, "generate_use_case")


def get_list_models_use_case(request: Request) -> ListModelsUseCase:
    return _require_state(request, "list_models_use_case")


def get_request_context(request: Request) -> RequestContext:
    """Return the request's context, creating it on first access.

    The context is cached on ``request.state`` so the access-log
    middleware and the route see the same request_id.
    """
    ctx = getattr(request.state, "request_context", None)
    if ctx is None:
        ctx = RequestContext(
            request_id=str(uuid.uuid4()),
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        request.state.request_context = ctx
    return ctx


async def parse_request_json(request: Request, model_cls: type[T]) -> T:
    """Parse and validate the request body into a Pydantic model.

    Raises:
        HTTPException: 400 if the body is empty, is not JSON, or fails
            validation; 413 if it exceeds MAX_REQUEST_BODY_BYTES.

    Example:
        ```python
        api_req = await parse_request_json(request, ChatRequest)
        ```
    """
    body_bytes = await request.body()

    if not body_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body is required.",
        )

    if len(body_bytes) > MAX_REQUEST_BODY_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"Request body is {len(body_bytes):,} bytes but the limit is "
                f"{MAX_REQUEST_BODY_BYTES:,} bytes."
            ),
        )

    try:
        body = json.loads(body_bytes)
    except (ValueError, RecursionError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid JSON in request body: {exc!s}",
        ) from exc

    try:
        return model_cls.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Request validation failed: {exc!s}",
        ) from exc


__all__ = [
    "MAX_REQUEST_BODY_BYTES",
    "get_chat_use_case",
    "get_generate_use_case",
    "get_list_models_use_case",
    "get_request_context",
    "get_settings",
    "parse_request_json",
    "set_dependencies",
]
