"""Structured logging utilities for the Ollama proxy.

This module provides JSON-based structured logging for request/response
events. Every event is emitted as one JSON object per line (JSONL) on the
``ollama_proxy.requests`` logger.

Key Features:
    - JSON Lines Format: One JSON object per line for easy parsing
    - Automatic Timestamps: Injected if not present in event data
    - Custom Serialization: Handles datetime and Path objects correctly
    - Optional File Sink: configure_request_log() attaches a non-propagating
      FileHandler; otherwise events flow through the root logger

Event Schema:
    All events should include:
        - event: Event type identifier (e.g., "api_request", "http_request")
        - timestamp: ISO 8601 timestamp (auto-injected if missing)
        - Additional fields: Operation-specific metadata (request_id, model,
          latency_ms, status, etc.)
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

REQUEST_LOGGER = logging.getLogger("ollama_proxy.requests")

_DATETIME_ADAPTER = TypeAdapter(datetime)


def configure_request_log(log_file: Path | None) -> None:
    """Route request events to a JSONL file.

    With a file, events are written there only (the logger stops
    propagating). With None, any previously attached file handler is
    removed and events propagate to the root logger.

    Side effects:
        Creates the parent directory of log_file if it doesn't exist.
    """
    for handler in list(REQUEST_LOGGER.handlers):
        if getattr(handler, "_ollama_proxy_request_log", False):
            REQUEST_LOGGER.removeHandler(handler)
            handler.close()

    REQUEST_LOGGER.setLevel(logging.INFO)
    if log_file is None:
        REQUEST_LOGGER.propagate = True
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler._ollama_proxy_request_log = True  # type: ignore[attr-defined]
    REQUEST_LOGGER.addHandler(handler)
    REQUEST_LOGGER.propagate = False


def _json_default(value: Any) -> Any:
    """Fallback serializer for datetime and Path objects."""
    match value:
        case datetime():
            return _DATETIME_ADAPTER.dump_python(value, mode="json")
        case Path():
            return str(value)
        case _:
            return str(value)


def log_request_event(event: dict[str, Any]) -> None:
    """Emit a structured request event.

    Writes the event as one JSON line. Injects an ISO 8601 UTC timestamp
    if the event has none (mutates the input dict).

    Args:
        event: Event payload dictionary. Should contain:
            - event: str - Event type identifier ("api_request", "http_request")
            - operation: str - Operation name ("chat", "generate", "list_models")
            - status: str - Status ("success" or "error")
            - Additional fields such as request_id, model, latency_ms,
              client_ip, error_type and error_message.

    Example:
        >>> log_request_event({
        ...     "event": "api_request",
        ...     "operation": "chat",
        ...     "status": "success",
        ...     "model": "gpt-4o-mini",
        ...     "latency_ms": 1234.56
        ... })
    """
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    REQUEST_LOGGER.info(json.dumps(event, default=_json_default))


__all__ = ["REQUEST_LOGGER", "configure_request_log", "log_request_event"]
