"""HTTP layer: FastAPI application, routes and wire models."""

from ollama_proxy.api.server import create_app

__all__ = ["create_app"]
