"""API route modules."""

from ollama_proxy.api.routes.chat import router as chat_router
from ollama_proxy.api.routes.generation import router as generation_router
from ollama_proxy.api.routes.models import router as models_router
from ollama_proxy.api.routes.system import router as system_router

__all__ = ["chat_router", "generation_router", "models_router", "system_router"]
