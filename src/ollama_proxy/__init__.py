"""Ollama-protocol proxy for OpenAI-compatible and LiteLLM backends."""

__version__ = "0.1.0"

__all__ = ["__version__"]
