"""Configuration for the Ollama proxy.

Settings are loaded with pydantic-settings from environment variables (and a
``.env`` file when present), optionally overridden by command-line flags,
then frozen. The resulting ProxySettings value is built once at startup and
passed into each component; nothing reads configuration from module globals.

Environment Variables:
    - OLLAMA_PROXY_BASE_URL (or OPENAI_BASE_URL): Upstream base URL, required
    - OLLAMA_PROXY_API_KEY (or OPENAI_API_KEY): Upstream API key, optional
    - OLLAMA_PROXY_BACKEND: "openai" or "litellm"
    - OLLAMA_PROXY_HOST / OLLAMA_PROXY_PORT: Listener address
    - OLLAMA_PROXY_CHAT_TIMEOUT / OLLAMA_PROXY_MODELS_TIMEOUT: Seconds
    - OLLAMA_PROXY_CORS_ORIGINS: Comma-separated origins, "*" for all
    - OLLAMA_PROXY_LOG_LEVEL: Root log level
    - OLLAMA_PROXY_REQUEST_LOG_FILE: JSONL file for request events
    - OLLAMA_PROXY_ADVERTISED_VERSION: Version reported by /api/version
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ollama_proxy.domain.entities import BackendFlavor


class ProxySettings(BaseSettings):
    """Immutable proxy configuration.

    Attributes:
        base_url: Upstream OpenAI-compatible base URL, e.g.
            ``https://api.openai.com/v1``. Required. Trailing slashes are
            stripped.
        api_key: Upstream API key. When unset no Authorization header is sent.
        backend: Backend flavor deciding the outbound encoding.
        host: Listener host. Default: "0.0.0.0".
        port: Listener port. Range: [1, 65535]. Default: 11434.
        chat_timeout: Seconds allowed to connect, send and receive response
            headers for a completion. Default: 60.0.
        models_timeout: Total seconds allowed for the model list call.
            Default: 30.0.
        max_connections: Upstream connection pool size.
        max_keepalive_connections: Idle upstream connections kept open.
        cors_origins: Allowed CORS origins. Default: "*" (all origins).
        log_level: Root logging level.
        request_log_file: JSONL file for request events. None sends events
            through the standard logging tree instead.
        advertised_version: Version string served by ``/api/version``.
    """

    model_config = SettingsConfigDict(
        env_prefix="OLLAMA_PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    base_url: str = Field(
        validation_alias=AliasChoices("OLLAMA_PROXY_BASE_URL", "OPENAI_BASE_URL"),
        description="Upstream OpenAI-compatible base URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("OLLAMA_PROXY_API_KEY", "OPENAI_API_KEY"),
        description="Upstream API key",
    )
    backend: BackendFlavor = Field(default=BackendFlavor.OPENAI, description="Backend flavor")
    host: str = Field(default="0.0.0.0", description="Listener host")
    port: int = Field(default=11434, ge=1, le=65535, description="Listener port")
    chat_timeout: float = Field(default=60.0, gt=0.0, description="Completion setup timeout (seconds)")
    models_timeout: float = Field(default=30.0, gt=0.0, description="Model list timeout (seconds)")
    max_connections: int = Field(default=100, ge=1, description="Upstream connection pool size")
    max_keepalive_connections: int = Field(default=20, ge=0, description="Idle upstream connections")
    cors_origins: str = Field(default="*", description="Allowed CORS origins")
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info", description="Logging level"
    )
    request_log_file: Path | None = Field(default=None, description="JSONL request event log file")
    advertised_version: str = Field(default="0.6.4", description="Version reported by /api/version")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url is an http(s) URL and strip trailing slashes.

        Raises:
            ValueError: If base_url is empty or not http:// / https://.
        """
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            msg = "base_url must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @property
    def api_key_value(self) -> str | None:
        """Plain API key, or None when unset or blank."""
        if self.api_key is None:
            return None
        return self.api_key.get_secret_value() or None

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def load_settings(**overrides: Any) -> ProxySettings:
    """Build settings from the environment, applying explicit overrides.

    Overrides whose value is None are ignored, so unset command-line flags
    fall through to the environment.

    Raises:
        pydantic.ValidationError: If required settings are missing or invalid.
    """
    return ProxySettings(**{key: value for key, value in overrides.items() if value is not None})


__all__ = ["ProxySettings", "load_settings"]
