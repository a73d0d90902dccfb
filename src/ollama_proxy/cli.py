"""Command-line entry point: ``ollama-proxy``.

Flags override environment variables (see ``infrastructure.config``).
Exits with status 1 when the configuration is missing or invalid, or when
the listener cannot bind its address.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

import uvicorn
from pydantic import ValidationError

from ollama_proxy import __version__
from ollama_proxy.api.server import create_app
from ollama_proxy.domain.entities import BackendFlavor
from ollama_proxy.infrastructure.config import ProxySettings, load_settings

logger = logging.getLogger("ollama_proxy")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ollama-proxy",
        description="Serve the Ollama API in front of an OpenAI-compatible backend.",
    )
    parser.add_argument("--base-url", help="Backend base URL, e.g. https://api.openai.com/v1.")
    parser.add_argument("--api-key", help="Backend API key (sent as a Bearer token).")
    parser.add_argument(
        "--backend",
        choices=[flavor.value for flavor in BackendFlavor],
        help="Backend flavor (default: openai).",
    )
    parser.add_argument("--host", help="Address to listen on (default: 0.0.0.0).")
    parser.add_argument("--port", type=int, help="Port to listen on (default: 11434).")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Logging level (default: info).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def build_settings(args: argparse.Namespace) -> ProxySettings:
    """Merge command-line flags over the environment.

    Raises:
        pydantic.ValidationError: If the resulting settings are invalid.
    """
    return load_settings(
        base_url=args.base_url,
        api_key=args.api_key,
        backend=args.backend,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run the proxy until interrupted.

    Returns:
        Process exit status: 0 after a clean shutdown, 1 on configuration
        or bind failure.
    """
    args = parse_args(argv)
    logging.basicConfig(level=(args.log_level or "info").upper(), format=LOG_FORMAT)

    try:
        settings = build_settings(args)
    except ValidationError as exc:
        logger.critical("invalid_configuration: %s", _describe_errors(exc))
        return 1

    logging.getLogger().setLevel(settings.log_level.upper())
    app = create_app(settings)
    logger.info(
        "proxy_starting: host=%s, port=%d, backend=%s, base_url=%s",
        settings.host,
        settings.port,
        settings.backend,
        settings.base_url,
    )

    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)
    except (OSError, SystemExit) as exc:
        # uvicorn exits with status 1 itself when the socket cannot bind
        if isinstance(exc, SystemExit) and exc.code in (None, 0):
            return 0
        logger.critical("listener_failed: host=%s, port=%d, error=%s", settings.host, settings.port, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
