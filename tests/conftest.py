"""
Pytest configuration and fixtures for Ollama proxy tests.
"""

import json
import socketserver
import sys
import threading
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from types import SimpleNamespace

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
for path in (PROJECT_ROOT / "src", PROJECT_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from ollama_proxy.api.server import create_app
from ollama_proxy.infrastructure.config import ProxySettings
from tests.helpers import content_chunk, sse_lines


class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class BackendRequestHandler(BaseHTTPRequestHandler):
    """Mimics the two endpoints of an OpenAI-compatible backend."""

    def _send_body(self, body: bytes, status: int = 200, content_type: str = "application/json"):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _json_response(self, data: dict, status: int = 200):
        self._send_body(json.dumps(data).encode("utf-8"), status=status)

    def _scripted_error(self, state: dict, key: str) -> bool:
        status = state.get(key, 200)
        if status == 200:
            return False
        body, content_type = state.get("error_body", (b'{"error": "backend failure"}', "application/json"))
        self._send_body(body, status=status, content_type=content_type)
        return True

    def do_GET(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        state.setdefault("headers", []).append({key.lower(): value for key, value in self.headers.items()})
        if self.path == "/v1/models":
            if self._scripted_error(state, "models_status"):
                return
            self._json_response({"object": "list", "data": state["models"]})
            return

        self._json_response({"error": "not found"}, status=404)

    def do_POST(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        state.setdefault("headers", []).append({key.lower(): value for key, value in self.headers.items()})
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b"{}"
        try:
            payload = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError:
            payload = {}

        if self.path != "/v1/chat/completions":
            self._json_response({"error": "not found"}, status=404)
            return

        state.setdefault("chat_calls", []).append(payload)
        if self._scripted_error(state, "chat_status"):
            return

        if not payload.get("stream"):
            self._json_response(state["completion"])
            return

        # HTTP/1.0 response: the body ends when the connection closes
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.end_headers()
        for line in state["sse_lines"]:
            self.wfile.write(line)
            self.wfile.flush()

    def log_message(self, format, *args):
        # Suppress default HTTP server logging to keep test output clean.
        return


@pytest.fixture
def backend_server():
    """Start a lightweight HTTP server that mimics an OpenAI-compatible backend."""
    state = {
        "models": [
            {"id": "gpt-4o-mini", "object": "model", "created": 1700000000, "owned_by": "openai"},
            {"id": "llama3", "object": "model"},
        ],
        "completion": {
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "hello"}}],
        },
        "sse_lines": sse_lines(content_chunk("Hel"), content_chunk("lo"), "[DONE]"),
        "models_status": 200,
        "chat_status": 200,
    }

    server = ThreadedTCPServer(("127.0.0.1", 0), BackendRequestHandler)
    server.server_state = state  # type: ignore[attr-defined]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    base_url = f"http://127.0.0.1:{server.server_address[1]}/v1"

    try:
        yield SimpleNamespace(base_url=base_url, state=state)
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove proxy-related environment variables."""
    for name in (
        "OPENAI_BASE_URL",
        "OPENAI_API_KEY",
        "OLLAMA_PROXY_BASE_URL",
        "OLLAMA_PROXY_API_KEY",
        "OLLAMA_PROXY_BACKEND",
        "OLLAMA_PROXY_HOST",
        "OLLAMA_PROXY_PORT",
        "OLLAMA_PROXY_CHAT_TIMEOUT",
        "OLLAMA_PROXY_MODELS_TIMEOUT",
        "OLLAMA_PROXY_CORS_ORIGINS",
        "OLLAMA_PROXY_LOG_LEVEL",
        "OLLAMA_PROXY_REQUEST_LOG_FILE",
        "OLLAMA_PROXY_ADVERTISED_VERSION",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(Path(__file__).resolve().parent)


@pytest.fixture
def proxy_settings(backend_server, clean_env):
    """Settings pointing at the fake backend."""
    return ProxySettings(base_url=backend_server.base_url, api_key="test-key", chat_timeout=5.0)


@pytest.fixture
def api_client(proxy_settings):
    """TestClient for a proxy app wired to the fake backend (lifespan runs)."""
    from fastapi.testclient import TestClient

    app = create_app(proxy_settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset collected metrics before and after each test."""
    from ollama_proxy.telemetry.metrics import MetricsCollector

    MetricsCollector.reset()
    yield
    MetricsCollector.reset()
