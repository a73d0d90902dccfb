"""Telemetry for the Ollama proxy: structured request events and metrics."""

from ollama_proxy.telemetry.metrics import MetricsCollector, ServiceMetrics
from ollama_proxy.telemetry.structured_logging import configure_request_log, log_request_event

__all__ = ["MetricsCollector", "ServiceMetrics", "configure_request_log", "log_request_event"]
