"""In-memory request metrics for the Ollama proxy.

Key behaviors:
    - In-memory storage with automatic size limiting (max 10,000 entries)
    - Time-window filtering for recent metrics analysis
    - Latency percentiles and per-model/per-operation/per-error counts
    - Single event loop access; no locking

Memory management:
    Oldest entries are discarded once the limit is reached.
"""

from __future__ import annotations

import logging
import statistics
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar, Self

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RequestMetrics:
    """Metrics for a single proxied request.

    Attributes:
        model: Model name used for the request ("system" for model listing).
        operation: Operation type ("chat", "generate", "list_models").
        latency_ms: Request latency in milliseconds. For streams this runs
            until the final record was attempted.
        success: Whether the request succeeded.
        error: Error type name if the request failed.
        timestamp: Request completion time in UTC.
    """

    model: str
    operation: str
    latency_ms: float
    success: bool
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class ServiceMetrics:
    """Aggregated service metrics. All durations are in milliseconds."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    requests_by_model: dict[str, int] = field(default_factory=dict)
    requests_by_operation: dict[str, int] = field(default_factory=dict)
    average_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    last_request_time: datetime | None = None
    first_request_time: datetime | None = None


class MetricsCollector:
    """Collects and aggregates request metrics.

    Storage is class-level so every adapter instance feeds the same
    collection.
    """

    _metrics: ClassVar[list[RequestMetrics]] = []
    _max_metrics: ClassVar[int] = 10_000

    @classmethod
    def record_request(
        cls,
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        """Record one request, trimming the oldest entries past the limit."""
        cls._metrics.append(
            RequestMetrics(
                model=model,
                operation=operation,
                latency_ms=max(latency_ms, 0.0),
                success=success,
                error=error,
            )
        )
        if len(cls._metrics) > cls._max_metrics:
            cls._metrics = cls._metrics[-cls._max_metrics :]

        logger.debug("Recorded metric: %s on %s - %.2fms", operation, model, latency_ms)

    @classmethod
    def get_metrics(cls, window_minutes: int | None = None) -> ServiceMetrics:
        """Aggregate collected metrics, optionally over the last N minutes.

        A window of zero or less selects nothing.
        """
        match window_minutes:
            case None:
                metrics = cls._metrics
            case minutes if minutes > 0:
                cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
                metrics = [m for m in cls._metrics if m.timestamp >= cutoff]
            case _:
                metrics = []

        if not metrics:
            return ServiceMetrics()

        latencies = sorted(m.latency_ms for m in metrics)
        successful = sum(1 for m in metrics if m.success)

        match len(latencies):
            case n if n >= 2:
                quantiles = statistics.quantiles(latencies, n=100)
                p50, p95, p99 = quantiles[49], quantiles[94], quantiles[98]
            case _:
                p50 = p95 = p99 = latencies[0]

        return ServiceMetrics(
            total_requests=len(metrics),
            successful_requests=successful,
            failed_requests=len(metrics) - successful,
            requests_by_model=dict(Counter(m.model for m in metrics)),
            requests_by_operation=dict(Counter(m.operation for m in metrics)),
            average_latency_ms=statistics.fmean(latencies),
            p50_latency_ms=p50,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            errors_by_type=dict(Counter(m.error for m in metrics if m.error)),
            last_request_time=max(m.timestamp for m in metrics),
            first_request_time=min(m.timestamp for m in metrics),
        )

    @classmethod
    def get_metrics_json(cls, window_minutes: int | None = None) -> dict[str, Any]:
        """Aggregated metrics as a JSON-serializable dictionary.

        Latencies are rounded to 2 decimal places and timestamps are ISO
        8601 strings (or None).
        """
        data = asdict(cls.get_metrics(window_minutes))
        for key, value in data.items():
            match value:
                case datetime():
                    data[key] = value.isoformat()
                case float():
                    data[key] = round(value, 2)
        return data

    @classmethod
    def reset(cls) -> type[Self]:
        """Clear all collected metrics."""
        cls._metrics = []
        return cls


__all__ = ["MetricsCollector", "RequestMetrics", "ServiceMetrics"]
