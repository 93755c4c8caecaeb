"""Observability helpers for zettelsync."""

from __future__ import annotations

import logging
import time

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_session_context(**values: object) -> None:
    structlog.contextvars.bind_contextvars(**values)


def clear_session_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "zettelsync") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class ClientMetrics:
    """Prometheus metrics for the client sync layer."""

    api_requests = Counter(
        "zettelsync_api_requests_total",
        "API gateway requests by operation and outcome.",
        ["operation", "outcome"],
    )
    api_latency = Histogram(
        "zettelsync_api_request_duration_seconds",
        "Time spent waiting on API gateway requests.",
        ["operation"],
        buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    events_received = Counter(
        "zettelsync_realtime_events_total",
        "Realtime envelopes decoded, by event type.",
        ["event_type"],
    )
    frames_dropped = Counter(
        "zettelsync_realtime_frames_dropped_total",
        "Realtime frames dropped because they could not be decoded.",
    )
    handler_errors = Counter(
        "zettelsync_realtime_handler_errors_total",
        "Exceptions raised by realtime event handlers.",
        ["event_type"],
    )
    reconnects_scheduled = Counter(
        "zettelsync_realtime_reconnects_scheduled_total",
        "Reconnect attempts scheduled after an unintentional close.",
    )
    cache_writes = Counter(
        "zettelsync_cache_writes_total",
        "Document cache persistence writes, by mutation.",
        ["mutation"],
    )

    @classmethod
    def observe_latency(cls, operation: str, duration_seconds: float) -> None:
        cls.api_latency.labels(operation=operation).observe(duration_seconds)

    @classmethod
    def count_request(cls, operation: str, success: bool) -> None:
        cls.api_requests.labels(operation=operation, outcome="success" if success else "error").inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "ClientMetrics",
    "TimedSection",
    "bind_session_context",
    "clear_session_context",
    "configure_logging",
    "get_logger",
]
