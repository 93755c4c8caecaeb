"""Logging and metrics helpers."""

from .observability import ClientMetrics, configure_logging, get_logger

__all__ = ["ClientMetrics", "configure_logging", "get_logger"]
