"""Observability helpers for logging and metrics."""

from .logging import JsonLogFormatter, configure_from_settings, configure_logging
from .metrics import MetricsCollector

__all__ = [
    "JsonLogFormatter",
    "configure_logging",
    "configure_from_settings",
    "MetricsCollector",
]
