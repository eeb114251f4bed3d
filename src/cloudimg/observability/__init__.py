"""Observability: structured logging and metrics hooks for cloudimg."""

from __future__ import annotations

from .logger import StructuredFormatter, get_logger, log_fields
from .metrics import MetricsHook, NoopMetricsHook, resolve_metrics

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "get_logger",
    "log_fields",
    "resolve_metrics",
]
