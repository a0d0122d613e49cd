"""Structured logging and OpenTelemetry tracing helpers."""

from site_search.observability.logging import JsonFormatter, configure_logging
from site_search.observability.tracing import create_span, enable_tracing


__all__ = [
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "enable_tracing",
]
