"""OpenTelemetry spans around index builds and searches.

Spans go through the globally installed tracer provider. Without one the API
hands out non-recording spans, so instrumentation costs next to nothing until
``enable_tracing`` (or the host application) installs an SDK provider.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import Span, SpanKind


logger = logging.getLogger(__name__)

TRACER_NAME = "site_search"


def enable_tracing(
    service_name: str = "site-search",
    *,
    resource_attributes: Mapping[str, str] | None = None,
) -> TracerProvider:
    """Install an SDK tracer provider unless one is already active.

    The provider has no exporters; its job is to give spans real ids so log
    lines emitted inside them can be correlated.
    """

    current = trace.get_tracer_provider()
    if isinstance(current, TracerProvider):
        return current

    attributes: dict[str, str] = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = TracerProvider(resource=Resource.create(attributes))
    trace.set_tracer_provider(provider)
    logger.debug("Tracing enabled for service %s", service_name)
    return provider


@contextmanager
def create_span(
    name: str,
    *,
    attributes: Mapping[str, Any] | None = None,
    kind: SpanKind = SpanKind.INTERNAL,
) -> Iterator[Span]:
    """Run the block inside a new current span; exceptions are recorded and re-raised."""

    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(
        name,
        kind=kind,
        attributes=dict(attributes) if attributes else None,
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        yield span
