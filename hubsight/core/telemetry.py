"""OpenTelemetry tracing for hubsight's periodic work.

Analysis passes and retention sweeps run inside ``task_span`` so a slow sweep
shows up next to the host application's own traces. Tracing is configured
from ``TelemetryConfig``; disabled or endpoint-less configs install a no-op
provider.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import NoOpTracerProvider, Span

from hubsight.config import TelemetryConfig

logger = logging.getLogger(__name__)

SERVICE_NAME = "hubsight"

_provider: TracerProvider | NoOpTracerProvider | None = None


def _service_version() -> str:
    try:
        return pkg_version("hubsight")
    except PackageNotFoundError:
        return "0.0.0"


def _otlp_processor(endpoint: str) -> BatchSpanProcessor | None:
    # The gRPC exporter ships in the optional ``otlp`` extra.
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP exporter not installed; spans for %s are dropped", endpoint)
        return None
    return BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))


def init_tracing(
    config: TelemetryConfig,
    *,
    service_name: str = SERVICE_NAME,
) -> TracerProvider | NoOpTracerProvider:
    """Install the global tracer provider described by *config*."""
    global _provider  # noqa: PLW0603

    if not config.enabled or not config.endpoint:
        _provider = NoOpTracerProvider()
        trace.set_tracer_provider(_provider)
        logger.info("Tracing disabled")
        return _provider

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": service_name,
                "service.version": _service_version(),
                "deployment.environment": config.env,
            }
        )
    )
    processor = _otlp_processor(config.endpoint)
    if processor is not None:
        provider.add_span_processor(processor)
        logger.info("Tracing to %s (env=%s)", config.endpoint, config.env)

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def task_span(tracer: trace.Tracer, task: str, **attributes: str | int | float) -> Iterator[Span]:
    """Run one periodic task inside a ``hubsight.<task>`` span."""
    with tracer.start_as_current_span(f"hubsight.{task}") as span:
        span.set_attribute("hubsight.task", task)
        for key, value in attributes.items():
            span.set_attribute(f"hubsight.{key}", value)
        yield span


def shutdown_tracing() -> None:
    """Flush pending spans; a no-op provider has nothing to flush."""
    if isinstance(_provider, TracerProvider):
        _provider.shutdown()


__all__ = ["SERVICE_NAME", "get_tracer", "init_tracing", "shutdown_tracing", "task_span"]
