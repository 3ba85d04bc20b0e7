"""Optional OpenTelemetry tracing for pipeline runs.

With the ``otel`` extra installed (``pip install "flightdeck[otel]"``) and
``telemetry.enabled`` set, spans are exported for each coding agent, gate and
branch-manager deployment.  Otherwise every call returns no-op objects, so the
pipeline code is identical either way.

Usage::

    from flightdeck.infrastructure.telemetry import get_tracer

    with get_tracer().start_as_current_span("flightdeck.gate") as span:
        span.set_attribute("flightdeck.agent", "code-reviewer")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flightdeck.config import FlightdeckConfig

logger = logging.getLogger(__name__)


class _NoOpSpan:
    """Context-manager span that records nothing."""

    def set_attribute(self, key: str, value: Any) -> None:  # noqa: ARG002
        pass

    def record_exception(self, exc: BaseException) -> None:  # noqa: ARG002
        pass

    def __enter__(self) -> "_NoOpSpan":
        return self

    def __exit__(self, *args: Any) -> None:
        pass


class _NoOpTracer:
    def start_as_current_span(self, name: str, **kwargs: Any) -> _NoOpSpan:  # noqa: ARG002
        return _NoOpSpan()


_NOOP_TRACER = _NoOpTracer()

_tracer: Any = None
_otel_available: bool = False

try:
    import opentelemetry  # noqa: F401
    _otel_available = True
except ImportError:
    pass


def setup_telemetry(config: "FlightdeckConfig") -> None:
    """Initialise the tracer provider from ``config.telemetry`` (idempotent)."""
    global _tracer  # noqa: PLW0603

    if _tracer is not None:
        return
    tel_cfg = config.telemetry
    if tel_cfg is None or not tel_cfg.enabled:
        logger.debug("Telemetry disabled; using no-op tracer")
        return
    if not _otel_available:
        logger.warning(
            "Telemetry is enabled but opentelemetry-sdk is not installed. "
            "Install with: pip install 'flightdeck[otel]'"
        )
        return

    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: tel_cfg.service_name}))
    if tel_cfg.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    elif tel_cfg.exporter == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning("OTLP exporter requested but opentelemetry-exporter-otlp-proto-grpc is not installed")
        else:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=tel_cfg.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer("flightdeck")
    logger.info("Telemetry initialised: exporter=%s service=%s", tel_cfg.exporter, tel_cfg.service_name)


def get_tracer() -> Any:
    """Active tracer: the OTEL tracer once configured, else a no-op."""
    return _tracer if _tracer is not None else _NOOP_TRACER


def reset_for_testing() -> None:
    global _tracer  # noqa: PLW0603
    _tracer = None
