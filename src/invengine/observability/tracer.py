"""
OpenTelemetry tracing implementation

Provides distributed tracing for investigation operations: one span per
controller call, phase and query, with trace context propagated across
the async boundary calls.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Optional, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

from .config import TelemetryConfig

logger = logging.getLogger(__name__)

_tracer: Optional[trace.Tracer] = None
_config: Optional[TelemetryConfig] = None

F = TypeVar("F", bound=Callable[..., Any])


def initialize_tracing(config: TelemetryConfig) -> None:
    """Initialize OpenTelemetry tracing with the given configuration"""
    global _tracer, _config

    if not config.enabled or not config.tracing.enabled:
        logger.info("Tracing is disabled")
        return

    _config = config

    resource = Resource.create(config.get_resource_attributes())
    sampler = TraceIdRatioBased(config.tracing.sample_rate)
    provider = TracerProvider(resource=resource, sampler=sampler)

    if config.should_export_traces():
        try:
            otlp_exporter = OTLPSpanExporter(
                endpoint=config.tracing.otlp_endpoint,
                headers=config.tracing.otlp_headers,
                insecure=config.tracing.otlp_insecure,
            )
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            logger.info(
                f"OTLP trace exporter configured for {config.tracing.otlp_endpoint}"
            )
        except Exception as e:
            logger.error(f"Failed to configure OTLP exporter: {e}")

    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(
        instrumenting_module_name="invengine",
        instrumenting_library_version=config.tracing.service_version,
    )

    logger.info(
        f"OpenTelemetry tracing initialized (sample_rate={config.tracing.sample_rate})"
    )


def get_tracer() -> trace.Tracer:
    """Get the configured tracer instance"""
    if _tracer is None:
        return trace.NoOpTracer()
    return _tracer


@contextmanager
def trace_operation(
    operation_name: str,
    attributes: Optional[dict[str, Any]] = None,
    set_status_on_exception: bool = True,
):
    """
    Context manager for tracing operations

    Args:
        operation_name: Name of the operation being traced
        attributes: Additional attributes to add to the span
        set_status_on_exception: Whether to set error status on exceptions
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(operation_name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)

        try:
            yield span
        except Exception as e:
            if set_status_on_exception:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
            raise


def trace_async(
    operation_name: Optional[str] = None,
    attributes: Optional[dict[str, Any]] = None,
    record_args: bool = False,
) -> Callable[[F], F]:
    """
    Decorator for tracing async functions

    Args:
        operation_name: Custom operation name (defaults to function name)
        attributes: Static attributes to add to spans
        record_args: Whether to record simple-typed arguments as attributes
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            name = operation_name or f"{func.__module__}.{func.__qualname__}"

            span_attributes = dict(attributes or {})

            if record_args:
                # Only simple types, to keep spans small
                for i, arg in enumerate(args):
                    if isinstance(arg, (str, int, float, bool)):
                        span_attributes[f"arg.{i}"] = arg
                for key, value in kwargs.items():
                    if isinstance(value, (str, int, float, bool)):
                        span_attributes[f"kwarg.{key}"] = value

            with trace_operation(name, span_attributes) as span:
                start_time = time.time()
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                finally:
                    duration = time.time() - start_time
                    span.set_attribute("operation.duration_ms", duration * 1000)

        return wrapper  # type: ignore[return-value]

    return decorator


def add_event(name: str, attributes: Optional[dict[str, Any]] = None) -> None:
    """Add an event to the current span"""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes or {})


def set_attribute(key: str, value: Any) -> None:
    """Set an attribute on the current span"""
    span = trace.get_current_span()
    if span.is_recording() and value is not None:
        span.set_attribute(key, value)


def get_trace_id() -> str:
    """Get the current trace ID as a string"""
    span = trace.get_current_span()
    if span.is_recording():
        return format(span.get_span_context().trace_id, "032x")
    return ""


def is_tracing_enabled() -> bool:
    """Check if tracing is currently enabled"""
    return _tracer is not None and _config is not None and _config.tracing.enabled
