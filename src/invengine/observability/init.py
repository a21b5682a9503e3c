"""
Observability initialization

Centralized setup for tracing, metrics and structured logging.
"""

import logging
import logging.config
from typing import Optional

from opentelemetry import trace

from .config import TelemetryConfig
from .metrics import initialize_metrics, reset_metrics
from .tracer import initialize_tracing

logger = logging.getLogger(__name__)

_initialized = False
_config: Optional[TelemetryConfig] = None


def initialize_observability(config: TelemetryConfig) -> None:
    """
    Initialize all observability features

    Args:
        config: Telemetry configuration
    """
    global _initialized, _config

    if _initialized:
        logger.warning("Observability already initialized, skipping")
        return

    _config = config

    if not config.enabled:
        logger.info("Observability is disabled")
        return

    logger.info(f"Initializing observability for environment: {config.environment}")

    if config.logging.enabled:
        try:
            configure_logging(config)
        except Exception as e:
            logger.error(f"Failed to configure logging: {e}")

    if config.tracing.enabled:
        try:
            initialize_tracing(config)
        except Exception as e:
            logger.error(f"Failed to initialize tracing: {e}")

    if config.metrics.enabled:
        try:
            initialize_metrics(config)
        except Exception as e:
            logger.error(f"Failed to initialize metrics: {e}")

    _initialized = True
    logger.info("Observability initialization complete")


def configure_logging(config: TelemetryConfig) -> None:
    """Configure structured logging with trace correlation"""
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"trace_context": {"()": TraceContextFilter}},
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s %(span_id)s",
            },
            "text": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.logging.level,
                "formatter": config.logging.format,
                "filters": ["trace_context"],
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": config.logging.level, "handlers": ["console"]},
        "loggers": {"invengine": {"level": config.logging.level, "propagate": True}},
    }

    logging.config.dictConfig(log_config)


class TraceContextFilter(logging.Filter):
    """Adds trace/span IDs of the current span to each log record"""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = ""
            record.span_id = ""
        return True


def get_observability_config() -> Optional[TelemetryConfig]:
    """Get the current observability configuration"""
    return _config


def is_observability_initialized() -> bool:
    """Check if observability has been initialized"""
    return _initialized


def shutdown_observability() -> None:
    """Shutdown observability systems gracefully"""
    global _initialized

    if not _initialized:
        return

    logger.info("Shutting down observability systems")

    try:
        from opentelemetry.sdk.trace import TracerProvider

        provider = trace.get_tracer_provider()
        if isinstance(provider, TracerProvider):
            provider.shutdown()
    except Exception as e:
        logger.error(f"Error shutting down tracing: {e}")

    reset_metrics()
    _initialized = False
