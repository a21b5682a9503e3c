"""
Telemetry configuration for OpenTelemetry and Prometheus

Everything here can be set from the conventional OTEL_* / PROMETHEUS_*
environment variables via ``TelemetryConfig.from_env``.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def _parse_headers(headers_str: str) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` OTLP header strings"""
    headers = {}
    for header in headers_str.split(","):
        if "=" in header:
            key, value = header.split("=", 1)
            headers[key.strip()] = value.strip()
    return headers


class TracingConfig(BaseModel):
    """OpenTelemetry tracing configuration"""

    enabled: bool = True
    service_name: str = "invengine"
    service_version: str = "0.1.0"

    # Spans are only exported when an endpoint is configured
    otlp_endpoint: Optional[str] = None
    otlp_headers: dict[str, str] = Field(default_factory=dict)
    otlp_insecure: bool = True

    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)

    @classmethod
    def from_env(cls) -> "TracingConfig":
        return cls(
            enabled=_env_flag("OTEL_TRACING_ENABLED", True),
            service_name=os.getenv("OTEL_SERVICE_NAME", "invengine"),
            service_version=os.getenv("OTEL_SERVICE_VERSION", "0.1.0"),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
            otlp_headers=_parse_headers(os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "")),
            otlp_insecure=_env_flag("OTEL_EXPORTER_OTLP_INSECURE", True),
            sample_rate=float(os.getenv("OTEL_TRACE_SAMPLE_RATE", "1.0")),
        )


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration"""

    enabled: bool = True
    port: int = Field(default=9090, ge=1024, le=65535)
    # The CLI is short-lived, so the HTTP exporter is opt-in
    start_server: bool = False

    default_labels: dict[str, str] = Field(default_factory=dict)

    # Investigations run for seconds to minutes, phases for sub-second to tens of seconds
    duration_buckets: list[float] = Field(
        default_factory=lambda: [0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
    )

    @classmethod
    def from_env(cls) -> "MetricsConfig":
        return cls(
            enabled=_env_flag("PROMETHEUS_METRICS_ENABLED", True),
            port=int(os.getenv("PROMETHEUS_METRICS_PORT", "9090")),
            start_server=_env_flag("PROMETHEUS_METRICS_SERVER", False),
        )


class LoggingConfig(BaseModel):
    """Log output configuration; records always carry trace and span ids"""

    enabled: bool = True
    level: str = "INFO"
    format: str = Field(default="text", description="Log format (json|text)")


class TelemetryConfig(BaseModel):
    """Complete telemetry configuration"""

    enabled: bool = True

    tracing: TracingConfig = Field(default_factory=TracingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    environment: str = "development"

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        return cls(
            enabled=_env_flag("TELEMETRY_ENABLED", True),
            environment=os.getenv("ENVIRONMENT", "development"),
            tracing=TracingConfig.from_env(),
            metrics=MetricsConfig.from_env(),
        )

    def get_resource_attributes(self) -> dict[str, str]:
        return {
            "service.name": self.tracing.service_name,
            "service.version": self.tracing.service_version,
            "deployment.environment": self.environment,
        }

    def should_export_traces(self) -> bool:
        return (
            self.enabled
            and self.tracing.enabled
            and self.tracing.otlp_endpoint is not None
        )

    def should_start_metrics_server(self) -> bool:
        return self.enabled and self.metrics.enabled and self.metrics.start_server
