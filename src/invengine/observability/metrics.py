"""
Prometheus metrics collection for invengine

Tracks investigation lifecycle, phase and query outcomes, evidence
significance and LLM usage.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """
    Central metrics collector for investigation operations
    """

    config: TelemetryConfig
    registry: CollectorRegistry = field(default_factory=CollectorRegistry)

    # Investigation lifecycle
    investigations_started_total: Counter = field(init=False)
    investigations_completed_total: Counter = field(init=False)
    investigations_failed_total: Counter = field(init=False)
    investigation_duration: Histogram = field(init=False)
    active_investigations: Gauge = field(init=False)

    # Execution
    phases_completed_total: Counter = field(init=False)
    phase_duration: Histogram = field(init=False)
    queries_total: Counter = field(init=False)
    evidence_total: Counter = field(init=False)

    # AI usage
    ai_fallbacks_total: Counter = field(init=False)
    llm_requests_total: Counter = field(init=False)
    llm_tokens_total: Counter = field(init=False)
    llm_errors_total: Counter = field(init=False)

    system_info: Info = field(init=False)

    def __post_init__(self):
        self._initialize_metrics()

        if self.config.should_start_metrics_server():
            self._start_metrics_server()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""
        labels = list(self.config.metrics.default_labels.keys())
        buckets = self.config.metrics.duration_buckets

        self.investigations_started_total = Counter(
            "invengine_investigations_started_total",
            "Total number of investigations started",
            labelnames=["investigation_type", "plan_source"] + labels,
            registry=self.registry,
        )

        self.investigations_completed_total = Counter(
            "invengine_investigations_completed_total",
            "Total number of investigations completed",
            labelnames=["investigation_type"] + labels,
            registry=self.registry,
        )

        self.investigations_failed_total = Counter(
            "invengine_investigations_failed_total",
            "Total number of investigations that failed or were cancelled",
            labelnames=["reason"] + labels,
            registry=self.registry,
        )

        self.investigation_duration = Histogram(
            "invengine_investigation_duration_seconds",
            "Wall-clock duration of completed investigations",
            labelnames=["investigation_type"] + labels,
            buckets=buckets,
            registry=self.registry,
        )

        self.active_investigations = Gauge(
            "invengine_active_investigations",
            "Number of investigations with a live context",
            labelnames=labels,
            registry=self.registry,
        )

        self.phases_completed_total = Counter(
            "invengine_phases_completed_total",
            "Total number of investigation phases completed",
            labelnames=["investigation_type"] + labels,
            registry=self.registry,
        )

        self.phase_duration = Histogram(
            "invengine_phase_duration_seconds",
            "Duration of investigation phases",
            labelnames=["investigation_type"] + labels,
            buckets=buckets,
            registry=self.registry,
        )

        self.queries_total = Counter(
            "invengine_queries_total",
            "Total number of investigation queries by outcome",
            labelnames=["outcome", "required"] + labels,
            registry=self.registry,
        )

        self.evidence_total = Counter(
            "invengine_evidence_total",
            "Total number of evidence records by significance",
            labelnames=["significance"] + labels,
            registry=self.registry,
        )

        self.ai_fallbacks_total = Counter(
            "invengine_ai_fallbacks_total",
            "Times a deterministic fallback replaced AI output",
            labelnames=["component"] + labels,
            registry=self.registry,
        )

        self.llm_requests_total = Counter(
            "invengine_llm_requests_total",
            "Total number of LLM requests",
            labelnames=["provider", "model", "template_type"] + labels,
            registry=self.registry,
        )

        self.llm_tokens_total = Counter(
            "invengine_llm_tokens_total",
            "Total number of LLM tokens used",
            labelnames=["provider", "model", "token_type"] + labels,
            registry=self.registry,
        )

        self.llm_errors_total = Counter(
            "invengine_llm_errors_total",
            "Total number of LLM errors",
            labelnames=["provider", "model", "error_type"] + labels,
            registry=self.registry,
        )

        self.system_info = Info(
            "invengine_system", "System information", registry=self.registry
        )
        self.system_info.info(
            {
                "version": self.config.tracing.service_version,
                "environment": self.config.environment,
            }
        )

        logger.info("Prometheus metrics initialized")

    def _start_metrics_server(self):
        """Start HTTP server for metrics endpoint"""
        try:
            start_http_server(port=self.config.metrics.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.config.metrics.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")

    def _labels(self, **labels: str) -> dict[str, str]:
        return {**self.config.metrics.default_labels, **labels}

    def _active(self) -> Gauge:
        default_labels = self._labels()
        if not default_labels:
            return self.active_investigations
        return self.active_investigations.labels(**default_labels)

    # Investigation lifecycle
    def record_investigation_started(self, investigation_type: str, plan_source: str):
        self.investigations_started_total.labels(
            **self._labels(investigation_type=investigation_type, plan_source=plan_source)
        ).inc()
        self._active().inc()

    def record_investigation_completed(self, investigation_type: str, duration: float):
        self.investigations_completed_total.labels(
            **self._labels(investigation_type=investigation_type)
        ).inc()
        self.investigation_duration.labels(
            **self._labels(investigation_type=investigation_type)
        ).observe(duration)
        self._active().dec()

    def record_investigation_failed(self, reason: str, closed: bool = True):
        """Record a failure; ``closed`` drops it from the active gauge"""
        self.investigations_failed_total.labels(**self._labels(reason=reason)).inc()
        if closed:
            self._active().dec()

    # Execution
    def record_phase_completed(self, investigation_type: str, duration: float):
        labels = self._labels(investigation_type=investigation_type)
        self.phases_completed_total.labels(**labels).inc()
        self.phase_duration.labels(**labels).observe(duration)

    def record_query(self, outcome: str, required: bool):
        self.queries_total.labels(
            **self._labels(outcome=outcome, required=str(required).lower())
        ).inc()

    def record_evidence(self, significance: str):
        self.evidence_total.labels(**self._labels(significance=significance)).inc()

    # AI usage
    def record_ai_fallback(self, component: str):
        self.ai_fallbacks_total.labels(**self._labels(component=component)).inc()

    def record_llm_request(self, provider: str, model: str, template_type: str = ""):
        self.llm_requests_total.labels(
            **self._labels(provider=provider, model=model, template_type=template_type)
        ).inc()

    def record_llm_tokens(
        self,
        provider: str,
        model: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ):
        if prompt_tokens > 0:
            self.llm_tokens_total.labels(
                **self._labels(provider=provider, model=model, token_type="prompt")
            ).inc(prompt_tokens)
        if completion_tokens > 0:
            self.llm_tokens_total.labels(
                **self._labels(provider=provider, model=model, token_type="completion")
            ).inc(completion_tokens)

    def record_llm_error(self, provider: str, model: str, error_type: str):
        self.llm_errors_total.labels(
            **self._labels(provider=provider, model=model, error_type=error_type)
        ).inc()

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")


_metrics: Optional[MetricsCollector] = None


def initialize_metrics(config: TelemetryConfig) -> None:
    """Initialize global metrics collector"""
    global _metrics
    if not config.enabled or not config.metrics.enabled:
        logger.info("Metrics collection is disabled")
        return
    _metrics = MetricsCollector(config)


def get_metrics() -> Optional[MetricsCollector]:
    """Get the global metrics collector"""
    return _metrics


def reset_metrics() -> None:
    """Drop the global collector (used by tests and shutdown)"""
    global _metrics
    _metrics = None
