"""
Prometheus metrics for webhook forwarding and ramp transactions.
"""

from loguru import logger
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class CustomMetrics:
    """Custom business metrics using Prometheus."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        # Webhook forwarding
        self.webhook_requests_total = Counter(
            "webhook_requests_total",
            "Inbound provider callbacks by route and response status",
            ["route", "status"],
            registry=self.registry,
        )

        self.webhook_forward_attempts_total = Counter(
            "webhook_forward_attempts_total",
            "Forwarding attempts to the internal backend",
            ["route", "result"],
            registry=self.registry,
        )

        self.webhook_forward_exhausted_total = Counter(
            "webhook_forward_exhausted_total",
            "Callbacks dropped after the retry budget ran out",
            ["route"],
            registry=self.registry,
        )

        self.webhook_forward_duration = Histogram(
            "webhook_forward_duration_seconds",
            "Time spent in one forwarding attempt",
            ["route"],
            registry=self.registry,
        )

        self.webhook_forwards_pending = Gauge(
            "webhook_forwards_pending",
            "Detached forwarding tasks still running",
            registry=self.registry,
        )

        # Ramp transactions
        self.ramp_transactions_created_total = Counter(
            "ramp_transactions_created_total",
            "Ramp transactions created",
            ["type", "payment_method"],
            registry=self.registry,
        )

        self.ramp_transactions_finished_total = Counter(
            "ramp_transactions_finished_total",
            "Ramp transactions reaching a terminal state",
            ["status"],
            registry=self.registry,
        )


metrics = CustomMetrics()


def record_metric(
    metric_name: str,
    value: float,
    labels: dict[str, str] | None = None,
    metric_type: str = "counter",
) -> None:
    """Record a custom metric value."""
    metric = getattr(metrics, metric_name, None)
    if metric is None:
        logger.warning(f"Metric not found: {metric_name}")
        return

    target = metric.labels(**labels) if labels else metric

    if metric_type == "counter":
        target.inc(value)
    elif metric_type == "gauge":
        target.set(value)
    elif metric_type == "histogram":
        target.observe(value)
    else:
        raise ValueError(f"Unknown metric type: {metric_type}")


def increment_counter(name: str, labels: dict[str, str] | None = None) -> None:
    """Increment a counter metric."""
    record_metric(name, 1.0, labels, "counter")


def set_gauge(name: str, value: float, labels: dict[str, str] | None = None) -> None:
    """Set a gauge metric value."""
    record_metric(name, value, labels, "gauge")


def observe_histogram(name: str, value: float, labels: dict[str, str] | None = None) -> None:
    """Observe a value in a histogram metric."""
    record_metric(name, value, labels, "histogram")


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and content type for the ``/metrics`` endpoint."""
    return generate_latest(metrics.registry), CONTENT_TYPE_LATEST
