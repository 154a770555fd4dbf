"""
Prometheus metrics for the voucher authorizer

Covers the three moving parts of the pipeline: change dispatching,
remote authorization and batch processing of queue messages / change events.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# DISPATCH METRICS
# =======================

change_events_total = Counter(
    name="authorizer_change_events_total",
    documentation="Change events seen by the dispatcher",
    labelnames=["event_name", "action"],  # action: authorize, notify, none, dropped
    registry=REGISTRY,
)

dispatched_messages_total = Counter(
    name="authorizer_dispatched_messages_total",
    documentation="Messages sent to the work queue or the notification topic",
    labelnames=["event_type", "status"],  # status: success, failure
    registry=REGISTRY,
)

# =======================
# AUTHORIZATION METRICS
# =======================

authorizations_total = Counter(
    name="authorizer_authorizations_total",
    documentation="Authorization attempts by outcome",
    labelnames=["environment", "outcome"],  # outcome: authorized, not_authorized, error, not_found, already_final
    registry=REGISTRY,
)

remote_call_duration_seconds = Histogram(
    name="authorizer_remote_call_duration_seconds",
    documentation="Latency of remote authority calls in seconds",
    labelnames=["environment"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)

artifacts_stored_total = Counter(
    name="authorizer_artifacts_stored_total",
    documentation="Authorized XML artifacts written to the artifact store",
    labelnames=["status"],  # status: stored, skipped
    registry=REGISTRY,
)

# =======================
# BATCH METRICS
# =======================

batch_items_total = Counter(
    name="authorizer_batch_items_total",
    documentation="Batch items processed",
    labelnames=["handler", "status"],  # status: success, failure, dropped
    registry=REGISTRY,
)

batch_duration_seconds = Histogram(
    name="authorizer_batch_duration_seconds",
    documentation="Time spent processing a batch in seconds",
    labelnames=["handler"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 120.0],
    registry=REGISTRY,
)

dead_lettered_messages_total = Counter(
    name="authorizer_dead_lettered_messages_total",
    documentation="Messages moved to a dead-letter queue",
    labelnames=["queue", "reason"],  # reason: non_retriable, max_receive_count
    registry=REGISTRY,
)

# =======================
# ERROR METRICS
# =======================

errors_total = Counter(
    name="authorizer_errors_total",
    documentation="Total number of errors",
    labelnames=["error_type", "component"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Imported lazily so importing this module never binds a port
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(remote_call_duration_seconds, environment="test"):
            ...
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def record_error(error: BaseException, component: str) -> None:
    """Count an error by exception class and component."""
    increment_counter(errors_total, error_type=type(error).__name__, component=component)


def get_sample_value(name: str, labels: dict[str, str] | None = None) -> float | None:
    """Read the current value of a sample (used by CLI status output and tests)."""
    return REGISTRY.get_sample_value(name, labels or {})
