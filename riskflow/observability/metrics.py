"""
Prometheus metrics collection for riskflow

This module provides metrics instrumentation for monitoring
pipeline throughput, data quality and scoring outcomes.
"""
import os

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
# PIPELINE METRICS
# =======================

records_processed_total = Counter(
    name="riskflow_records_processed_total",
    documentation="Total number of records processed by the pipeline",
    labelnames=["status"],  # status: valid, invalid, scored, excluded
    registry=REGISTRY,
)

batches_processed_total = Counter(
    name="riskflow_batches_processed_total",
    documentation="Total number of batches reaching a terminal state",
    labelnames=["state", "error_kind"],
    registry=REGISTRY,
)

stage_duration_seconds = Histogram(
    name="riskflow_stage_duration_seconds",
    documentation="Time spent in each pipeline stage in seconds",
    labelnames=["stage"],  # stage: validating, deriving, scoring, committing
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)

batch_size = Histogram(
    name="riskflow_batch_size_records",
    documentation="Number of records in each batch",
    buckets=[1, 10, 100, 500, 1000, 5000, 10000, 50000, 100000],
    registry=REGISTRY,
)

# =======================
# DATA QUALITY METRICS
# =======================

validation_violations_total = Counter(
    name="riskflow_validation_violations_total",
    documentation="Total number of rule violations found during validation",
    labelnames=["kind", "field_name"],
    registry=REGISTRY,
)

derivation_exclusions_total = Counter(
    name="riskflow_derivation_exclusions_total",
    documentation="Identifiers excluded during feature derivation",
    labelnames=["reason"],
    registry=REGISTRY,
)

schema_evolution_total = Counter(
    name="riskflow_schema_evolution_total",
    documentation="Total number of schema evolution events",
    labelnames=["change_type"],
    registry=REGISTRY,
)

# =======================
# SCORING METRICS
# =======================

scores_total = Counter(
    name="riskflow_scores_total",
    documentation="Score results produced, by segment",
    labelnames=["model_version", "segment"],
    registry=REGISTRY,
)

model_latency_seconds = Histogram(
    name="riskflow_model_latency_seconds",
    documentation="Latency of model predict calls",
    labelnames=["model_version"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    registry=REGISTRY,
)

# =======================
# ERROR METRICS
# =======================

retries_total = Counter(
    name="riskflow_retries_total",
    documentation="Total number of retry attempts",
    labelnames=["operation", "status"],  # status: retrying, exhausted, success
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Generate Prometheus metrics in text format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int | None = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: HTTP server only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(stage_duration_seconds, stage="validating"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time() if self.labels else self.histogram.time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """Increment a counter metric"""
    if value <= 0:
        return
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """Observe a value in a histogram metric"""
    if labels:
        histogram.labels(**labels).observe(value)
    else:
        histogram.observe(value)


def record_batch_outcome(
    state: str,
    total_records: int,
    valid_records: int,
    invalid_records: int,
    scored_records: int,
    excluded_records: int,
    error_kind: str | None = None,
) -> None:
    """
    Record the counts of a batch that reached a terminal state.

    Args:
        state: Terminal state (Committed or Failed)
        total_records: Records ingested
        valid_records: Records that passed validation
        invalid_records: Records routed to the rejection sink
        scored_records: Score results committed
        excluded_records: Identifiers excluded during derivation
        error_kind: Fatal error kind for failed batches
    """
    increment_counter(records_processed_total, valid_records, status="valid")
    increment_counter(records_processed_total, invalid_records, status="invalid")
    increment_counter(records_processed_total, scored_records, status="scored")
    increment_counter(records_processed_total, excluded_records, status="excluded")
    observe_histogram(batch_size, total_records)
    increment_counter(batches_processed_total, 1, state=state, error_kind=error_kind or "none")


def record_violation(kind: str, field_name: str | None) -> None:
    """Record a single validation violation."""
    increment_counter(validation_violations_total, 1, kind=kind, field_name=field_name or "_record")
