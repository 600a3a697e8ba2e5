"""
Prometheus metrics for billing-intake

Batch transitions, staged/promoted record counts, approval failures and
PDF row classification, all on a private registry.
"""
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# BATCH LIFECYCLE METRICS
# =======================

batches_total = Counter(
    name="intake_batches_total",
    documentation="Batch status transitions",
    labelnames=["carrier", "status"],
    registry=REGISTRY,
)

staged_records_total = Counter(
    name="intake_staged_records_total",
    documentation="Records written to staging",
    labelnames=["carrier"],
    registry=REGISTRY,
)

final_records_total = Counter(
    name="intake_final_records_total",
    documentation="Records promoted to final tables on approval",
    labelnames=["carrier"],
    registry=REGISTRY,
)

approval_failures_total = Counter(
    name="intake_approval_failures_total",
    documentation="Approvals rolled back and finalized as FAILED",
    labelnames=["carrier", "reason"],  # reason: duplicate, error
    registry=REGISTRY,
)

compensation_failures_total = Counter(
    name="intake_compensation_failures_total",
    documentation="FAILED status writes that could not be committed",
    registry=REGISTRY,
)

# =======================
# PARSER METRICS
# =======================

pdf_rows_total = Counter(
    name="intake_pdf_rows_total",
    documentation="Detail of Charges rows by classification",
    labelnames=["kind"],  # kind: charge, context, sub, ignored
    registry=REGISTRY,
)

operation_duration_seconds = Histogram(
    name="intake_operation_duration_seconds",
    documentation="Time spent in pipeline operations",
    labelnames=["operation"],
    buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)


def increment_counter(counter: Counter, amount: float = 1, **labels) -> None:
    """Increment a counter, applying labels when given"""
    if labels:
        counter.labels(**labels).inc(amount)
    else:
        counter.inc(amount)


def observe_duration(operation: str, seconds: float) -> None:
    operation_duration_seconds.labels(operation=operation).observe(seconds)


def get_metrics() -> bytes:
    """Render the registry in Prometheus text exposition format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
