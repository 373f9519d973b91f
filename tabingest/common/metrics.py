"""
Prometheus metrics for ingestion monitoring.

Provides counters and histograms for tracking:
- Sources ingested, by terminal status
- Rows inserted and batches submitted
- Schema repairs (widen-and-retry)
"""

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

REGISTRY = CollectorRegistry()

# ========== Counters ==========

ingest_sources_total = Counter(
    "ingest_sources_total",
    "Total number of sources that reached a terminal status",
    ["status"],  # processed/failed/empty/unsupported
    registry=REGISTRY,
)

ingest_rows_inserted_total = Counter(
    "ingest_rows_inserted_total",
    "Total number of rows committed to target tables",
    registry=REGISTRY,
)

ingest_batches_total = Counter(
    "ingest_batches_total",
    "Total number of insert batches submitted",
    ["outcome"],  # committed/repaired/failed
    registry=REGISTRY,
)

schema_repairs_total = Counter(
    "schema_repairs_total",
    "Total number of columns widened to nullable after a constraint violation",
    registry=REGISTRY,
)

# ========== Histograms ==========

ingest_source_duration_seconds = Histogram(
    "ingest_source_duration_seconds",
    "Time to ingest one source",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 300.0),
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
