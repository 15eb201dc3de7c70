"""
Delivery metrics.

Prometheus collectors are registered in the global REGISTRY at import time.
RunMetrics keeps the per-run totals that are logged when a run finishes.
"""

from __future__ import annotations

from time import monotonic
from typing import Optional

from prometheus_client import Counter, Histogram

# --- Prometheus collectors ---

BATCHES_TOTAL = Counter(
    "feed_batches_total",
    "Total number of product batches handed to the sink",
    ["outcome"],
)

DELIVERY_ATTEMPTS_TOTAL = Counter(
    "feed_delivery_attempts_total",
    "Total sink calls, including retries",
    ["outcome"],
)

RECORDS_TOTAL = Counter(
    "feed_records_total",
    "Total feed records seen by the driver",
    ["status"],
)

BATCH_BYTES = Histogram(
    "feed_batch_bytes",
    "Encoded size of delivered batches in bytes",
    buckets=[1024, 16_384, 131_072, 524_288, 1_048_576, 2_097_152, 4_194_304, 5_242_880],
)

BATCH_RECORDS = Histogram(
    "feed_batch_records",
    "Number of products per delivered batch",
    buckets=[1, 5, 10, 50, 100, 500, 1000, 5000, 10000],
)


class RunMetrics:
    """In-run delivery totals.

    Tracks what actually reached the sink, as opposed to the driver counters
    which track what was read from the source.
    """

    def __init__(self) -> None:
        self.start_time: Optional[float] = None
        self.batches_sent = 0
        self.products_delivered = 0
        self.total_bytes = 0
        self.errors = 0

    def start(self) -> None:
        self.start_time = monotonic()

    def record_batch(self, size_bytes: int, product_count: int) -> None:
        self.batches_sent += 1
        self.products_delivered += product_count
        self.total_bytes += size_bytes
        BATCHES_TOTAL.labels(outcome="delivered").inc()
        BATCH_BYTES.observe(size_bytes)
        BATCH_RECORDS.observe(product_count)

    def record_failure(self) -> None:
        self.errors += 1
        BATCHES_TOTAL.labels(outcome="failed").inc()

    def snapshot(self) -> dict:
        elapsed_ms = (monotonic() - self.start_time) * 1000.0 if self.start_time else 0.0
        secs = elapsed_ms / 1000.0
        return {
            "batches_sent": self.batches_sent,
            "products_delivered": self.products_delivered,
            "total_bytes": self.total_bytes,
            "errors": self.errors,
            "elapsed_ms": round(elapsed_ms, 2),
            "products_per_second": round(self.products_delivered / secs, 2) if secs > 0 else 0.0,
            "average_batch_bytes": (
                round(self.total_bytes / self.batches_sent, 2) if self.batches_sent else 0.0
            ),
        }
