"""
Prometheus metrics for the crypto-tracker pipeline.

Covers:
- Collection runs per source (items fetched, saved, skipped, latency)
- Resolution outcomes and LLM tool-use rounds
- Entity operations applied by the mutation engine
- Queue depth, reclaim and dead-letter counters

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_collection("rss:coindesk", saved=4, skipped=16)
    """

    def __init__(self):
        # Collection
        self.items_collected = Counter(
            "crypto_tracker_items_collected_total",
            "Items fetched from upstream sources",
            ["source"],
        )

        self.items_saved = Counter(
            "crypto_tracker_items_saved_total",
            "Items persisted after deduplication",
            ["source"],
        )

        self.items_skipped = Counter(
            "crypto_tracker_items_skipped_total",
            "Items skipped as unchanged or duplicate",
            ["source"],
        )

        self.collection_errors = Counter(
            "crypto_tracker_collection_errors_total",
            "Failed collection runs",
            ["source", "collector_type"],
        )

        self.collection_latency = Histogram(
            "crypto_tracker_collection_latency_seconds",
            "Wall time of one source collection",
            ["collector_type"],
            buckets=LATENCY_BUCKETS,
        )

        # Resolution
        self.records_resolved = Counter(
            "crypto_tracker_records_resolved_total",
            "Raw records run through resolution",
            ["record_type", "status"],  # status: processed, failed, skipped
        )

        self.resolution_rounds = Histogram(
            "crypto_tracker_resolution_rounds",
            "LLM rounds used per resolution",
            buckets=(1, 2, 3, 4, 5),
        )

        self.resolution_latency = Histogram(
            "crypto_tracker_resolution_latency_seconds",
            "Time to resolve one raw record",
            ["record_type"],
            buckets=LATENCY_BUCKETS,
        )

        self.entity_operations = Counter(
            "crypto_tracker_entity_operations_total",
            "Entity operations applied",
            ["op", "outcome"],  # outcome: applied, skipped
        )

        # Queues
        self.queue_depth = Gauge(
            "crypto_tracker_queue_depth",
            "Number of messages in Redis stream",
            ["stream"],
        )

        self.pending_reclaimed = Counter(
            "crypto_tracker_queue_pending_reclaimed_total",
            "Total messages reclaimed from pending state",
            ["queue"],
        )

        self.dlq_max_retries = Counter(
            "crypto_tracker_queue_dlq_max_retries_total",
            "Total messages moved to DLQ due to max retries exceeded",
            ["queue"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Start Prometheus metrics HTTP server (default port from settings)."""
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_collection(
        self,
        source: str,
        fetched: int = 0,
        saved: int = 0,
        skipped: int = 0,
        collector_type: str | None = None,
        latency: float | None = None,
    ) -> None:
        """Record one successful collection run."""
        self.items_collected.labels(source=source).inc(fetched)
        self.items_saved.labels(source=source).inc(saved)
        self.items_skipped.labels(source=source).inc(skipped)

        if latency is not None and collector_type:
            self.collection_latency.labels(collector_type=collector_type).observe(latency)

    def record_collection_error(self, source: str, collector_type: str) -> None:
        self.collection_errors.labels(source=source, collector_type=collector_type).inc()

    def record_resolution(
        self,
        record_type: str,
        status: str,
        rounds: int | None = None,
        latency: float | None = None,
    ) -> None:
        """
        Record a resolution outcome.

        Args:
            record_type: project_info or market_info
            status: processed, failed or skipped
            rounds: LLM rounds used (omitted for skipped records)
            latency: Wall time in seconds
        """
        self.records_resolved.labels(record_type=record_type, status=status).inc()

        if rounds is not None:
            self.resolution_rounds.observe(rounds)
        if latency is not None:
            self.resolution_latency.labels(record_type=record_type).observe(latency)

    def record_entity_operation(self, op: str, applied: bool) -> None:
        outcome = "applied" if applied else "skipped"
        self.entity_operations.labels(op=op, outcome=outcome).inc()

    def set_queue_depth(self, stream: str, depth: int) -> None:
        self.queue_depth.labels(stream=stream).set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
