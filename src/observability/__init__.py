"""Observability layer - structured logging and Prometheus metrics."""

from src.observability.logging import setup_logging
from src.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
