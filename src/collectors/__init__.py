"""Collectors: transport-specific fetch and normalization."""

from src.collectors.base import (
    BaseCollector,
    CollectorResult,
    CollectorStats,
    ValidationResult,
)
from src.collectors.config import CollectorsConfig
from src.collectors.feed import FeedCollector
from src.collectors.registry import CollectorRegistry, build_default_registry
from src.collectors.rest_api import RestApiCollector

__all__ = [
    "BaseCollector",
    "CollectorRegistry",
    "CollectorResult",
    "CollectorStats",
    "CollectorsConfig",
    "FeedCollector",
    "RestApiCollector",
    "ValidationResult",
    "build_default_registry",
]
