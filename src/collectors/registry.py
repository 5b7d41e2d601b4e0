"""Collector dispatch table keyed by collector type."""

import logging

from src.collectors.base import BaseCollector
from src.collectors.config import CollectorsConfig
from src.collectors.feed import FeedCollector
from src.collectors.rest_api import RestApiCollector
from src.sources.schemas import CollectorType

logger = logging.getLogger(__name__)


class CollectorRegistry:
    """
    Explicitly constructed registry of collectors.

    Built once at startup and passed to whoever needs to dispatch on a
    source's collector type. New transports are added with register()
    without touching the dispatch sites.
    """

    def __init__(self) -> None:
        self._collectors: dict[CollectorType, BaseCollector] = {}

    def register(self, collector: BaseCollector) -> None:
        if collector.collector_type in self._collectors:
            logger.warning(f"Replacing collector for {collector.collector_type.value}")
        self._collectors[collector.collector_type] = collector

    def get(self, collector_type: CollectorType | str) -> BaseCollector | None:
        try:
            key = CollectorType(collector_type)
        except ValueError:
            return None
        return self._collectors.get(key)

    def supported_types(self) -> list[CollectorType]:
        return list(self._collectors)


def build_default_registry(config: CollectorsConfig | None = None) -> CollectorRegistry:
    """Registry with the REST and feed collectors."""
    config = config or CollectorsConfig()
    registry = CollectorRegistry()
    registry.register(RestApiCollector(config))
    registry.register(FeedCollector(config))
    return registry
