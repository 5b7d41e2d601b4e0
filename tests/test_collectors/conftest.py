"""Shared fixtures for collector tests."""

import pytest

from src.collectors.config import CollectorsConfig
from src.sources.schemas import SourceConfig, create_source_config

API_BASE = "https://api.example.com/v1"
FEED_URL = "https://news.example.com/rss"


@pytest.fixture
def collectors_config() -> CollectorsConfig:
    """Fast retries for tests."""
    return CollectorsConfig(max_attempts=2, retry_base_delay=0.0, max_rate_limit_wait=1.0)


@pytest.fixture
def rest_source() -> SourceConfig:
    return create_source_config(
        type="project_info",
        source_id="coingecko",
        name="CoinGecko",
        collector_type="api:rest",
        collector_config={
            "base_url": API_BASE,
            "request_delay_ms": 0,
            "endpoints": [
                {
                    "path": "/coins/markets",
                    "params": {"vs_currency": "usd"},
                    "mapping": {
                        "id": "id",
                        "name": "name",
                        "symbol": {"source": "symbol", "transform": "uppercase"},
                        "logo": "image",
                        "category": {"source": "category", "default": "crypto"},
                    },
                },
            ],
        },
    )


@pytest.fixture
def rss_source() -> SourceConfig:
    return create_source_config(
        type="market_info",
        source_id="rss:example",
        name="Example News",
        collector_type="rss",
        collector_config={"url": FEED_URL, "max_items": 20, "category": "news"},
    )
