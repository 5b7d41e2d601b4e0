"""Shared fixtures for sources tests."""

from datetime import datetime, timezone

import pytest

from src.sources.schemas import SourceConfig, create_source_config


@pytest.fixture
def sample_source() -> SourceConfig:
    """An RSS market-info source that has never run."""
    return create_source_config(
        type="market_info",
        source_id="rss:coindesk",
        name="CoinDesk",
        collector_type="rss",
        collector_config={"url": "https://www.coindesk.com/arc/outboundfeeds/rss/"},
        interval_minutes=15,
        priority=10,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_db_row(sample_source: SourceConfig) -> dict:
    """A dict mimicking an asyncpg Record for a source."""
    return {"data": sample_source.to_storage_dict()}
