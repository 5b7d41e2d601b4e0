"""Sources: database-backed catalog of feeds, their schedule and run stats."""

from src.sources.config import SourcesConfig
from src.sources.repository import SourcesRepository
from src.sources.scheduler import due_sources, is_due
from src.sources.schemas import (
    CollectorType,
    RestApiConfig,
    RssConfig,
    SourceConfig,
    create_source_config,
)
from src.sources.service import SourceExistsError, SourcesService

__all__ = [
    "CollectorType",
    "RestApiConfig",
    "RssConfig",
    "SourceConfig",
    "SourceExistsError",
    "SourcesConfig",
    "SourcesRepository",
    "SourcesService",
    "create_source_config",
    "due_sources",
    "is_due",
]
