"""Data models for the sources module.

A source is one external feed: which collector fetches it, how that
collector is configured, how often it runs and how it has fared so far.
The composite key is (type, source_id); `id` is always derived from it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from src.ingestion.schemas import RecordType

DEFAULT_INTERVAL_MINUTES = 15
DEFAULT_PRIORITY = 100


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_source_key(type: RecordType | str, source_id: str) -> str:
    return f"{RecordType(type).value}:{source_id}"


def parse_source_key(key: str) -> tuple[RecordType, str]:
    """Split 'market_info:rss:coindesk' into (MARKET_INFO, 'rss:coindesk').

    Raises:
        ValueError: If the key has no type prefix or an unknown type
    """
    type_part, sep, source_id = key.partition(":")
    if not sep or not source_id:
        raise ValueError(f"Malformed source id: {key!r}")
    return RecordType(type_part), source_id


class CollectorType(str, Enum):
    REST_API = "api:rest"
    RSS = "rss"


class CollectStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class EndpointConfig(BaseModel):
    """One REST endpoint and how its records map onto ProjectInfo fields."""

    path: str = ""
    method: Literal["GET", "POST"] = "GET"
    mapping: dict[str, Any] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: dict[str, Any] | None = None
    data_path: str | None = Field(
        default=None,
        description="Dotted path to the record array inside an envelope response",
    )
    limit: int | None = Field(default=None, ge=1)


class RestApiConfig(BaseModel):
    type: Literal["api:rest"] = "api:rest"
    base_url: str = ""
    endpoints: list[EndpointConfig] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    rate_limit: int = Field(default=30, description="Requests per minute")
    request_delay_ms: int = Field(default=1000, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0)


class RssConfig(BaseModel):
    type: Literal["rss"] = "rss"
    url: str = ""
    max_items: int = 20
    category: str | None = None
    language: str = "en"
    user_agent: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)


CollectorConfig = Annotated[
    Union[RestApiConfig, RssConfig],
    Field(discriminator="type"),
]


class CollectionStats(BaseModel):
    total_collected: int = 0
    success_count: int = 0
    failed_count: int = 0
    last_item_count: int = 0


class SourceConfig(BaseModel):
    """A configured ingestion source."""

    type: RecordType
    source_id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    collector_type: CollectorType
    collector_config: CollectorConfig

    interval_minutes: int = Field(default=DEFAULT_INTERVAL_MINUTES, ge=1)
    priority: int = Field(default=DEFAULT_PRIORITY, description="Lower runs sooner")
    enabled: bool = True

    last_collected_at: datetime | None = None
    last_collect_status: CollectStatus | None = None
    last_collect_error: str | None = None
    stats: CollectionStats = Field(default_factory=CollectionStats)

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def check_collector_config(self) -> "SourceConfig":
        if self.collector_config.type != CollectorType(self.collector_type).value:
            raise ValueError(
                f"collector_config type {self.collector_config.type!r} "
                f"does not match collector_type {CollectorType(self.collector_type).value!r}"
            )
        return self

    @property
    def id(self) -> str:
        return build_source_key(self.type, self.source_id)

    def to_storage_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def create_source_config(
    type: RecordType | str,
    source_id: str,
    name: str,
    collector_type: CollectorType | str,
    collector_config: dict[str, Any] | RestApiConfig | RssConfig,
    **options: Any,
) -> SourceConfig:
    """Build a SourceConfig with catalog defaults and zeroed stats.

    Raises:
        pydantic.ValidationError: If any field is invalid
    """
    if isinstance(collector_config, dict):
        collector_config = {"type": CollectorType(collector_type).value, **collector_config}

    return SourceConfig(
        type=type,
        source_id=source_id,
        name=name,
        collector_type=collector_type,
        collector_config=collector_config,
        **options,
    )
