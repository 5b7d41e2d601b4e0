"""
Raw-info record schemas.

Collectors emit two record families:

- ProjectInfo: low-frequency project metadata from REST APIs. Identity is
  derived from the source and the upstream native id, so a later fetch of
  the same project overwrites the earlier record when its data changed.
- MarketInfo: high-frequency news items from feeds. No stable native id
  exists, so identity embeds a content hash of title + link.

Both flow through resolution with the status lifecycle
pending -> processing -> processed | failed.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator

from src.entities.schemas import MarketEventType, Sentiment
from src.ingestion.hashing import content_hash

MARKET_INFO_TTL_DAYS = 30


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class RecordType(str, Enum):
    PROJECT_INFO = "project_info"
    MARKET_INFO = "market_info"


class ProcessedStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class RawInfo(BaseModel):
    """Fields shared by both record families."""

    record_type: ClassVar[RecordType]

    id: str = Field(..., min_length=1)
    source: str = Field(..., description="source_id of the SourceConfig that produced the record")
    raw_data: dict[str, Any] = Field(default_factory=dict, description="Upstream payload, untouched")

    processed_status: ProcessedStatus = ProcessedStatus.PENDING
    collected_at: datetime = Field(default_factory=_utc_now)
    processed_at: datetime | None = None
    processing_error: str | None = None

    # Resolution output
    entity_id: str | None = None
    ai_reasoning: str | None = None

    @property
    def is_processed(self) -> bool:
        return self.processed_status == ProcessedStatus.PROCESSED

    def to_storage_dict(self) -> dict[str, Any]:
        """Serialize for JSONB storage."""
        return self.model_dump(mode="json")


class ProjectInfo(RawInfo):
    record_type: ClassVar[RecordType] = RecordType.PROJECT_INFO

    native_id: str = Field(..., description="Upstream native id (or slug/symbol fallback)")
    data_hash: str = Field(..., description="Content hash of raw_data")

    name: str | None = None
    description: str | None = None
    logo: str | None = None
    website: str | None = None
    source_category: str | None = None
    twitter: str | None = None
    token_symbol: str | None = None

    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="Every field produced by the source mapping",
    )

    @staticmethod
    def build_id(source: str, native_id: str) -> str:
        return f"{source}:{native_id}"


class MarketInfo(RawInfo):
    record_type: ClassVar[RecordType] = RecordType.MARKET_INFO

    title: str = Field(..., min_length=1)
    content: str = ""
    summary: str | None = None
    url: str | None = None
    author: str | None = None
    published_at: datetime = Field(default_factory=_utc_now)
    tags: list[str] = Field(default_factory=list)
    language: str = "en"
    content_hash: str
    expires_at: datetime | None = None

    # Resolution output
    related_project_ids: list[str] = Field(default_factory=list)
    sentiment: Sentiment | None = None
    event_type: MarketEventType | None = None
    ai_summary: str | None = None
    importance_score: int | None = Field(default=None, ge=0, le=100)

    @field_validator("tags", mode="before")
    @classmethod
    def drop_empty_tags(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [t for t in v if t]
        return v

    @staticmethod
    def hash_for(title: str, link: str | None) -> str:
        return content_hash(f"{title}{link or ''}")

    @staticmethod
    def build_id(source: str, title: str, link: str | None) -> str:
        """Deterministic id: the feed key plus a hash of title and link."""
        feed_key = source.split(":", 1)[1] if source.startswith("rss:") else source
        return f"{feed_key}-{MarketInfo.hash_for(title, link)}"

    @staticmethod
    def default_expiry(collected_at: datetime, ttl_days: int = MARKET_INFO_TTL_DAYS) -> datetime:
        return collected_at + timedelta(days=ttl_days)


_RECORD_CLASSES: dict[RecordType, type[RawInfo]] = {
    RecordType.PROJECT_INFO: ProjectInfo,
    RecordType.MARKET_INFO: MarketInfo,
}


def record_class(record_type: RecordType | str) -> type[RawInfo]:
    return _RECORD_CLASSES[RecordType(record_type)]


def record_from_storage(record_type: RecordType | str, data: dict[str, Any]) -> RawInfo:
    """Rebuild a typed record from its stored JSON document."""
    return record_class(record_type).model_validate(data)
