"""Data ingestion module - raw-info schemas, field mapping, hashing and dedup."""

from src.ingestion.hashing import content_hash
from src.ingestion.mapping import Transform, apply_mapping, get_nested_value
from src.ingestion.schemas import (
    MarketInfo,
    ProcessedStatus,
    ProjectInfo,
    RawInfo,
    RecordType,
)

__all__ = [
    "MarketInfo",
    "ProcessedStatus",
    "ProjectInfo",
    "RawInfo",
    "RecordType",
    "Transform",
    "apply_mapping",
    "content_hash",
    "get_nested_value",
]
