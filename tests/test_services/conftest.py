"""Shared fixtures for service tests."""

from datetime import datetime, timezone
from typing import Any

from src.ingestion.schemas import ProcessedStatus, RawInfo, RecordType


class InMemoryRawRepository:
    """Dict-backed stand-in with the RawInfoRepository API."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], RawInfo] = {}

    async def get(self, record_type: RecordType | str, record_id: str) -> RawInfo | None:
        return self.records.get((RecordType(record_type).value, record_id))

    async def put(self, info: RawInfo) -> None:
        self.records[(info.record_type.value, info.id)] = info

    async def update_fields(
        self,
        record_type: RecordType | str,
        record_id: str,
        fields: dict[str, Any],
    ) -> bool:
        key = (RecordType(record_type).value, record_id)
        record = self.records.get(key)
        if record is None:
            return False
        self.records[key] = type(record).model_validate({**record.model_dump(), **fields})
        return True

    async def update_status(
        self,
        record_type: RecordType | str,
        record_id: str,
        status: ProcessedStatus,
        error: str | None = None,
    ) -> bool:
        fields: dict[str, Any] = {"processed_status": ProcessedStatus(status).value}
        if status in (ProcessedStatus.PROCESSED, ProcessedStatus.FAILED):
            fields["processed_at"] = datetime.now(timezone.utc)
        if error is not None:
            fields["processing_error"] = error
        return await self.update_fields(record_type, record_id, fields)
