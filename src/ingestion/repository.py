"""
Raw-info repository.

Both record families share one table keyed by (record_type, id). The full
record is stored as JSONB; source, status and timestamps are duplicated
into columns for the listing queries and the MarketInfo expiry sweep.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from src.ingestion.schemas import ProcessedStatus, RawInfo, RecordType, record_from_storage
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS raw_info (
    record_type       TEXT NOT NULL,
    id                TEXT NOT NULL,
    source            TEXT NOT NULL,
    processed_status  TEXT NOT NULL DEFAULT 'pending',
    data              JSONB NOT NULL,
    collected_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    expires_at        TIMESTAMPTZ,
    PRIMARY KEY (record_type, id)
);

CREATE INDEX IF NOT EXISTS idx_raw_info_source
    ON raw_info(record_type, source, collected_at DESC);
CREATE INDEX IF NOT EXISTS idx_raw_info_status
    ON raw_info(record_type, processed_status, collected_at DESC);
CREATE INDEX IF NOT EXISTS idx_raw_info_expires
    ON raw_info(expires_at) WHERE expires_at IS NOT NULL;
"""

_UPSERT_SQL = """
INSERT INTO raw_info (record_type, id, source, processed_status, data, collected_at, expires_at)
VALUES ($1, $2, $3, $4, $5, $6, $7)
ON CONFLICT (record_type, id) DO UPDATE SET
    source = EXCLUDED.source,
    processed_status = EXCLUDED.processed_status,
    data = EXCLUDED.data,
    collected_at = EXCLUDED.collected_at,
    expires_at = EXCLUDED.expires_at
"""

_PATCH_SQL = """
UPDATE raw_info
SET data = data || $3::jsonb,
    processed_status = COALESCE($4, processed_status)
WHERE record_type = $1 AND id = $2
"""


def _load_json(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        return json.loads(value)
    return dict(value) if value else {}


def _record_to_info(record) -> RawInfo:
    """Convert an asyncpg Record to a typed ProjectInfo or MarketInfo."""
    return record_from_storage(record["record_type"], _load_json(record["data"]))


class RawInfoRepository:
    """Storage for ProjectInfo and MarketInfo records."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Raw info table ensured")

    async def get(self, record_type: RecordType | str, record_id: str) -> RawInfo | None:
        row = await self._db.fetchrow(
            "SELECT record_type, data FROM raw_info WHERE record_type = $1 AND id = $2",
            RecordType(record_type).value,
            record_id,
        )
        return _record_to_info(row) if row else None

    async def put(self, info: RawInfo) -> None:
        """Insert or overwrite a record (last write wins)."""
        await self._db.execute(
            _UPSERT_SQL,
            info.record_type.value,
            info.id,
            info.source,
            ProcessedStatus(info.processed_status).value,
            info.to_storage_dict(),
            info.collected_at,
            getattr(info, "expires_at", None),
        )

    async def update_fields(
        self,
        record_type: RecordType | str,
        record_id: str,
        fields: dict[str, Any],
    ) -> bool:
        """Merge JSON-serializable fields into a stored record.

        A `processed_status` key also updates the status column.
        Returns True if the record existed.
        """
        status = fields.get("processed_status")
        result = await self._db.execute(
            _PATCH_SQL,
            RecordType(record_type).value,
            record_id,
            fields,
            ProcessedStatus(status).value if status else None,
        )
        return result.endswith(" 1")

    async def update_status(
        self,
        record_type: RecordType | str,
        record_id: str,
        status: ProcessedStatus,
        error: str | None = None,
    ) -> bool:
        fields: dict[str, Any] = {"processed_status": ProcessedStatus(status).value}
        if status in (ProcessedStatus.PROCESSED, ProcessedStatus.FAILED):
            fields["processed_at"] = datetime.now(timezone.utc).isoformat()
        if error is not None:
            fields["processing_error"] = error
        return await self.update_fields(record_type, record_id, fields)

    async def query(
        self,
        record_type: RecordType | str,
        source: str | None = None,
        status: ProcessedStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RawInfo], int]:
        """Newest-first page of records, optionally filtered. Returns (records, total)."""
        params: list[Any] = [RecordType(record_type).value]
        conditions = ["record_type = $1"]
        if source is not None:
            params.append(source)
            conditions.append(f"source = ${len(params)}")
        if status is not None:
            params.append(ProcessedStatus(status).value)
            conditions.append(f"processed_status = ${len(params)}")
        where = " AND ".join(conditions)

        total = await self._db.fetchval(f"SELECT COUNT(*) FROM raw_info WHERE {where}", *params)

        idx = len(params) + 1
        rows = await self._db.fetch(
            f"""
            SELECT record_type, data FROM raw_info WHERE {where}
            ORDER BY collected_at DESC, id
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *params,
            limit,
            offset,
        )
        return [_record_to_info(r) for r in rows], total or 0

    async def query_by_source(
        self,
        record_type: RecordType | str,
        source: str,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RawInfo], int]:
        """Newest-first page of records from one source. Returns (records, total)."""
        return await self.query(record_type, source=source, limit=limit, offset=offset)

    async def query_by_status(
        self,
        record_type: RecordType | str,
        status: ProcessedStatus | str,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RawInfo], int]:
        """Newest-first page of records in one status. Returns (records, total)."""
        return await self.query(record_type, status=status, limit=limit, offset=offset)

    async def scan(
        self,
        record_type: RecordType | str,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RawInfo], int]:
        return await self.query(record_type, limit=limit, offset=offset)

    async def count_by_status(self, record_type: RecordType | str) -> dict[str, int]:
        rows = await self._db.fetch(
            """
            SELECT processed_status, COUNT(*) AS count
            FROM raw_info WHERE record_type = $1
            GROUP BY processed_status
            """,
            RecordType(record_type).value,
        )
        counts = {status.value: 0 for status in ProcessedStatus}
        for row in rows:
            counts[row["processed_status"]] = row["count"]
        return counts

    async def delete_expired(self, now: datetime | None = None, dry_run: bool = False) -> int:
        """Remove records whose expires_at has passed. Returns the affected count."""
        now = now or datetime.now(timezone.utc)

        if dry_run:
            return await self._db.fetchval(
                "SELECT COUNT(*) FROM raw_info WHERE expires_at IS NOT NULL AND expires_at < $1",
                now,
            ) or 0

        result = await self._db.execute(
            "DELETE FROM raw_info WHERE expires_at IS NOT NULL AND expires_at < $1",
            now,
        )
        deleted = int(result.split()[-1]) if result else 0
        logger.info("Deleted %d expired raw info records", deleted)
        return deleted
