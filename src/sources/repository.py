"""Database repository for the source_configs table."""

import json
import logging
from typing import Any

from src.ingestion.schemas import RecordType
from src.sources.schemas import SourceConfig
from src.storage.database import Database

logger = logging.getLogger(__name__)

# The full config lives in `data`; the scalar columns duplicate the fields
# the scheduler filters and sorts on.
_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS source_configs (
    id          TEXT PRIMARY KEY,
    type        TEXT NOT NULL,
    source_id   TEXT NOT NULL,
    enabled     BOOLEAN NOT NULL DEFAULT TRUE,
    priority    INTEGER NOT NULL DEFAULT 100,
    data        JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (type, source_id)
);

CREATE INDEX IF NOT EXISTS idx_source_configs_type
    ON source_configs(type, priority);
CREATE INDEX IF NOT EXISTS idx_source_configs_enabled
    ON source_configs(priority) WHERE enabled = TRUE;
"""

_UPSERT_SQL = """
INSERT INTO source_configs (id, type, source_id, enabled, priority, data)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (id) DO UPDATE SET
    enabled = EXCLUDED.enabled,
    priority = EXCLUDED.priority,
    data = EXCLUDED.data,
    updated_at = NOW()
"""

_BULK_INSERT_SQL = """
INSERT INTO source_configs (id, type, source_id, enabled, priority, data)
SELECT * FROM unnest(
    $1::text[], $2::text[], $3::text[], $4::boolean[], $5::integer[], $6::jsonb[]
)
ON CONFLICT (id) DO NOTHING
"""


def _load_json(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        return json.loads(value)
    return dict(value) if value else {}


def _record_to_source(record) -> SourceConfig:
    """Convert an asyncpg Record to a SourceConfig."""
    return SourceConfig.model_validate(_load_json(record["data"]))


class SourcesRepository:
    """CRUD operations for the source_configs table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the source_configs table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Source configs table ensured")

    async def get(self, source_key: str) -> SourceConfig | None:
        row = await self._db.fetchrow(
            "SELECT data FROM source_configs WHERE id = $1",
            source_key,
        )
        return _record_to_source(row) if row else None

    async def put(self, source: SourceConfig) -> None:
        """Insert or overwrite a source (last write wins)."""
        await self._db.execute(
            _UPSERT_SQL,
            source.id,
            source.type.value,
            source.source_id,
            source.enabled,
            source.priority,
            source.to_storage_dict(),
        )

    async def bulk_insert(self, sources: list[SourceConfig]) -> int:
        """Insert sources that do not exist yet. Returns the number submitted."""
        if not sources:
            return 0

        await self._db.execute(
            _BULK_INSERT_SQL,
            [s.id for s in sources],
            [s.type.value for s in sources],
            [s.source_id for s in sources],
            [s.enabled for s in sources],
            [s.priority for s in sources],
            [s.to_storage_dict() for s in sources],
        )
        logger.info("Bulk inserted %d sources", len(sources))
        return len(sources)

    async def delete(self, source_key: str) -> bool:
        """Hard-delete a source. Returns True if a row was removed."""
        result = await self._db.execute(
            "DELETE FROM source_configs WHERE id = $1",
            source_key,
        )
        return result.endswith(" 1")

    async def query_by_type(self, type: RecordType | str) -> list[SourceConfig]:
        rows = await self._db.fetch(
            "SELECT data FROM source_configs WHERE type = $1 ORDER BY priority, id",
            RecordType(type).value,
        )
        return [_record_to_source(r) for r in rows]

    async def query_enabled(self) -> list[SourceConfig]:
        rows = await self._db.fetch(
            "SELECT data FROM source_configs WHERE enabled = TRUE ORDER BY priority, id"
        )
        return [_record_to_source(r) for r in rows]

    async def list_all(self) -> list[SourceConfig]:
        rows = await self._db.fetch(
            "SELECT data FROM source_configs ORDER BY type, priority, id"
        )
        return [_record_to_source(r) for r in rows]

    async def count(self) -> int:
        """Count total sources in the table."""
        return await self._db.fetchval("SELECT COUNT(*) FROM source_configs") or 0
