"""Source catalog service: seeding, scheduling queries and run bookkeeping."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.ingestion.schemas import RecordType
from src.sources.config import SourcesConfig
from src.sources.repository import SourcesRepository
from src.sources.scheduler import due_sources
from src.sources.schemas import CollectorType, CollectStatus, SourceConfig
from src.storage.database import Database

logger = logging.getLogger(__name__)

_SEED_FILE = Path(__file__).parent / "data" / "seed_sources.json"

# Fields an administrative update may not touch: identity and run bookkeeping
_IMMUTABLE_FIELDS = frozenset({
    "type",
    "source_id",
    "created_at",
    "last_collected_at",
    "last_collect_status",
    "last_collect_error",
    "stats",
})


class SourceExistsError(Exception):
    """Raised when creating a source whose id is already taken."""

    def __init__(self, source_key: str):
        super().__init__(f"Source already exists: {source_key}")
        self.source_key = source_key


def _parse_seed_entry(entry: dict) -> SourceConfig:
    """Convert a JSON seed entry to a SourceConfig."""
    return SourceConfig.model_validate(entry)


class SourcesService:
    """Access to the source catalog with seed support."""

    def __init__(
        self,
        database: Database,
        config: SourcesConfig | None = None,
    ) -> None:
        self._config = config or SourcesConfig()
        self._repo = SourcesRepository(database)

    @property
    def repository(self) -> SourcesRepository:
        """Access the underlying repository for direct DB operations."""
        return self._repo

    # ── Queries ─────────────────────────────────────────────────

    async def get(self, source_key: str) -> SourceConfig | None:
        return await self._repo.get(source_key)

    async def list_sources(self, type: RecordType | str | None = None) -> list[SourceConfig]:
        """All sources, or those of one type, ordered by type then priority."""
        if type is not None:
            return await self._repo.query_by_type(type)
        sources = await self._repo.list_all()
        return sorted(sources, key=lambda s: (s.type.value, s.priority))

    async def due_sources(self, now: datetime | None = None) -> list[SourceConfig]:
        """Enabled sources whose interval has elapsed, lowest priority first."""
        return due_sources(await self._repo.query_enabled(), now)

    # ── Administrative edits ────────────────────────────────────

    async def create(self, source: SourceConfig) -> SourceConfig:
        """Insert a new source.

        Raises:
            SourceExistsError: If a source with the same id exists
        """
        if await self._repo.get(source.id) is not None:
            raise SourceExistsError(source.id)

        await self._repo.put(source)
        logger.info("Created source %s", source.id)
        return source

    async def update(self, source_key: str, changes: dict[str, Any]) -> SourceConfig | None:
        """Merge `changes` into a source. Returns None if the source is missing.

        Raises:
            pydantic.ValidationError: If the merged config is invalid
        """
        existing = await self._repo.get(source_key)
        if existing is None:
            return None

        allowed = {k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS}
        ignored = set(changes) - set(allowed)
        if ignored:
            logger.warning("Ignoring immutable fields on %s: %s", source_key, sorted(ignored))

        merged = existing.model_dump()
        merged.update(allowed)
        merged["updated_at"] = datetime.now(timezone.utc)

        # A replacement config may omit its discriminator
        if isinstance(merged.get("collector_config"), dict):
            merged["collector_config"] = {
                "type": CollectorType(merged["collector_type"]).value,
                **merged["collector_config"],
            }

        updated = SourceConfig.model_validate(merged)
        await self._repo.put(updated)
        logger.info("Updated source %s", source_key)
        return updated

    async def delete(self, source_key: str) -> bool:
        deleted = await self._repo.delete(source_key)
        if deleted:
            logger.info("Deleted source %s", source_key)
        return deleted

    async def toggle(self, source_key: str) -> SourceConfig | None:
        """Flip the enabled flag. Returns the updated source or None if missing."""
        source = await self._repo.get(source_key)
        if source is None:
            return None

        source = source.model_copy(
            update={"enabled": not source.enabled, "updated_at": datetime.now(timezone.utc)}
        )
        await self._repo.put(source)
        logger.info("Source %s %s", source_key, "enabled" if source.enabled else "disabled")
        return source

    # ── Run bookkeeping ─────────────────────────────────────────

    async def update_collection_status(
        self,
        source_key: str,
        success: bool,
        item_count: int = 0,
        error: str | None = None,
    ) -> SourceConfig | None:
        """Record the outcome of a collection run.

        Always bumps last_collected_at and last_item_count, so a failing
        source waits out its interval like a healthy one.
        """
        source = await self._repo.get(source_key)
        if source is None:
            logger.warning("Cannot record collection status, unknown source %s", source_key)
            return None

        now = datetime.now(timezone.utc)
        stats = source.stats.model_copy(
            update={
                "total_collected": source.stats.total_collected + item_count,
                "success_count": source.stats.success_count + (1 if success else 0),
                "failed_count": source.stats.failed_count + (0 if success else 1),
                "last_item_count": item_count,
            }
        )

        source = source.model_copy(
            update={
                "last_collected_at": now,
                "last_collect_status": CollectStatus.SUCCESS if success else CollectStatus.FAILED,
                "last_collect_error": None if success else (error or "Unknown error"),
                "stats": stats,
                "updated_at": now,
            }
        )
        await self._repo.put(source)
        return source

    # ── Seed ────────────────────────────────────────────────────

    async def seed_from_json(self, path: Path | None = None) -> int:
        """Load sources from a JSON file into the database.

        Returns the number of sources inserted.
        """
        seed_path = path or (Path(self._config.seed_file) if self._config.seed_file else _SEED_FILE)
        with open(seed_path) as f:
            entries = json.load(f)

        sources = [_parse_seed_entry(e) for e in entries]
        count = await self._repo.bulk_insert(sources)
        logger.info("Seeded %d sources from %s", count, seed_path)
        return count

    async def ensure_seeded(self) -> None:
        """Seed the default catalog if the table is empty and seed_on_init is True."""
        if not self._config.seed_on_init:
            return

        existing = await self._repo.count()
        if existing > 0:
            logger.debug("Source catalog has %d rows, skipping seed", existing)
            return

        logger.info("Source catalog empty, seeding defaults")
        await self.seed_from_json()
