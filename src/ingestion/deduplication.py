"""
Idempotent persistence of collected records.

ProjectInfo ids are stable per upstream project, so the stored data_hash
decides whether the upstream data changed since the last fetch.
MarketInfo ids already embed a content hash, so existence alone marks a
duplicate.

Neither check is transactional. Two collectors writing the same id at once
both write; the payloads are identical, so the later write is harmless.
"""

import logging
from enum import Enum

from src.ingestion.repository import RawInfoRepository
from src.ingestion.schemas import ProcessedStatus, ProjectInfo, RawInfo

logger = logging.getLogger(__name__)


class SaveOutcome(str, Enum):
    """What save() did with a collected record."""

    WRITTEN = "written"
    DUPLICATE = "duplicate"
    # Stored earlier but still pending, so it may never have reached the queue
    PENDING_DUPLICATE = "pending_duplicate"

    @property
    def needs_enqueue(self) -> bool:
        return self is not SaveOutcome.DUPLICATE


class IdempotentWriter:
    """Save-or-skip front end to RawInfoRepository."""

    def __init__(self, repository: RawInfoRepository) -> None:
        self._repo = repository

    async def _existing_duplicate(self, record: RawInfo) -> RawInfo | None:
        existing = await self._repo.get(record.record_type, record.id)
        if existing is None:
            return None

        if isinstance(record, ProjectInfo):
            if isinstance(existing, ProjectInfo) and existing.data_hash == record.data_hash:
                return existing
            return None

        # MarketInfo and any identity-by-content record
        return existing

    async def is_duplicate(self, record: RawInfo) -> bool:
        return await self._existing_duplicate(record) is not None

    async def save(self, record: RawInfo) -> SaveOutcome:
        """
        Persist a record unless it is a duplicate.

        A written record always starts (again) as pending, so a changed
        ProjectInfo goes back through resolution. A duplicate whose stored
        copy is still pending is reported as PENDING_DUPLICATE so the caller
        can hand it to the queue again.

        Returns:
            The save outcome
        """
        existing = await self._existing_duplicate(record)
        if existing is not None:
            logger.debug(f"Skipping unchanged {record.record_type.value} {record.id}")
            if existing.processed_status == ProcessedStatus.PENDING:
                return SaveOutcome.PENDING_DUPLICATE
            return SaveOutcome.DUPLICATE

        if record.processed_status != ProcessedStatus.PENDING:
            record = record.model_copy(
                update={
                    "processed_status": ProcessedStatus.PENDING,
                    "processed_at": None,
                    "processing_error": None,
                }
            )

        await self._repo.put(record)
        return SaveOutcome.WRITTEN
