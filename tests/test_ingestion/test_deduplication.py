"""Tests for idempotent record persistence."""

from unittest.mock import AsyncMock

import pytest

from src.ingestion.deduplication import IdempotentWriter, SaveOutcome
from src.ingestion.schemas import ProcessedStatus


@pytest.fixture
def repository() -> AsyncMock:
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    repo.put = AsyncMock()
    return repo


@pytest.fixture
def writer(repository: AsyncMock) -> IdempotentWriter:
    return IdempotentWriter(repository)


class TestProjectInfo:
    """ProjectInfo duplicates are decided by data_hash."""

    @pytest.mark.asyncio
    async def test_new_record_is_written(self, writer, repository, sample_project_info):
        assert await writer.save(sample_project_info) is SaveOutcome.WRITTEN
        repository.put.assert_awaited_once_with(sample_project_info)

    @pytest.mark.asyncio
    async def test_unchanged_record_is_skipped(self, writer, repository, sample_project_info):
        repository.get.return_value = sample_project_info.model_copy(
            update={"processed_status": ProcessedStatus.PROCESSED}
        )

        assert await writer.save(sample_project_info) is SaveOutcome.DUPLICATE
        repository.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_changed_record_overwrites(self, writer, repository, sample_project_info):
        repository.get.return_value = sample_project_info.model_copy(
            update={"data_hash": "0000000000000000"}
        )

        assert await writer.save(sample_project_info) is SaveOutcome.WRITTEN
        repository.put.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rewritten_record_resets_to_pending(
        self, writer, repository, sample_project_info
    ):
        record = sample_project_info.model_copy(
            update={
                "processed_status": ProcessedStatus.FAILED,
                "processing_error": "boom",
            }
        )

        await writer.save(record)

        written = repository.put.await_args.args[0]
        assert written.processed_status == ProcessedStatus.PENDING
        assert written.processing_error is None


class TestMarketInfo:
    """MarketInfo duplicates are decided by existence."""

    @pytest.mark.asyncio
    async def test_new_item_is_written(self, writer, repository, sample_market_info):
        assert await writer.is_duplicate(sample_market_info) is False
        assert await writer.save(sample_market_info) is SaveOutcome.WRITTEN

    @pytest.mark.asyncio
    async def test_existing_item_is_duplicate(self, writer, repository, sample_market_info):
        repository.get.return_value = sample_market_info.model_copy(
            update={"processed_status": ProcessedStatus.PROCESSED}
        )

        assert await writer.is_duplicate(sample_market_info) is True
        assert await writer.save(sample_market_info) is SaveOutcome.DUPLICATE
        repository.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stored_pending_item_needs_enqueue(
        self, writer, repository, sample_market_info
    ):
        repository.get.return_value = sample_market_info

        outcome = await writer.save(sample_market_info)

        assert outcome is SaveOutcome.PENDING_DUPLICATE
        assert outcome.needs_enqueue
        repository.put.assert_not_awaited()


class TestSaveOutcome:
    @pytest.mark.parametrize(
        "outcome,expected",
        [
            (SaveOutcome.WRITTEN, True),
            (SaveOutcome.PENDING_DUPLICATE, True),
            (SaveOutcome.DUPLICATE, False),
        ],
    )
    def test_needs_enqueue(self, outcome, expected):
        assert outcome.needs_enqueue is expected
