"""Tests for RawInfoRepository with a mocked database."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.ingestion.repository import RawInfoRepository
from src.ingestion.schemas import MarketInfo, ProcessedStatus, ProjectInfo


@pytest.fixture
def repo(mock_database: AsyncMock) -> RawInfoRepository:
    return RawInfoRepository(mock_database)


class TestGet:
    @pytest.mark.asyncio
    async def test_missing_returns_none(self, repo, mock_database):
        assert await repo.get("project_info", "coingecko:nope") is None

    @pytest.mark.asyncio
    async def test_row_becomes_typed_record(self, repo, mock_database, sample_project_info):
        mock_database.fetchrow.return_value = {
            "record_type": "project_info",
            "data": sample_project_info.to_storage_dict(),
        }

        result = await repo.get("project_info", sample_project_info.id)

        assert isinstance(result, ProjectInfo)
        assert result.native_id == "uniswap"

    @pytest.mark.asyncio
    async def test_json_string_data_is_decoded(self, repo, mock_database, sample_market_info):
        mock_database.fetchrow.return_value = {
            "record_type": "market_info",
            "data": sample_market_info.model_dump_json(),
        }

        result = await repo.get("market_info", sample_market_info.id)

        assert isinstance(result, MarketInfo)
        assert result.title == sample_market_info.title


class TestPut:
    @pytest.mark.asyncio
    async def test_writes_columns_and_document(self, repo, mock_database, sample_market_info):
        await repo.put(sample_market_info)

        args = mock_database.execute.await_args.args
        assert args[1:5] == (
            "market_info",
            sample_market_info.id,
            "rss:coindesk",
            "pending",
        )
        assert args[5]["title"] == sample_market_info.title
        assert args[7] == sample_market_info.expires_at

    @pytest.mark.asyncio
    async def test_project_info_has_no_expiry(self, repo, mock_database, sample_project_info):
        await repo.put(sample_project_info)
        assert mock_database.execute.await_args.args[7] is None


class TestUpdates:
    @pytest.mark.asyncio
    async def test_update_fields_reports_existence(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 1"
        assert await repo.update_fields("market_info", "x", {"ai_summary": "s"}) is True

        mock_database.execute.return_value = "UPDATE 0"
        assert await repo.update_fields("market_info", "x", {"ai_summary": "s"}) is False

    @pytest.mark.asyncio
    async def test_update_status_sets_processed_at(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 1"

        await repo.update_status("market_info", "x", ProcessedStatus.FAILED, error="boom")

        args = mock_database.execute.await_args.args
        fields = args[3]
        assert fields["processed_status"] == "failed"
        assert fields["processing_error"] == "boom"
        assert "processed_at" in fields
        assert args[4] == "failed"

    @pytest.mark.asyncio
    async def test_processing_status_has_no_processed_at(self, repo, mock_database):
        await repo.update_status("market_info", "x", ProcessedStatus.PROCESSING)

        fields = mock_database.execute.await_args.args[3]
        assert "processed_at" not in fields


class TestQuery:
    @pytest.mark.asyncio
    async def test_filters_become_parameters(self, repo, mock_database):
        mock_database.fetchval.return_value = 0

        await repo.query("market_info", source="rss:coindesk", status="pending", limit=10, offset=20)

        count_sql, *count_params = mock_database.fetchval.await_args.args
        assert "source = $2" in count_sql
        assert "processed_status = $3" in count_sql
        assert count_params == ["market_info", "rss:coindesk", "pending"]

        page_args = mock_database.fetch.await_args.args
        assert "LIMIT $4 OFFSET $5" in page_args[0]
        assert page_args[-2:] == (10, 20)

    @pytest.mark.asyncio
    async def test_returns_records_and_total(self, repo, mock_database, sample_market_info):
        mock_database.fetchval.return_value = 7
        mock_database.fetch.return_value = [
            {"record_type": "market_info", "data": sample_market_info.to_storage_dict()}
        ]

        records, total = await repo.query_by_source("market_info", "rss:coindesk")

        assert total == 7
        assert [r.id for r in records] == [sample_market_info.id]

    @pytest.mark.asyncio
    async def test_count_by_status_fills_missing(self, repo, mock_database):
        mock_database.fetch.return_value = [{"processed_status": "pending", "count": 3}]

        counts = await repo.count_by_status("project_info")

        assert counts == {"pending": 3, "processing": 0, "processed": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_query_by_status_filters_status_only(self, repo, mock_database):
        await repo.query_by_status("market_info", ProcessedStatus.FAILED, limit=5)

        count_sql, *count_params = mock_database.fetchval.await_args.args
        assert "processed_status = $2" in count_sql
        assert "source" not in count_sql
        assert count_params == ["market_info", "failed"]
        assert mock_database.fetch.await_args.args[-2:] == (5, 0)

    @pytest.mark.asyncio
    async def test_scan_has_no_filters(self, repo, mock_database):
        records, total = await repo.scan("project_info", limit=100, offset=100)

        assert (records, total) == ([], 0)
        count_params = mock_database.fetchval.await_args.args[1:]
        assert count_params == ("project_info",)
        assert mock_database.fetch.await_args.args[-2:] == (100, 100)


class TestDeleteExpired:
    @pytest.mark.asyncio
    async def test_dry_run_counts_only(self, repo, mock_database):
        mock_database.fetchval.return_value = 4
        now = datetime(2025, 3, 1, tzinfo=timezone.utc)

        assert await repo.delete_expired(now=now, dry_run=True) == 4
        mock_database.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_parses_command_tag(self, repo, mock_database):
        mock_database.execute.return_value = "DELETE 12"
        assert await repo.delete_expired() == 12
