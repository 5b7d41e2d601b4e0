"""Tests for the source catalog and record CLI commands."""

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from src.admin.schemas import AdminResult
from src.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def admin():
    return AsyncMock()


@pytest.fixture
def patched_admin(admin):
    calls = []

    @asynccontextmanager
    async def fake_admin_service(with_queue=False):
        calls.append(with_queue)
        yield admin

    with patch("src.cli._admin_service", fake_admin_service):
        yield calls


SOURCE_ROW = {
    "type": "market_info",
    "source_id": "rss:coindesk",
    "enabled": True,
    "priority": 10,
    "interval_minutes": 15,
    "last_collect_status": "success",
}


class TestSourcesCommands:
    def test_list(self, runner, admin, patched_admin):
        admin.list_sources.return_value = AdminResult.ok({"data": [SOURCE_ROW], "total": 1})

        result = runner.invoke(main, ["sources", "list", "--type", "market_info"])

        assert result.exit_code == 0
        assert "1 sources" in result.output
        assert "market_info:rss:coindesk" in result.output
        admin.list_sources.assert_awaited_once_with("market_info")

    def test_show_missing_exits_nonzero(self, runner, admin, patched_admin):
        admin.get_source.return_value = AdminResult.fail(404, "Source not found")

        result = runner.invoke(main, ["sources", "show", "market_info:nope"])

        assert result.exit_code == 1
        assert "Source not found" in result.output

    def test_add_from_file(self, runner, admin, patched_admin, tmp_path):
        payload = {"type": "market_info", "source_id": "rss:theblock"}
        path = tmp_path / "source.json"
        path.write_text(json.dumps(payload))
        admin.create_source.return_value = AdminResult.ok(
            {"message": "Source created"}, status_code=201
        )

        result = runner.invoke(main, ["sources", "add", str(path)])

        assert result.exit_code == 0
        admin.create_source.assert_awaited_once_with(payload)

    def test_add_invalid_json(self, runner, admin, patched_admin, tmp_path):
        path = tmp_path / "source.json"
        path.write_text("{not json")

        result = runner.invoke(main, ["sources", "add", str(path)])

        assert result.exit_code == 1
        admin.create_source.assert_not_awaited()

    def test_delete_requires_confirmation(self, runner, admin, patched_admin):
        admin.delete_source.return_value = AdminResult.ok({"message": "Source deleted"})

        aborted = runner.invoke(main, ["sources", "delete", "market_info:rss:coindesk"], input="n\n")
        confirmed = runner.invoke(main, ["sources", "delete", "market_info:rss:coindesk", "--yes"])

        assert aborted.exit_code != 0
        assert confirmed.exit_code == 0
        admin.delete_source.assert_awaited_once_with("market_info:rss:coindesk")


class TestCollectCommand:
    def test_collect_uses_queue(self, runner, admin, patched_admin):
        admin.trigger_collection.return_value = AdminResult.ok(
            {"message": "Collection completed", "results": []}
        )

        result = runner.invoke(main, ["collect"])

        assert result.exit_code == 0
        assert patched_admin == [True]
        admin.trigger_collection.assert_awaited_once_with(None)


class TestInfoCommands:
    def test_list_shows_next_offset(self, runner, admin, patched_admin):
        admin.list_records.return_value = AdminResult.ok({
            "data": [{"id": "coindesk-1", "processed_status": "pending", "title": "Uniswap v4"}],
            "total": 5,
            "limit": 1,
            "offset": 0,
            "has_more": True,
        })

        result = runner.invoke(main, ["info", "list", "market_info", "--limit", "1"])

        assert result.exit_code == 0
        assert "Showing 1 of 5 records" in result.output
        assert "--offset 1" in result.output

    def test_rejects_unknown_record_type(self, runner, admin, patched_admin):
        result = runner.invoke(main, ["info", "stats", "tweets"])

        assert result.exit_code == 2
        admin.record_stats.assert_not_awaited()
