"""Tests for ResolutionService."""

from unittest.mock import AsyncMock

import pytest

from src.entities.operations import entity_operation_adapter
from src.entities.schemas import ProjectStatus
from src.ingestion.schemas import ProcessedStatus
from src.resolution.circuit_breaker import CircuitOpenError
from src.resolution.schemas import AnalysisReport, ResolutionOutput
from src.resolution.service import ResolutionService, importance_score, primary_entity_id

from tests.test_entities.conftest import InMemoryProjectRepository
from tests.test_resolution.conftest import REPORT, ScriptedClient, tool_turn


def op(**data):
    return entity_operation_adapter.validate_python(data)


RISK = op(
    op="add_risk_flag",
    entity_id="x",
    flag_type="security_breach",
    severity="high",
    description="d",
)


@pytest.fixture
def raw_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    repo.update_status = AsyncMock(return_value=True)
    repo.update_fields = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def project_repo() -> InMemoryProjectRepository:
    return InMemoryProjectRepository()


def make_service(raw_repo, project_repo, client, config) -> ResolutionService:
    return ResolutionService(raw_repo, project_repo, llm_client=client, config=config)


class TestImportanceScore:
    def test_base(self):
        assert importance_score(None, []) == 50

    def test_security_negative(self):
        analysis = AnalysisReport(sentiment="negative", event_type="security", reasoning="r")
        assert importance_score(analysis, []) == 95

    def test_project_bonus_capped(self):
        analysis = AnalysisReport(
            sentiment="neutral",
            reasoning="r",
            identified_projects=[{"name": f"p{i}", "confidence": 0.9} for i in range(10)],
        )
        assert importance_score(analysis, []) == 65

    def test_flags_add_and_clamp(self):
        analysis = AnalysisReport(sentiment="negative", event_type="security", reasoning="r")
        assert importance_score(analysis, [RISK, RISK]) == 100

    def test_flags_count_without_analysis(self):
        assert importance_score(None, [RISK]) == 55


class TestPrimaryEntityId:
    def test_first_create_or_update(self):
        ops = [
            RISK,
            op(op="update", entity_id="binance", reason="r"),
            op(op="create", id="okx", name="OKX", category="cex"),
        ]
        assert primary_entity_id(ops) == "binance"

    def test_none_without_create_or_update(self):
        assert primary_entity_id([RISK]) is None


class TestProcessRecord:
    @pytest.mark.asyncio
    async def test_missing_record_skipped(self, raw_repo, project_repo, resolution_config):
        client = ScriptedClient([tool_turn(REPORT)])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        assert await service.process_record("market_info", "nope") is None
        assert client.requests == []
        raw_repo.update_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_processed_record_skipped(
        self, raw_repo, project_repo, resolution_config, sample_market_info
    ):
        raw_repo.get.return_value = sample_market_info.model_copy(
            update={"processed_status": ProcessedStatus.PROCESSED}
        )
        client = ScriptedClient([tool_turn(REPORT)])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        assert await service.process_record("market_info", sample_market_info.id) is None
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_market_info_resolved(
        self, raw_repo, project_repo, resolution_config, sample_market_info
    ):
        raw_repo.get.return_value = sample_market_info
        client = ScriptedClient([
            tool_turn(
                ("create_project", {"id": "uniswap", "name": "Uniswap", "category": "dex"}),
                ("add_opportunity_flag", {
                    "entity_id": "uniswap",
                    "flag_type": "major_upgrade",
                    "importance": "high",
                    "description": "v4 launch",
                }),
            ),
            tool_turn(REPORT),
        ])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        outcome = await service.process_record("market_info", sample_market_info.id)

        assert outcome.output.rounds == 2
        assert [m.applied for m in outcome.mutations] == [True, True]
        assert project_repo.projects["uniswap"].status == ProjectStatus.WATCH

        statuses = [c.args[2] for c in raw_repo.update_status.await_args_list]
        assert statuses == [ProcessedStatus.PROCESSING]

        record_type, record_id, fields = raw_repo.update_fields.await_args.args
        assert record_id == sample_market_info.id
        assert fields["processed_status"] == "processed"
        assert fields["entity_id"] == "uniswap"
        assert fields["related_project_ids"] == ["uniswap"]
        assert fields["sentiment"] == "positive"
        assert fields["event_type"] == "product"
        assert fields["ai_summary"] == "hooks; singleton pool"
        assert fields["ai_reasoning"] == "Uniswap shipped v4"
        # base 50 + positive 5 + one project 5 + one flag 5
        assert fields["importance_score"] == 65

    @pytest.mark.asyncio
    async def test_low_confidence_projects_not_related(
        self, raw_repo, project_repo, resolution_config, sample_market_info
    ):
        raw_repo.get.return_value = sample_market_info
        client = ScriptedClient([
            tool_turn((
                "report_analysis",
                {
                    "sentiment": "neutral",
                    "reasoning": "r",
                    "identified_projects": [
                        {"entity_id": "uniswap", "name": "Uniswap", "confidence": 0.7},
                        {"entity_id": "aave", "name": "Aave", "confidence": 0.9},
                        {"name": "Unknown", "confidence": 0.99},
                    ],
                },
            )),
        ])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        outcome = await service.process_record("market_info", sample_market_info.id)

        assert outcome.fields["related_project_ids"] == ["aave"]

    @pytest.mark.asyncio
    async def test_project_info_fields(
        self, raw_repo, project_repo, resolution_config, sample_project_info
    ):
        raw_repo.get.return_value = sample_project_info
        client = ScriptedClient([
            tool_turn(("create_project", {"id": "uniswap", "name": "Uniswap", "category": "dex"})),
            tool_turn(REPORT),
        ])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        outcome = await service.process_record("project_info", sample_project_info.id)

        assert outcome.fields["entity_id"] == "uniswap"
        assert "importance_score" not in outcome.fields
        assert "uniswap" in project_repo.projects

    @pytest.mark.asyncio
    async def test_round_cap_still_processes(
        self, raw_repo, project_repo, resolution_config, sample_market_info
    ):
        raw_repo.get.return_value = sample_market_info
        client = ScriptedClient([tool_turn(
            ("create_project", {"id": "uniswap", "name": "Uniswap", "category": "dex"})
        )])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        outcome = await service.process_record("market_info", sample_market_info.id)

        assert outcome.output.rounds == 5
        assert not outcome.output.completed
        assert outcome.fields["processed_status"] == "processed"
        assert outcome.fields["sentiment"] is None

    @pytest.mark.asyncio
    async def test_llm_failure_marks_failed_and_raises(
        self, raw_repo, project_repo, resolution_config, sample_market_info
    ):
        raw_repo.get.return_value = sample_market_info
        client = ScriptedClient([])
        client._create = AsyncMock(side_effect=CircuitOpenError("scripted", 30))
        service = make_service(raw_repo, project_repo, client, resolution_config)

        with pytest.raises(CircuitOpenError):
            await service.process_record("market_info", sample_market_info.id)

        last = raw_repo.update_status.await_args
        assert last.args[2] == ProcessedStatus.FAILED
        assert "Circuit scripted is open" in last.kwargs["error"]
        raw_repo.update_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_closes_client(self, raw_repo, project_repo, resolution_config):
        client = ScriptedClient([])
        service = make_service(raw_repo, project_repo, client, resolution_config)

        await service.close()

        assert client.closed


def test_output_completed_flag():
    assert not ResolutionOutput().completed
    assert ResolutionOutput(analysis=AnalysisReport(sentiment="neutral", reasoning="r")).completed
