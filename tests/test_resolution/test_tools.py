"""Tests for tool schemas and tool-call conversion."""

import pytest
from pydantic import ValidationError

from src.entities.operations import AddRiskFlag, CreateProject, UpdateProject
from src.entities.schemas import ProjectCategory, RiskSeverity
from src.resolution.tools import (
    REPORT_TOOL,
    TOOL_OPERATIONS,
    TOOL_SCHEMAS,
    UnknownToolError,
    tool_call_to_operation,
)


class TestSchemas:
    def test_six_tools(self):
        names = [t["name"] for t in TOOL_SCHEMAS]
        assert sorted(names) == sorted([*TOOL_OPERATIONS, REPORT_TOOL])

    def test_category_enum_matches_model(self):
        create = next(t for t in TOOL_SCHEMAS if t["name"] == "create_project")
        enum = create["input_schema"]["properties"]["category"]["enum"]
        assert enum == [c.value for c in ProjectCategory]

    def test_required_fields_exist_in_properties(self):
        for tool in TOOL_SCHEMAS:
            schema = tool["input_schema"]
            assert set(schema["required"]) <= set(schema["properties"]), tool["name"]


class TestToolCallToOperation:
    def test_create_project(self):
        op = tool_call_to_operation(
            "create_project", {"id": "aave", "name": "Aave", "category": "defi"}
        )

        assert isinstance(op, CreateProject)
        assert op.entity_id == "aave"

    def test_update_project(self):
        op = tool_call_to_operation(
            "update_project", {"entity_id": "aave", "reason": "TVL up", "health_score": 82}
        )

        assert isinstance(op, UpdateProject)
        assert op.health_score == 82

    def test_risk_flag(self):
        op = tool_call_to_operation(
            "add_risk_flag",
            {
                "entity_id": "aave",
                "flag_type": "security_breach",
                "severity": "critical",
                "description": "Oracle exploit",
            },
        )

        assert isinstance(op, AddRiskFlag)
        assert op.severity == RiskSeverity.CRITICAL

    def test_model_cannot_override_discriminator(self):
        op = tool_call_to_operation(
            "update_project", {"op": "create", "entity_id": "aave", "reason": "x"}
        )
        assert isinstance(op, UpdateProject)

    def test_unknown_tool(self):
        with pytest.raises(UnknownToolError):
            tool_call_to_operation("delete_project", {"entity_id": "aave"})

    def test_report_tool_is_not_an_operation(self):
        with pytest.raises(UnknownToolError):
            tool_call_to_operation(REPORT_TOOL, {"sentiment": "neutral", "reasoning": "x"})

    def test_invalid_enum_value(self):
        with pytest.raises(ValidationError):
            tool_call_to_operation(
                "create_project", {"id": "x", "name": "X", "category": "casino"}
            )

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            tool_call_to_operation("update_project", {"entity_id": "aave"})

    @pytest.mark.parametrize("tool_input", [["x"], "aave", 3, None])
    def test_non_object_input(self, tool_input):
        with pytest.raises(ValidationError):
            tool_call_to_operation("add_event", tool_input)

    def test_score_out_of_range(self):
        with pytest.raises(ValidationError):
            tool_call_to_operation(
                "update_project", {"entity_id": "aave", "reason": "x", "health_score": 140}
            )
