"""
Tool vocabulary offered to the model and conversion of tool calls.

Five tools map one-to-one onto EntityOperations. The sixth,
report_analysis, carries the final analysis and is handled by the loop.
Field names in the schemas equal the operation model field names, so a
tool input validates directly against its operation.
"""

from typing import Any

from src.entities.operations import EntityOperation, entity_operation_adapter
from src.entities.schemas import (
    MarketEventType,
    OpportunityFlagType,
    OpportunityImportance,
    ProjectCategory,
    ProjectStatus,
    RiskFlagType,
    RiskSeverity,
    Sentiment,
)

REPORT_TOOL = "report_analysis"

# tool name -> EntityOperation discriminator
TOOL_OPERATIONS: dict[str, str] = {
    "create_project": "create",
    "update_project": "update",
    "add_event": "add_event",
    "add_risk_flag": "add_risk_flag",
    "add_opportunity_flag": "add_opportunity_flag",
}


class UnknownToolError(ValueError):
    """The model called a tool outside the vocabulary."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


def _enum(values: type, description: str) -> dict[str, Any]:
    return {"type": "string", "enum": [v.value for v in values], "description": description}


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


_SENTIMENT = _enum(Sentiment, "Sentiment")
_EVENT_TYPE = _enum(MarketEventType, "Event type")

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "create_project",
        "description": (
            "Create a new project entity. Use only when the project is clearly "
            "absent from the list of existing projects."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "id": _string('Unique id in lowercase with hyphens, e.g. "binance", "uniswap-v3"'),
                "name": _string("Project name"),
                "category": _enum(ProjectCategory, "Project category"),
                "description": _string("Project description"),
                "logo": _string("Logo URL"),
                "website": _string("Official website URL"),
                "twitter": _string("Twitter handle"),
            },
            "required": ["id", "name", "category"],
        },
    },
    {
        "name": "update_project",
        "description": (
            "Update dynamic attributes of an existing project: health score, "
            "status or news sentiment."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "entity_id": _string("Id of the project to update"),
                "health_score": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 100,
                    "description": "Health score (0-100)",
                },
                "status": _enum(ProjectStatus, "Project status"),
                "news_sentiment": _enum(Sentiment, "News sentiment"),
                "reason": _string("Why the update is made"),
            },
            "required": ["entity_id", "reason"],
        },
    },
    {
        "name": "add_event",
        "description": "Record a notable event (news, announcement, release) on a project.",
        "input_schema": {
            "type": "object",
            "properties": {
                "entity_id": _string("Project id"),
                "title": _string("Event title"),
                "description": _string("Event description"),
                "date": _string("Event date (ISO 8601)"),
                "source": _string("Information source"),
                "source_url": _string("Source URL"),
                "sentiment": _SENTIMENT,
                "event_type": _EVENT_TYPE,
            },
            "required": [
                "entity_id", "title", "description", "date",
                "source", "sentiment", "event_type",
            ],
        },
    },
    {
        "name": "add_risk_flag",
        "description": "Attach a risk signal to a project.",
        "input_schema": {
            "type": "object",
            "properties": {
                "entity_id": _string("Project id"),
                "flag_type": _enum(RiskFlagType, "Risk type"),
                "severity": _enum(RiskSeverity, "Severity"),
                "description": _string("Risk description"),
                "source": _string("Information source"),
            },
            "required": ["entity_id", "flag_type", "severity", "description"],
        },
    },
    {
        "name": "add_opportunity_flag",
        "description": "Attach an opportunity or positive signal to a project.",
        "input_schema": {
            "type": "object",
            "properties": {
                "entity_id": _string("Project id"),
                "flag_type": _enum(OpportunityFlagType, "Opportunity type"),
                "importance": _enum(OpportunityImportance, "Importance"),
                "description": _string("Opportunity description"),
                "source": _string("Information source"),
            },
            "required": ["entity_id", "flag_type", "importance", "description"],
        },
    },
    {
        "name": REPORT_TOOL,
        "description": (
            "Submit the final analysis. Call this once, after all other operations."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "sentiment": _enum(Sentiment, "Overall sentiment"),
                "event_type": _EVENT_TYPE,
                "identified_projects": {
                    "type": "array",
                    "description": "Projects the record is about",
                    "items": {
                        "type": "object",
                        "properties": {
                            "entity_id": _string("Id of the matching existing project, if any"),
                            "name": _string("Project name"),
                            "confidence": {"type": "number", "description": "Confidence 0-1"},
                        },
                        "required": ["name", "confidence"],
                    },
                },
                "key_insights": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Key insights",
                },
                "reasoning": _string("Reasoning behind the analysis"),
            },
            "required": ["sentiment", "reasoning"],
        },
    },
]


def tool_call_to_operation(name: str, tool_input: dict[str, Any]) -> EntityOperation:
    """Convert one tool call into its EntityOperation.

    Raises:
        UnknownToolError: `name` is not an operation tool
        pydantic.ValidationError: the input is missing or has invalid fields
    """
    op = TOOL_OPERATIONS.get(name)
    if op is None:
        raise UnknownToolError(name)

    if not isinstance(tool_input, dict):
        # Non-object input fails validation like any other bad field
        return entity_operation_adapter.validate_python(tool_input)

    return entity_operation_adapter.validate_python({**tool_input, "op": op})
