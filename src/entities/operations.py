"""
Typed entity mutations.

The resolution stage turns each LLM tool call into exactly one of these
operations; the mutation engine consumes them in emission order.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

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


class CreateProject(BaseModel):
    op: Literal["create"] = "create"
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    category: ProjectCategory
    description: str | None = None
    logo: str | None = None
    website: str | None = None
    twitter: str | None = None

    @property
    def entity_id(self) -> str:
        return self.id


class UpdateProject(BaseModel):
    op: Literal["update"] = "update"
    entity_id: str = Field(..., min_length=1)
    reason: str
    health_score: int | None = Field(default=None, ge=0, le=100)
    status: ProjectStatus | None = None
    news_sentiment: Sentiment | None = None

    @field_validator("health_score", mode="before")
    @classmethod
    def round_score(cls, v):
        if isinstance(v, float):
            return round(v)
        return v


class AddEvent(BaseModel):
    op: Literal["add_event"] = "add_event"
    entity_id: str = Field(..., min_length=1)
    title: str
    description: str
    date: str
    source: str
    sentiment: Sentiment
    event_type: MarketEventType
    source_url: str | None = None


class AddRiskFlag(BaseModel):
    op: Literal["add_risk_flag"] = "add_risk_flag"
    entity_id: str = Field(..., min_length=1)
    flag_type: RiskFlagType
    severity: RiskSeverity
    description: str
    source: str | None = None


class AddOpportunityFlag(BaseModel):
    op: Literal["add_opportunity_flag"] = "add_opportunity_flag"
    entity_id: str = Field(..., min_length=1)
    flag_type: OpportunityFlagType
    importance: OpportunityImportance
    description: str
    source: str | None = None


EntityOperation = Annotated[
    Union[CreateProject, UpdateProject, AddEvent, AddRiskFlag, AddOpportunityFlag],
    Field(discriminator="op"),
]

entity_operation_adapter: TypeAdapter[EntityOperation] = TypeAdapter(EntityOperation)

FLAG_OPERATIONS = ("add_risk_flag", "add_opportunity_flag")
