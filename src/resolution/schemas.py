"""Result models for the tool-use resolution stage."""

from pydantic import BaseModel, Field

from src.entities.operations import EntityOperation
from src.entities.schemas import MarketEventType, Sentiment


class IdentifiedProject(BaseModel):
    """A project the model recognised in a record."""

    name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    entity_id: str | None = None


class AnalysisReport(BaseModel):
    """Input of the report_analysis tool."""

    sentiment: Sentiment
    reasoning: str
    event_type: MarketEventType | None = None
    key_insights: list[str] = Field(default_factory=list)
    identified_projects: list[IdentifiedProject] = Field(default_factory=list)


class ResolutionOutput(BaseModel):
    """Everything one tool-use conversation produced.

    `operations` are in emission order. `analysis` is None when the model
    never called report_analysis; `completed` tells whether it did.
    """

    operations: list[EntityOperation] = Field(default_factory=list)
    analysis: AnalysisReport | None = None
    reasoning: str = ""
    rounds: int = 0
    rejected_calls: int = 0

    @property
    def completed(self) -> bool:
        return self.analysis is not None
