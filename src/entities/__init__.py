"""Entities: tracked crypto projects and the operations that mutate them."""

from src.entities.engine import MutationEngine, MutationResult
from src.entities.operations import (
    AddEvent,
    AddOpportunityFlag,
    AddRiskFlag,
    CreateProject,
    EntityOperation,
    UpdateProject,
    entity_operation_adapter,
)
from src.entities.repository import ProjectRepository
from src.entities.schemas import (
    MarketEventType,
    Project,
    ProjectCategory,
    ProjectStatus,
    ProjectSummary,
    Sentiment,
)
from src.entities.scoring import calculate_health_score, derive_status

__all__ = [
    "AddEvent",
    "AddOpportunityFlag",
    "AddRiskFlag",
    "CreateProject",
    "EntityOperation",
    "MarketEventType",
    "MutationEngine",
    "MutationResult",
    "Project",
    "ProjectCategory",
    "ProjectRepository",
    "ProjectStatus",
    "ProjectSummary",
    "Sentiment",
    "UpdateProject",
    "calculate_health_score",
    "derive_status",
    "entity_operation_adapter",
]
