"""
Entity mutation engine.

Applies EntityOperations to stored projects:

- create: inserts with defaults, or, if the id exists, refreshes only
  description/logo/website/twitter
- update: merges supplied fields into an existing project; a missing
  project is a warning and a no-op
- add_event: prepends to a newest-first history capped at 20 entries
- add_risk_flag / add_opportunity_flag: prepends unless a flag with the same
  type and description is already present

After any write that changes the score or the flags, status is re-derived
from (health_score, risk_flags, opportunity_flags).

Writes are last-write-wins without locking: two workers touching the same
project at the same moment can lose one of the updates.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from src.entities.operations import (
    AddEvent,
    AddOpportunityFlag,
    AddRiskFlag,
    CreateProject,
    EntityOperation,
    UpdateProject,
)
from src.entities.repository import ProjectRepository
from src.entities.schemas import (
    MAX_RECENT_EVENTS,
    OpportunityFlag,
    Project,
    ProjectEvent,
    RiskFlag,
)
from src.entities.scoring import derive_status
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

_CREATE_REFRESH_FIELDS = ("description", "logo", "website", "twitter")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_event_id() -> str:
    """evt-<epoch ms>-<random suffix>"""
    return f"evt-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


@dataclass
class MutationResult:
    op: str
    entity_id: str
    applied: bool
    detail: str = ""


class MutationEngine:
    """Apply entity operations against a ProjectRepository."""

    def __init__(self, repository: ProjectRepository) -> None:
        self._repo = repository

    async def apply_all(self, operations: list[EntityOperation]) -> list[MutationResult]:
        """Apply operations sequentially in emission order."""
        results = []
        for operation in operations:
            results.append(await self.apply(operation))
        return results

    async def apply(self, operation: EntityOperation) -> MutationResult:
        if isinstance(operation, CreateProject):
            result = await self._create(operation)
        elif isinstance(operation, UpdateProject):
            result = await self._update(operation)
        elif isinstance(operation, AddEvent):
            result = await self._add_event(operation)
        elif isinstance(operation, AddRiskFlag):
            result = await self._add_risk_flag(operation)
        elif isinstance(operation, AddOpportunityFlag):
            result = await self._add_opportunity_flag(operation)
        else:
            raise TypeError(f"Unsupported operation: {type(operation).__name__}")

        get_metrics().record_entity_operation(result.op, result.applied)
        return result

    async def _create(self, op: CreateProject) -> MutationResult:
        existing = await self._repo.get(op.id)

        if existing is not None:
            patch: dict[str, Any] = {
                field: getattr(op, field)
                for field in _CREATE_REFRESH_FIELDS
                if getattr(op, field) is not None
            }
            if not patch:
                return MutationResult(op.op, op.id, False, "exists, nothing to refresh")

            logger.info(f"Project {op.id} exists, refreshing {sorted(patch)}")
            patch["last_updated"] = _utc_now().isoformat()
            await self._repo.update(op.id, patch)
            return MutationResult(op.op, op.id, True, "refreshed existing")

        project = Project(
            id=op.id,
            name=op.name,
            category=op.category,
            description=op.description,
            logo=op.logo,
            website=op.website,
            twitter=op.twitter,
        )
        project.status = derive_status(project.health_score, [], [])
        await self._repo.put(project)
        logger.info(f"Created project {op.id} ({op.category.value})")
        return MutationResult(op.op, op.id, True, "created")

    async def _update(self, op: UpdateProject) -> MutationResult:
        project = await self._repo.get(op.entity_id)
        if project is None:
            logger.warning(f"Update for unknown project {op.entity_id} ignored")
            return MutationResult(op.op, op.entity_id, False, "not found")

        changes: dict[str, Any] = {}
        if op.health_score is not None:
            changes["health_score"] = op.health_score
        if op.news_sentiment is not None:
            changes["news_sentiment"] = op.news_sentiment
        if op.status is not None:
            changes["status"] = op.status

        project = project.model_copy(update={**changes, "last_updated": _utc_now()})
        self._rederive_status(project, requested=op.status)

        await self._repo.put(project)
        logger.info(f"Updated project {op.entity_id}: {op.reason}")
        return MutationResult(op.op, op.entity_id, True, op.reason)

    async def _add_event(self, op: AddEvent) -> MutationResult:
        project = await self._repo.get(op.entity_id)
        if project is None:
            logger.warning(f"Event for unknown project {op.entity_id} ignored")
            return MutationResult(op.op, op.entity_id, False, "not found")

        event = ProjectEvent(
            id=new_event_id(),
            title=op.title,
            description=op.description,
            date=op.date,
            source=op.source,
            source_url=op.source_url,
            sentiment=op.sentiment,
            event_type=op.event_type,
        )
        events = [event, *project.recent_events][:MAX_RECENT_EVENTS]

        project = project.model_copy(update={"recent_events": events, "last_updated": _utc_now()})
        await self._repo.put(project)
        return MutationResult(op.op, op.entity_id, True, event.id)

    async def _add_risk_flag(self, op: AddRiskFlag) -> MutationResult:
        project = await self._repo.get(op.entity_id)
        if project is None:
            logger.warning(f"Risk flag for unknown project {op.entity_id} ignored")
            return MutationResult(op.op, op.entity_id, False, "not found")

        if any(
            f.type == op.flag_type and f.description == op.description
            for f in project.risk_flags
        ):
            logger.debug(f"Duplicate risk flag {op.flag_type.value} on {op.entity_id}")
            return MutationResult(op.op, op.entity_id, False, "duplicate")

        flag = RiskFlag(
            type=op.flag_type,
            severity=op.severity,
            description=op.description,
            source=op.source,
        )
        project = project.model_copy(
            update={"risk_flags": [flag, *project.risk_flags], "last_updated": _utc_now()}
        )
        self._rederive_status(project)

        await self._repo.put(project)
        logger.info(
            f"Risk flag {op.flag_type.value}/{op.severity.value} on {op.entity_id}, "
            f"status={project.status.value}"
        )
        return MutationResult(op.op, op.entity_id, True, project.status.value)

    async def _add_opportunity_flag(self, op: AddOpportunityFlag) -> MutationResult:
        project = await self._repo.get(op.entity_id)
        if project is None:
            logger.warning(f"Opportunity flag for unknown project {op.entity_id} ignored")
            return MutationResult(op.op, op.entity_id, False, "not found")

        if any(
            f.type == op.flag_type and f.description == op.description
            for f in project.opportunity_flags
        ):
            logger.debug(f"Duplicate opportunity flag {op.flag_type.value} on {op.entity_id}")
            return MutationResult(op.op, op.entity_id, False, "duplicate")

        flag = OpportunityFlag(
            type=op.flag_type,
            importance=op.importance,
            description=op.description,
            source=op.source,
        )
        project = project.model_copy(
            update={
                "opportunity_flags": [flag, *project.opportunity_flags],
                "last_updated": _utc_now(),
            }
        )
        self._rederive_status(project)

        await self._repo.put(project)
        return MutationResult(op.op, op.entity_id, True, project.status.value)

    @staticmethod
    def _rederive_status(project: Project, requested=None) -> None:
        derived = derive_status(project.health_score, project.risk_flags, project.opportunity_flags)
        if requested is not None and requested != derived:
            logger.info(
                f"Requested status {requested.value} for {project.id} overridden by "
                f"derived status {derived.value}"
            )
        project.status = derived
