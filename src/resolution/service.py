"""Resolution of one raw-info record into entity mutations.

For a record id this service:
1. Loads the record; a missing or already processed record is skipped
2. Marks it processing
3. Describes it to the model together with every existing project
4. Runs the bounded tool-use loop
5. Applies the resulting operations in emission order
6. Writes the processed fields back and marks it processed

Any exception marks the record failed with the message and is re-raised,
so the queue can redeliver the job.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from src.entities.engine import MutationEngine, MutationResult
from src.entities.operations import FLAG_OPERATIONS, EntityOperation
from src.entities.repository import ProjectRepository
from src.entities.schemas import MarketEventType, Sentiment
from src.ingestion.repository import RawInfoRepository
from src.ingestion.schemas import MarketInfo, ProcessedStatus, RawInfo, RecordType
from src.observability.metrics import get_metrics
from src.resolution.config import ResolutionConfig
from src.resolution.llm_client import ToolUseClient, build_llm_client
from src.resolution.loop import ToolUseLoop
from src.resolution.prompts import build_user_prompt
from src.resolution.schemas import AnalysisReport, ResolutionOutput

logger = structlog.get_logger(__name__)

BASE_IMPORTANCE = 50
MAX_PROJECT_BONUS = 15

_EVENT_TYPE_BONUS = {
    MarketEventType.SECURITY: 30,
    MarketEventType.REGULATORY: 25,
    MarketEventType.FUNDING: 20,
    MarketEventType.LEGAL: 20,
}

_SENTIMENT_BONUS = {
    Sentiment.NEGATIVE: 15,
    Sentiment.POSITIVE: 5,
}


def importance_score(
    analysis: AnalysisReport | None,
    operations: list[EntityOperation],
) -> int:
    """Importance of a news item on a 0-100 scale.

    Security, regulatory, funding and legal events weigh most; negative
    news outranks positive; each identified project and each flag adds a
    little.
    """
    score = BASE_IMPORTANCE

    if analysis is not None:
        if analysis.event_type is not None:
            score += _EVENT_TYPE_BONUS.get(analysis.event_type, 0)
        score += _SENTIMENT_BONUS.get(analysis.sentiment, 0)
        score += min(len(analysis.identified_projects) * 5, MAX_PROJECT_BONUS)

    score += 5 * sum(1 for op in operations if op.op in FLAG_OPERATIONS)
    return max(0, min(100, score))


def primary_entity_id(operations: list[EntityOperation]) -> str | None:
    """Target of the first create or update operation."""
    for op in operations:
        if op.op in ("create", "update"):
            return op.entity_id
    return None


@dataclass
class ResolutionOutcome:
    record_type: RecordType
    record_id: str
    output: ResolutionOutput
    mutations: list[MutationResult] = field(default_factory=list)
    fields: dict[str, Any] = field(default_factory=dict)


class ResolutionService:
    """Resolve raw-info records through the tool-use loop and mutation engine.

    Args:
        raw_repository: Store of ProjectInfo / MarketInfo records.
        project_repository: Store of project entities.
        llm_client: Tool-use client. Defaults to the configured provider.
        config: Resolution configuration.
    """

    def __init__(
        self,
        raw_repository: RawInfoRepository,
        project_repository: ProjectRepository,
        llm_client: ToolUseClient | None = None,
        config: ResolutionConfig | None = None,
    ) -> None:
        self._config = config or ResolutionConfig()
        self._raw_repo = raw_repository
        self._project_repo = project_repository
        self._llm_client = llm_client or build_llm_client(self._config)
        self._loop = ToolUseLoop(self._llm_client, max_rounds=self._config.max_rounds)
        self._engine = MutationEngine(project_repository)

    async def process_record(
        self,
        record_type: RecordType | str,
        record_id: str,
    ) -> ResolutionOutcome | None:
        """Resolve one record. Returns None when the record was skipped.

        Raises:
            Exception: Whatever failed, after the record was marked failed
        """
        record_type = RecordType(record_type)
        metrics = get_metrics()
        log = logger.bind(record_type=record_type.value, record_id=record_id)

        record = await self._raw_repo.get(record_type, record_id)
        if record is None:
            log.warning("Record not found, skipping")
            metrics.record_resolution(record_type.value, "skipped")
            return None

        if record.is_processed:
            log.debug("Record already processed, skipping")
            metrics.record_resolution(record_type.value, "skipped")
            return None

        start = time.monotonic()
        await self._raw_repo.update_status(record_type, record_id, ProcessedStatus.PROCESSING)

        try:
            outcome = await self._resolve(record)
        except Exception as e:
            log.error("Resolution failed", error=str(e), error_type=type(e).__name__)
            await self._raw_repo.update_status(
                record_type, record_id, ProcessedStatus.FAILED, error=str(e) or type(e).__name__
            )
            metrics.record_resolution(
                record_type.value, "failed", latency=time.monotonic() - start
            )
            raise

        metrics.record_resolution(
            record_type.value,
            "processed",
            rounds=outcome.output.rounds,
            latency=time.monotonic() - start,
        )
        log.info(
            "Record resolved",
            rounds=outcome.output.rounds,
            operations=len(outcome.output.operations),
            applied=sum(1 for m in outcome.mutations if m.applied),
            reported=outcome.output.completed,
        )
        return outcome

    async def _resolve(self, record: RawInfo) -> ResolutionOutcome:
        projects = await self._project_repo.list_summaries()
        prompt = build_user_prompt(
            record,
            projects,
            raw_data_chars=self._config.raw_data_preview_chars,
            content_chars=self._config.content_preview_chars,
        )

        output = await self._loop.run(prompt)
        mutations = await self._engine.apply_all(output.operations)

        fields = self.result_fields(record, output)
        fields.update(
            {
                "processed_status": ProcessedStatus.PROCESSED.value,
                "processed_at": datetime.now(timezone.utc).isoformat(),
                "processing_error": None,
            }
        )
        await self._raw_repo.update_fields(record.record_type, record.id, fields)

        return ResolutionOutcome(
            record_type=record.record_type,
            record_id=record.id,
            output=output,
            mutations=mutations,
            fields=fields,
        )

    def result_fields(self, record: RawInfo, output: ResolutionOutput) -> dict[str, Any]:
        """Processed fields written back onto the record."""
        fields: dict[str, Any] = {
            "entity_id": primary_entity_id(output.operations),
            "ai_reasoning": output.reasoning or None,
        }

        if isinstance(record, MarketInfo):
            analysis = output.analysis
            threshold = self._config.related_confidence_threshold
            fields["related_project_ids"] = [
                p.entity_id
                for p in (analysis.identified_projects if analysis else [])
                if p.entity_id and p.confidence > threshold
            ]
            fields["sentiment"] = analysis.sentiment.value if analysis else None
            fields["event_type"] = (
                analysis.event_type.value if analysis and analysis.event_type else None
            )
            fields["ai_summary"] = (
                "; ".join(analysis.key_insights) if analysis and analysis.key_insights else None
            )
            fields["importance_score"] = importance_score(analysis, output.operations)

        return fields

    async def close(self) -> None:
        await self._llm_client.close()
