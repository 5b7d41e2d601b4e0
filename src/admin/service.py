"""
Administrative operations over the source catalog and raw-info records.

Every method returns an AdminResult and never raises: input problems map
to 400, unknown ids to 404, id conflicts to 409, and anything unexpected is
logged and reported as 500.
"""

import functools
import time
from typing import Any, Awaitable, Callable

import structlog
from pydantic import ValidationError

from src.admin.schemas import AdminResult
from src.collectors.registry import CollectorRegistry
from src.ingestion.repository import RawInfoRepository
from src.ingestion.schemas import ProcessedStatus, RecordType
from src.services.ingestion_service import IngestionCoordinator
from src.sources.schemas import create_source_config
from src.sources.service import SourceExistsError, SourcesService

logger = structlog.get_logger(__name__)

REQUIRED_SOURCE_FIELDS = ("type", "source_id", "name", "collector_type", "collector_config")
OPTIONAL_SOURCE_FIELDS = ("description", "interval_minutes", "priority", "enabled")
MAX_PAGE_SIZE = 200

_INVALID_TYPE = 'Invalid type. Must be "project_info" or "market_info"'
_NOT_FOUND = {
    RecordType.PROJECT_INFO: "Project info not found",
    RecordType.MARKET_INFO: "Market info not found",
}


def _admin_operation(action: str):
    """Turn unexpected exceptions into a 500 AdminResult."""

    def decorator(fn: Callable[..., Awaitable[AdminResult]]):
        @functools.wraps(fn)
        async def wrapper(self, *args: Any, **kwargs: Any) -> AdminResult:
            try:
                return await fn(self, *args, **kwargs)
            except Exception as e:
                logger.error(f"{action}_failed", error=str(e), exc_info=True)
                return AdminResult.fail(500, f"Failed to {action.replace('_', ' ')}")

        return wrapper

    return decorator


def _parse_record_type(value: RecordType | str) -> RecordType | None:
    try:
        return RecordType(value)
    except ValueError:
        return None


def _validation_message(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
    )


class AdminService:
    """Source catalog administration and raw-info inspection."""

    def __init__(
        self,
        sources: SourcesService,
        raw_repository: RawInfoRepository,
        registry: CollectorRegistry,
        coordinator: IngestionCoordinator | None = None,
    ) -> None:
        self._sources = sources
        self._raw_repo = raw_repository
        self._registry = registry
        self._coordinator = coordinator

    # ── Sources ─────────────────────────────────────────────────

    @_admin_operation("list_sources")
    async def list_sources(self, type: RecordType | str | None = None) -> AdminResult:
        record_type = None
        if type is not None:
            record_type = _parse_record_type(type)
            if record_type is None:
                return AdminResult.fail(400, _INVALID_TYPE)

        sources = await self._sources.list_sources(record_type)
        sources.sort(key=lambda s: (s.type.value, s.priority))
        return AdminResult.ok(
            {"data": [s.to_storage_dict() for s in sources], "total": len(sources)}
        )

    @_admin_operation("get_source")
    async def get_source(self, source_key: str) -> AdminResult:
        source = await self._sources.get(source_key)
        if source is None:
            return AdminResult.fail(404, "Source not found")
        return AdminResult.ok({"source": source.to_storage_dict()})

    @_admin_operation("create_source")
    async def create_source(self, payload: dict[str, Any]) -> AdminResult:
        missing = [f for f in REQUIRED_SOURCE_FIELDS if not payload.get(f)]
        if missing:
            return AdminResult.fail(400, f"Missing required fields: {', '.join(missing)}")

        if _parse_record_type(payload["type"]) is None:
            return AdminResult.fail(400, _INVALID_TYPE)

        error = self._check_collector_config(payload["collector_type"], payload["collector_config"])
        if error:
            return AdminResult.fail(400, error)

        options = {
            k: payload[k] for k in OPTIONAL_SOURCE_FIELDS if payload.get(k) is not None
        }
        try:
            source = create_source_config(
                type=payload["type"],
                source_id=payload["source_id"],
                name=payload["name"],
                collector_type=payload["collector_type"],
                collector_config=payload["collector_config"],
                **options,
            )
        except ValidationError as e:
            return AdminResult.fail(400, _validation_message(e))

        try:
            await self._sources.create(source)
        except SourceExistsError:
            return AdminResult.fail(409, "Source with this ID already exists")

        logger.info("Source created", source_id=source.id)
        return AdminResult.ok(
            {"message": "Source created", "source": source.to_storage_dict()}, status_code=201
        )

    @_admin_operation("update_source")
    async def update_source(self, source_key: str, changes: dict[str, Any]) -> AdminResult:
        if not changes:
            return AdminResult.fail(400, "Request body is required")

        existing = await self._sources.get(source_key)
        if existing is None:
            return AdminResult.fail(404, "Source not found")

        if "collector_config" in changes or "collector_type" in changes:
            collector_type = changes.get("collector_type", existing.collector_type)
            config = changes.get(
                "collector_config",
                existing.collector_config.model_dump(exclude={"type"}),
            )
            error = self._check_collector_config(collector_type, config)
            if error:
                return AdminResult.fail(400, error)

        try:
            updated = await self._sources.update(source_key, changes)
        except ValidationError as e:
            return AdminResult.fail(400, _validation_message(e))

        if updated is None:
            return AdminResult.fail(404, "Source not found")
        return AdminResult.ok({"message": "Source updated", "source": updated.to_storage_dict()})

    @_admin_operation("delete_source")
    async def delete_source(self, source_key: str) -> AdminResult:
        if not await self._sources.delete(source_key):
            return AdminResult.fail(404, "Source not found")
        return AdminResult.ok({"message": "Source deleted"})

    @_admin_operation("toggle_source")
    async def toggle_source(self, source_key: str) -> AdminResult:
        source = await self._sources.toggle(source_key)
        if source is None:
            return AdminResult.fail(404, "Source not found")
        state = "enabled" if source.enabled else "disabled"
        return AdminResult.ok({"message": f"Source {state}", "source": source.to_storage_dict()})

    @_admin_operation("test_source")
    async def test_source(self, source_key: str) -> AdminResult:
        """Validate a source's collector config and probe its upstream."""
        source = await self._sources.get(source_key)
        if source is None:
            return AdminResult.fail(404, "Source not found")

        collector = self._registry.get(source.collector_type)
        if collector is None:
            return AdminResult.ok({
                "source": source.id,
                "success": False,
                "message": f"Test not implemented for collector type: {source.collector_type.value}",
            })

        validation = collector.validate_config(source.collector_config)
        if not validation.valid:
            return AdminResult.ok({
                "source": source.id,
                "success": False,
                "message": "Invalid collector config: " + "; ".join(validation.errors),
            })

        start = time.monotonic()
        probe = await collector.test_connection(source)
        latency_ms = round((time.monotonic() - start) * 1000)

        return AdminResult.ok({
            "source": source.id,
            "success": probe.valid,
            "message": "Source is reachable" if probe.valid else "; ".join(probe.errors),
            "latency_ms": latency_ms,
        })

    @_admin_operation("trigger_collection")
    async def trigger_collection(self, source_key: str | None = None) -> AdminResult:
        """Collect one source now, or run a full scheduled pass."""
        if self._coordinator is None:
            return AdminResult.fail(500, "Collection is not configured")

        if source_key is None:
            results = await self._coordinator.run_once()
            return AdminResult.ok({
                "message": "Collection completed",
                "results": [r.to_dict() for r in results],
            })

        result = await self._coordinator.collect_source(source_key)
        if result is None:
            return AdminResult.fail(404, "Source not found")

        if not result.success:
            return AdminResult(
                success=False, status_code=500, data=result.to_dict(), error=result.error
            )
        return AdminResult.ok(result.to_dict())

    def _check_collector_config(self, collector_type: Any, config: Any) -> str | None:
        collector = self._registry.get(collector_type)
        if collector is None:
            return f"Unsupported collector type: {collector_type}"

        validation = collector.validate_config(config)
        if not validation.valid:
            return "Invalid collector config: " + "; ".join(validation.errors)
        return None

    # ── Raw info ────────────────────────────────────────────────

    @_admin_operation("list_records")
    async def list_records(
        self,
        record_type: RecordType | str,
        source: str | None = None,
        status: ProcessedStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AdminResult:
        parsed_type = _parse_record_type(record_type)
        if parsed_type is None:
            return AdminResult.fail(400, _INVALID_TYPE)

        if status is not None:
            try:
                status = ProcessedStatus(status)
            except ValueError:
                valid = ", ".join(s.value for s in ProcessedStatus)
                return AdminResult.fail(400, f"Invalid status. Must be one of: {valid}")

        if not 1 <= limit <= MAX_PAGE_SIZE:
            return AdminResult.fail(400, f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            return AdminResult.fail(400, "offset must not be negative")

        records, total = await self._raw_repo.query(
            parsed_type, source=source, status=status, limit=limit, offset=offset
        )
        return AdminResult.ok({
            "data": [r.to_storage_dict() for r in records],
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        })

    @_admin_operation("get_record")
    async def get_record(self, record_type: RecordType | str, record_id: str) -> AdminResult:
        parsed_type = _parse_record_type(record_type)
        if parsed_type is None:
            return AdminResult.fail(400, _INVALID_TYPE)
        if not record_id:
            return AdminResult.fail(400, "ID is required")

        record = await self._raw_repo.get(parsed_type, record_id)
        if record is None:
            return AdminResult.fail(404, _NOT_FOUND[parsed_type])
        return AdminResult.ok({"data": record.to_storage_dict()})

    @_admin_operation("get_record_stats")
    async def record_stats(self, record_type: RecordType | str) -> AdminResult:
        parsed_type = _parse_record_type(record_type)
        if parsed_type is None:
            return AdminResult.fail(400, _INVALID_TYPE)

        counts = await self._raw_repo.count_by_status(parsed_type)
        return AdminResult.ok({"total": sum(counts.values()), "by_status": counts})
