"""
Ingestion coordinator - collects due sources and hands new records to resolution.

One run:
1. Seeds the source catalog if it is empty
2. Selects enabled sources whose interval has elapsed, lowest priority first
3. Collects each source sequentially, pausing between sources
4. Saves items idempotently in small concurrent batches
5. Enqueues every newly written record for resolution, and re-enqueues
   stored records that are still pending
6. Writes the outcome back to the source's run bookkeeping

A failing source is recorded as failed and the run moves on.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from src.collectors.config import CollectorsConfig
from src.collectors.registry import CollectorRegistry, build_default_registry
from src.config.settings import get_settings
from src.ingestion.deduplication import IdempotentWriter, SaveOutcome
from src.ingestion.schemas import RawInfo
from src.observability.metrics import get_metrics
from src.resolution.queue import ResolutionQueue
from src.sources.schemas import SourceConfig
from src.sources.service import SourcesService

logger = structlog.get_logger(__name__)


@dataclass
class SourceRunResult:
    """Outcome of collecting one source."""

    source_key: str
    collected: int = 0
    saved: int = 0
    skipped: int = 0
    requeued: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_key,
            "collected": self.collected,
            "saved": self.saved,
            "skipped": self.skipped,
            "requeued": self.requeued,
            "error": self.error,
        }


class IngestionCoordinator:
    """
    Drives collection across the source catalog.

    Usage:
        coordinator = IngestionCoordinator(sources, writer, queue)
        results = await coordinator.run_once()
        await coordinator.run_forever()  # polls until stopped
    """

    def __init__(
        self,
        sources: SourcesService,
        writer: IdempotentWriter,
        queue: ResolutionQueue | None = None,
        registry: CollectorRegistry | None = None,
        config: CollectorsConfig | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            sources: Source catalog
            writer: Idempotent record writer
            queue: Resolution queue; without one, saved records are not enqueued
            registry: Collector dispatch table (defaults to REST + feed)
            config: Collector and pacing configuration
        """
        self._config = config or CollectorsConfig()
        self._sources = sources
        self._writer = writer
        self._queue = queue
        self._registry = registry or build_default_registry(self._config)
        self._metrics = get_metrics()
        self._running = False

    async def run_once(self, now: datetime | None = None) -> list[SourceRunResult]:
        """Collect every due source once."""
        await self._sources.ensure_seeded()

        due = await self._sources.due_sources(now)
        logger.info("Collection run starting", due_sources=len(due))

        results = []
        for index, source in enumerate(due):
            if index > 0:
                await asyncio.sleep(self._config.inter_source_delay_seconds)
            try:
                results.append(await self.run_source(source))
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error(
                    "Source run failed",
                    source_id=source.id,
                    error=error,
                    error_type=type(e).__name__,
                )
                results.append(SourceRunResult(source_key=source.id, error=error))

        logger.info(
            "Collection run complete",
            sources=len(results),
            failed=sum(1 for r in results if not r.success),
            saved=sum(r.saved for r in results),
            skipped=sum(r.skipped for r in results),
        )
        return results

    async def collect_source(self, source_key: str) -> SourceRunResult | None:
        """Collect one source now, regardless of its schedule. None if unknown."""
        source = await self._sources.get(source_key)
        if source is None:
            logger.warning("Unknown source", source_id=source_key)
            return None
        return await self.run_source(source)

    async def run_source(self, source: SourceConfig) -> SourceRunResult:
        log = logger.bind(source_id=source.id, collector_type=source.collector_type.value)
        start = time.monotonic()

        collector = self._registry.get(source.collector_type)
        if collector is None:
            error = f"Unsupported collector type: {source.collector_type.value}"
            log.warning(error)
            return await self._record_failure(source, error)

        result = await collector.collect(source)
        if not result.success:
            return await self._record_failure(source, result.error or "Unknown error")

        try:
            saved, skipped, requeued = await self._save_items(result.items)
        except Exception as e:
            log.error("Saving collected items failed", error=str(e))
            return await self._record_failure(source, str(e) or type(e).__name__)

        await self._sources.update_collection_status(source.id, True, item_count=saved)
        self._metrics.record_collection(
            source.source_id,
            fetched=result.stats.total_fetched,
            saved=saved,
            skipped=skipped,
            collector_type=source.collector_type.value,
            latency=time.monotonic() - start,
        )

        log.info(
            "Source collected",
            collected=len(result.items),
            saved=saved,
            skipped=skipped,
            requeued=requeued,
        )
        return SourceRunResult(
            source_key=source.id,
            collected=len(result.items),
            saved=saved,
            skipped=skipped,
            requeued=requeued,
        )

    async def _record_failure(self, source: SourceConfig, error: str) -> SourceRunResult:
        await self._sources.update_collection_status(source.id, False, error=error)
        self._metrics.record_collection_error(source.source_id, source.collector_type.value)
        return SourceRunResult(source_key=source.id, error=error)

    async def _save_items(self, items: list[RawInfo]) -> tuple[int, int, int]:
        """Save in batches; items within a batch are saved concurrently.

        Returns:
            (saved, skipped, requeued); requeued records are also counted as skipped
        """
        saved = 0
        skipped = 0
        requeued = 0
        batch_size = self._config.save_batch_size

        for offset in range(0, len(items), batch_size):
            batch = items[offset:offset + batch_size]
            outcomes = await asyncio.gather(*(self._save_one(item) for item in batch))
            for outcome in outcomes:
                if outcome is SaveOutcome.WRITTEN:
                    saved += 1
                else:
                    skipped += 1
                if outcome is SaveOutcome.PENDING_DUPLICATE and self._queue is not None:
                    requeued += 1

        return saved, skipped, requeued

    async def _save_one(self, item: RawInfo) -> SaveOutcome:
        outcome = await self._writer.save(item)
        if not outcome.needs_enqueue:
            return outcome

        if self._queue is None:
            logger.warning("No resolution queue configured, record not enqueued", record_id=item.id)
        else:
            # Pending duplicates are sent again; resolution skips processed records
            await self._queue.send(item.record_type, item.id)
        return outcome

    async def run_forever(self, poll_interval: float | None = None) -> None:
        """Run collection cycles until stop() is called."""
        interval = poll_interval or get_settings().poll_interval_seconds
        self._running = True
        logger.info("Ingestion coordinator started", poll_interval=interval)

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Collection run failed", error=str(e), error_type=type(e).__name__)

            if self._running:
                await asyncio.sleep(interval)

        logger.info("Ingestion coordinator stopped")

    async def stop(self) -> None:
        logger.info("Stopping ingestion coordinator")
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
