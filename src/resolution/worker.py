"""
Resolution worker - consumes resolution jobs and mutates entities.

Runs as a standalone service that:
1. Consumes {record_type, record_id} jobs from the resolution stream
2. Resolves each record through the tool-use loop (ResolutionService)
3. Acknowledges the job once the record is processed or skipped

A failed job is left unacknowledged. After the idle timeout it is
reclaimed and retried; past max_delivery_attempts it goes to the
dead-letter stream.
"""

import asyncio

import redis.asyncio as redis
import structlog

from src.config.settings import get_settings
from src.entities.repository import ProjectRepository
from src.ingestion.repository import RawInfoRepository
from src.observability.metrics import get_metrics
from src.queues.backoff import ExponentialBackoff
from src.resolution.config import ResolutionConfig
from src.resolution.llm_client import ToolUseClient
from src.resolution.queue import ResolutionJob, ResolutionQueue
from src.resolution.service import ResolutionService
from src.storage.database import Database

logger = structlog.get_logger(__name__)


class ResolutionWorker:
    """
    Worker that resolves queued records with bounded concurrency.

    At most `max_concurrency` jobs are in flight; the consumer stops
    pulling from the stream while all slots are busy.

    Usage:
        worker = ResolutionWorker()
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: ResolutionQueue | None = None,
        database: Database | None = None,
        service: ResolutionService | None = None,
        llm_client: ToolUseClient | None = None,
        config: ResolutionConfig | None = None,
    ):
        self._config = config or ResolutionConfig()
        self._queue = queue or ResolutionQueue(config=self._config)
        self._database = database or Database()
        self._service = service
        self._llm_client = llm_client

        self._semaphore = asyncio.Semaphore(self._config.max_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._running = False

        logger.info(
            "ResolutionWorker initialized",
            max_concurrency=self._config.max_concurrency,
            provider=self._config.provider,
        )

    async def _connect_dependencies(self) -> None:
        await self._queue.connect()
        await self._database.connect()

        if self._service is None:
            self._service = ResolutionService(
                raw_repository=RawInfoRepository(self._database),
                project_repository=ProjectRepository(self._database),
                llm_client=self._llm_client,
                config=self._config,
            )

    async def start(self) -> None:
        """
        Start the worker with a supervised retry loop.

        Reconnects on transient failures using exponential backoff. Exits
        after worker_max_consecutive_failures or on CancelledError.
        """
        self._running = True
        settings = get_settings()
        backoff = ExponentialBackoff(
            base_delay=settings.worker_backoff_base_delay,
            max_delay=settings.worker_backoff_max_delay,
        )

        logger.info("Starting resolution worker")

        while self._running:
            try:
                await self._connect_dependencies()
                await self._process_loop()
                if not self._running:
                    break
            except asyncio.CancelledError:
                logger.info("Resolution worker cancelled")
                break
            except Exception as e:
                if backoff.attempt >= settings.worker_max_consecutive_failures:
                    logger.error(
                        "Resolution worker exceeded max consecutive failures",
                        failures=backoff.attempt,
                        error=str(e),
                    )
                    raise
                delay = backoff.next_delay()
                logger.warning(
                    "Resolution worker error, retrying",
                    error=str(e),
                    attempt=backoff.attempt,
                    retry_delay=round(delay, 1),
                )
                await self._cleanup()
                await asyncio.sleep(delay)
            else:
                backoff.reset()

        await self._cleanup()

    async def stop(self) -> None:
        """Stop consuming; in-flight jobs are drained during cleanup."""
        logger.info("Stopping resolution worker")
        self._running = False

    async def _cleanup(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._queue.close()
        await self._database.close()
        if self._service is not None:
            await self._service.close()
        logger.info("Resolution worker cleaned up")

    async def _process_loop(self) -> None:
        async for job in self._queue.consume(count=self._config.max_concurrency):
            if not self._running:
                break

            await self._semaphore.acquire()
            task = asyncio.create_task(self._run_job(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_job(self, job: ResolutionJob) -> None:
        try:
            await self.process_job(job)
        finally:
            self._semaphore.release()

    async def process_job(self, job: ResolutionJob) -> bool:
        """Resolve one job. Returns True if it was acknowledged."""
        log = logger.bind(
            record_type=job.record_type.value,
            record_id=job.record_id,
            delivery=job.delivery_count,
        )

        try:
            await self._service.process_record(job.record_type, job.record_id)
        except Exception as e:
            # Left pending; reclaimed after the idle timeout
            log.warning("Resolution job failed, awaiting redelivery", error=str(e))
            return False

        try:
            await self._queue.ack(job.message_id)
        except redis.RedisError as e:
            # The record is already resolved; a redelivery is skipped as processed
            log.error("Acknowledging resolved job failed", error=str(e))
            return False

        await self._update_queue_depth()
        return True

    async def _update_queue_depth(self) -> None:
        try:
            pending = await self._queue.get_pending_count()
        except redis.RedisError as e:
            logger.debug("Could not read pending count", error=str(e))
            return
        get_metrics().set_queue_depth(self._config.stream_name, pending)
