"""
Redis Streams queue handing saved records to resolution.

A job names one raw-info record; the resolution worker loads the record
itself, so a redelivered job always sees the latest stored state.
"""

import logging
import time
from dataclasses import dataclass

from src.config.settings import get_settings
from src.ingestion.schemas import RecordType
from src.queues import BaseRedisQueue, QueueConfig, StreamConfig
from src.resolution.config import ResolutionConfig

logger = logging.getLogger(__name__)


@dataclass
class ResolutionJob:
    """Reference to a raw-info record awaiting resolution."""

    record_type: RecordType
    record_id: str
    message_id: str = ""
    delivery_count: int = 1


class ResolutionQueue(BaseRedisQueue[ResolutionJob]):
    """
    Queue of {record_type, record_id} jobs.

    Usage:
        async with ResolutionQueue() as queue:
            await queue.send(RecordType.MARKET_INFO, "coindesk-ab12cd34ef56ab78")

            async for job in queue.consume():
                ...
                await queue.ack(job.message_id)
    """

    def __init__(
        self,
        config: ResolutionConfig | None = None,
        redis_url: str | None = None,
    ):
        self._config = config or ResolutionConfig()

        super().__init__(
            redis_url=redis_url or str(get_settings().redis_url),
            queue_config=QueueConfig(
                idle_timeout_ms=self._config.idle_timeout_ms,
                max_delivery_attempts=self._config.max_delivery_attempts,
            ),
        )

    def _get_stream_config(self) -> StreamConfig:
        return StreamConfig(
            stream_name=self._config.stream_name,
            consumer_group=self._config.consumer_group,
            dlq_stream_name=self._config.dlq_stream_name,
            max_stream_length=self._config.max_stream_length,
        )

    def _get_consumer_prefix(self) -> str:
        return "resolution_worker"

    def _parse_job(
        self,
        message_id: str,
        fields: dict[str, str],
        delivery_count: int,
    ) -> ResolutionJob:
        return ResolutionJob(
            record_type=RecordType(fields["record_type"]),
            record_id=fields["record_id"],
            message_id=message_id,
            delivery_count=delivery_count,
        )

    def _serialize_job(self, job: ResolutionJob) -> dict[str, str]:
        return {
            "record_type": RecordType(job.record_type).value,
            "record_id": job.record_id,
            "queued_at": str(time.time()),
        }

    async def send(self, record_type: RecordType | str, record_id: str) -> str:
        """Enqueue one record for resolution. Returns the stream message id."""
        record_type = RecordType(record_type)
        message_id = await self.publish(ResolutionJob(record_type=record_type, record_id=record_id))
        logger.debug(f"Queued {record_type.value} {record_id} for resolution")
        return str(message_id)
