"""
Abstract base class for Redis Streams queues.

Delivery is at-least-once:
- publish() appends a small JSON-free field map to the stream
- consume() first reclaims messages that sat unacknowledged longer than
  the idle timeout (XAUTOCLAIM, Redis 6.2+), then reads new ones
- a message reclaimed more than max_delivery_attempts times goes to the
  dead-letter stream instead of being yielded again
- a consumer that fails a job simply does not ack it; the idle timeout
  makes it eligible for redelivery
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Generic, TypeVar

import redis.asyncio as redis

from src.observability.metrics import get_metrics
from src.queues.backoff import ExponentialBackoff
from src.queues.config import QueueConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DLQ_MAX_LENGTH = 10_000


@dataclass
class StreamConfig:
    """Names and trimming limit of one stream and its consumer group."""

    stream_name: str
    consumer_group: str
    dlq_stream_name: str
    max_stream_length: int = 50_000


class BaseRedisQueue(ABC, Generic[T]):
    """
    Redis Streams queue of jobs of type T.

    Subclasses implement the job <-> field-map conversion and name the
    stream. Usage:

        async with MyQueue(redis_url) as queue:
            await queue.publish(job)
            async for job in queue.consume():
                ...
                await queue.ack(job.message_id)
    """

    def __init__(
        self,
        redis_url: str,
        queue_config: QueueConfig | None = None,
    ):
        self._redis_url = redis_url
        self._queue_config = queue_config or QueueConfig()

        self._redis: redis.Redis | None = None
        self._consumer_name: str | None = None
        self._stream_config: StreamConfig | None = None

    @abstractmethod
    def _parse_job(self, message_id: str, fields: dict[str, str], delivery_count: int) -> T:
        """Build a job from stream fields; raise on malformed messages."""
        ...

    @abstractmethod
    def _serialize_job(self, job: T) -> dict[str, str]:
        ...

    @abstractmethod
    def _get_stream_config(self) -> StreamConfig:
        ...

    @abstractmethod
    def _get_consumer_prefix(self) -> str:
        ...

    async def connect(self) -> None:
        """Connect and make sure the consumer group exists."""
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._stream_config = self._get_stream_config()
        self._consumer_name = f"{self._get_consumer_prefix()}_{uuid.uuid4().hex[:8]}"

        try:
            await self._redis.xgroup_create(
                name=self._stream_config.stream_name,
                groupname=self._stream_config.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group '{self._stream_config.consumer_group}' "
                f"for stream '{self._stream_config.stream_name}'"
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

        logger.info(
            f"Connected to Redis, consumer={self._consumer_name}, "
            f"stream={self._stream_config.stream_name}"
        )

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    async def __aenter__(self) -> "BaseRedisQueue[T]":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    @property
    def stream_config(self) -> StreamConfig:
        if self._stream_config is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stream_config

    async def publish(self, job: T) -> str:
        """Append a job to the stream and return its message id."""
        message_id = await self.redis.xadd(
            self.stream_config.stream_name,
            self._serialize_job(job),
            maxlen=self.stream_config.max_stream_length,
            approximate=True,
        )
        logger.debug(f"Published message {message_id} to {self.stream_config.stream_name}")
        return message_id

    async def consume(
        self,
        count: int = 10,
        block_ms: int = 5000,
    ) -> AsyncIterator[T]:
        """
        Yield jobs forever: reclaimed pending messages first, then new ones.

        Redis errors are retried with exponential backoff; cancellation ends
        the iteration.
        """
        if self._consumer_name is None:
            raise RuntimeError("Not connected. Call connect() first.")

        backoff = ExponentialBackoff(
            base_delay=self._queue_config.backoff_base_delay,
            max_delay=self._queue_config.backoff_max_delay,
        )

        while True:
            try:
                async for job in self._reclaim_pending(self._queue_config.reclaim_batch_size):
                    yield job

                response = await self.redis.xreadgroup(
                    groupname=self.stream_config.consumer_group,
                    consumername=self._consumer_name,
                    streams={self.stream_config.stream_name: ">"},
                    count=count,
                    block=block_ms,
                )
                backoff.reset()

                for _stream, messages in response or []:
                    for message_id, fields in messages:
                        job = await self._parse_or_dead_letter(message_id, fields, 1)
                        if job is not None:
                            yield job

            except asyncio.CancelledError:
                logger.info("Consumer cancelled, stopping gracefully")
                break
            except redis.RedisError as e:
                delay = backoff.next_delay()
                logger.error(f"Error consuming messages: {e}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

    async def _parse_or_dead_letter(
        self,
        message_id: str,
        fields: dict[str, str],
        delivery_count: int,
    ) -> T | None:
        try:
            return self._parse_job(message_id, fields, delivery_count)
        except (KeyError, ValueError) as e:
            logger.error(f"Failed to parse message {message_id}: {e}")
            await self._move_to_dlq(message_id, fields, f"malformed: {e}")
            await self.ack(message_id)
            return None

    async def _reclaim_pending(self, count: int) -> AsyncIterator[T]:
        """Claim idle pending messages; dead-letter those past the attempt cap."""
        metrics = get_metrics()
        stream = self.stream_config.stream_name

        try:
            result = await self.redis.xautoclaim(
                name=stream,
                groupname=self.stream_config.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._queue_config.idle_timeout_ms,
                start_id="0-0",
                count=count,
            )
        except redis.ResponseError as e:
            if "unknown command" in str(e).lower():
                logger.warning("XAUTOCLAIM not available (requires Redis 6.2+)")
                return
            raise

        claimed = result[1] if result and len(result) > 1 else []
        if not claimed:
            return

        logger.info(f"Reclaimed {len(claimed)} pending messages from {stream}")
        delivery_counts = await self._get_delivery_counts([msg_id for msg_id, _ in claimed])

        for message_id, fields in claimed:
            # Deleted entries come back with no fields
            if not fields:
                await self.ack(message_id)
                continue

            delivery_count = delivery_counts.get(message_id, 1)

            if delivery_count > self._queue_config.max_delivery_attempts:
                logger.warning(
                    f"Message {message_id} delivered {delivery_count} times "
                    f"(max {self._queue_config.max_delivery_attempts}), moving to DLQ"
                )
                await self._move_to_dlq(message_id, fields, "max_retries_exceeded")
                await self.ack(message_id)
                metrics.dlq_max_retries.labels(queue=stream).inc()
                continue

            job = await self._parse_or_dead_letter(message_id, fields, delivery_count)
            if job is not None:
                metrics.pending_reclaimed.labels(queue=stream).inc()
                yield job

    async def _get_delivery_counts(self, message_ids: list[str]) -> dict[str, int]:
        """Map message id to times delivered, via XPENDING range queries."""
        counts: dict[str, int] = {}
        for message_id in message_ids:
            entries = await self.redis.xpending_range(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                min=message_id,
                max=message_id,
                count=1,
            )
            counts[message_id] = entries[0]["times_delivered"] if entries else 1
        return counts

    async def ack(self, message_id: str) -> None:
        await self.redis.xack(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
            message_id,
        )
        logger.debug(f"Acknowledged message {message_id}")

    async def _move_to_dlq(
        self,
        original_id: str,
        fields: dict[str, str],
        error: str | None,
    ) -> None:
        await self.redis.xadd(
            self.stream_config.dlq_stream_name,
            {
                **fields,
                "original_id": original_id,
                "error": error or "unknown",
                "failed_at": str(time.time()),
            },
            maxlen=DLQ_MAX_LENGTH,
        )
        logger.warning(f"Moved message {original_id} to DLQ: {error}")

    async def get_pending_count(self) -> int:
        """Number of delivered but unacknowledged messages."""
        info = await self.redis.xpending(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
        )
        return info["pending"] if info else 0

    async def get_stream_length(self) -> int:
        return await self.redis.xlen(self.stream_config.stream_name)

    async def get_dlq_length(self) -> int:
        return await self.redis.xlen(self.stream_config.dlq_stream_name)

    async def health_check(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except redis.RedisError:
            return False
