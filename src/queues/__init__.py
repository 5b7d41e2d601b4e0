"""
Redis Streams queue abstractions with automatic pending message reclaim.

Classes:
    BaseRedisQueue: Abstract base class for Redis Streams queues
    StreamConfig: Names of a stream, its consumer group and dead-letter stream
    QueueConfig: Visibility timeout, redelivery cap and consumer backoff
    ExponentialBackoff: Delay calculator for supervised retry loops
"""

from src.queues.backoff import ExponentialBackoff
from src.queues.base import BaseRedisQueue, StreamConfig
from src.queues.config import QueueConfig

__all__ = ["BaseRedisQueue", "StreamConfig", "QueueConfig", "ExponentialBackoff"]
