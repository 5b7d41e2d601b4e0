"""Reclaim and retry settings shared by every Redis Streams queue."""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Configuration for queue message reclaim behavior.

    Attributes:
        idle_timeout_ms: How long a delivered message may stay unacknowledged
            before another consumer may claim it. Acts as the visibility
            timeout and must exceed the worst-case processing time of a job.
        max_delivery_attempts: Deliveries allowed before the message is moved
            to the dead-letter stream.
        reclaim_batch_size: Pending messages claimed per XAUTOCLAIM call.
        backoff_base_delay: First delay after a Redis error in consume().
        backoff_max_delay: Upper bound for that delay.
    """

    idle_timeout_ms: int = 300_000  # 5 minutes
    max_delivery_attempts: int = 3
    reclaim_batch_size: int = 10

    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0
