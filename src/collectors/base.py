"""
Base collector interface and shared functionality.

Each collector knows how to fetch and normalize one transport kind. The
base class provides:
- Rate limiting
- Uniform error handling (collect() never raises)
- Run statistics and logging
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from src.ingestion.schemas import RawInfo
from src.sources.schemas import CollectorType, SourceConfig

logger = logging.getLogger(__name__)


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per minute with burst capacity.
    """

    rate: int  # requests per minute
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self.rate = max(1, self.rate)
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            self._tokens = min(
                float(self.rate),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 0
            else:
                self._tokens -= 1


@dataclass
class CollectorStats:
    """Counts for one collection run."""

    total_fetched: int = 0
    saved_count: int = 0
    skipped_count: int = 0
    start_time: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def to_dict(self) -> dict[str, int]:
        return {
            "total_fetched": self.total_fetched,
            "saved_count": self.saved_count,
            "skipped_count": self.skipped_count,
        }


@dataclass
class CollectorResult:
    """Outcome of collect(); never persisted."""

    success: bool
    items: list[RawInfo] = field(default_factory=list)
    error: str | None = None
    stats: CollectorStats = field(default_factory=CollectorStats)

    @classmethod
    def failure(cls, error: str, stats: CollectorStats | None = None) -> "CollectorResult":
        return cls(success=False, error=error, stats=stats or CollectorStats())


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=errors)


class BaseCollector(ABC):
    """
    Abstract base class for collectors.

    Subclasses must implement:
        - collector_type: CollectorType handled
        - validate_config(): Check a raw or typed collector config
        - _collect(): Fetch and normalize, returning (items, total_fetched)
        - test_connection(): Probe the upstream without saving anything
    """

    @property
    @abstractmethod
    def collector_type(self) -> CollectorType:
        ...

    @property
    def name(self) -> str:
        return f"{self.collector_type.value}_collector"

    @abstractmethod
    def validate_config(self, config: Any) -> ValidationResult:
        ...

    @abstractmethod
    async def _collect(self, source: SourceConfig) -> tuple[list[RawInfo], int]:
        """
        Fetch and normalize items for one source.

        Returns:
            (normalized items, number of upstream items seen)

        May raise; collect() turns any exception into a failed result.
        """
        ...

    @abstractmethod
    async def test_connection(self, source: SourceConfig) -> ValidationResult:
        ...

    async def collect(self, source: SourceConfig) -> CollectorResult:
        """
        Collect items for a source.

        Main entry point called by the ingestion coordinator. Never raises.
        """
        stats = CollectorStats()
        result: CollectorResult

        logger.info(f"Starting collection for {source.id} with {self.name}")

        validation = self.validate_config(source.collector_config)
        if not validation.valid:
            result = CollectorResult.failure(
                "Invalid collector config: " + "; ".join(validation.errors), stats
            )
            logger.error(f"{source.id}: {result.error}")
            return result

        try:
            items, total_fetched = await self._collect(source)
            stats.total_fetched = total_fetched
            stats.saved_count = len(items)
            stats.skipped_count = max(0, total_fetched - len(items))
            result = CollectorResult(success=True, items=items, stats=stats)

        except Exception as e:
            logger.error(f"Error in {self.name} for {source.id}: {e}", exc_info=True)
            result = CollectorResult.failure(str(e) or type(e).__name__, stats)

        finally:
            logger.info(
                f"{self.name} completed for {source.id}: "
                f"fetched={stats.total_fetched}, "
                f"saved={stats.saved_count}, "
                f"skipped={stats.skipped_count}, "
                f"elapsed={stats.elapsed_seconds:.2f}s"
            )

        return result
