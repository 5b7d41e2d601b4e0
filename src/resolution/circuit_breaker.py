"""Circuit breaker for LLM provider calls.

CLOSED -> OPEN after `failure_threshold` consecutive failures. While OPEN,
calls fail fast with CircuitOpenError until `recovery_timeout` has elapsed;
the next call is then a HALF_OPEN probe that closes the circuit on success
and reopens it on failure.

A fast failure raises out of the resolution service like any other error,
so the record is marked failed and the queue redelivers it later.
"""

import enum
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised instead of calling the provider while the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit {name} is open, retry in {retry_after:.0f}s")
        self.retry_after = retry_after


class CircuitBreaker:
    """Consecutive-failure breaker around an async provider call.

    Args:
        failure_threshold: Consecutive failures before the circuit opens.
        recovery_timeout: Seconds the circuit stays open before a probe.
        name: Provider name used in logs and errors.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "llm",
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def _retry_after(self) -> float:
        return max(0.0, self._recovery_timeout - (time.monotonic() - self._opened_at))

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run `fn` unless the circuit is open.

        Raises:
            CircuitOpenError: The circuit is open and not yet due for a probe.
        """
        if self._state == CircuitState.OPEN:
            retry_after = self._retry_after()
            if retry_after > 0:
                raise CircuitOpenError(self._name, retry_after)
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit %s half-open, probing provider", self._name)

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise

        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit %s closed after successful probe", self._name)
        self._state = CircuitState.CLOSED
        self._failures = 0
        return result

    def _on_failure(self) -> None:
        self._failures += 1

        if self._state == CircuitState.HALF_OPEN or self._failures >= self._failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(
                    "Circuit %s opened after %d consecutive failures",
                    self._name,
                    self._failures,
                )
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
