"""Exponential backoff with jitter for supervised loops and queue consumers."""

import random


class ExponentialBackoff:
    """
    Delay calculator: min(base * multiplier^attempt, max_delay) +/- jitter.

    Call reset() after a success so the next failure starts from base_delay.

        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0)
        while True:
            try:
                await do_work()
                backoff.reset()
            except ConnectionError:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
    ):
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Consecutive failures since the last reset."""
        return self._attempt

    def peek_delay(self) -> float:
        """Un-jittered delay the next call to next_delay() is centered on."""
        return min(self.base_delay * (self.multiplier**self._attempt), self.max_delay)

    def next_delay(self) -> float:
        delay = self.peek_delay()
        delay += delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)

    def reset(self) -> None:
        self._attempt = 0
