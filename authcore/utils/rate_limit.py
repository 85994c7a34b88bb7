"""Token bucket used to cap outbound requests to an identity provider."""

import time
from collections.abc import Callable


class TokenBucket:
    """
    Classic token bucket: holds up to ``capacity`` tokens and refills
    ``capacity`` tokens every ``period`` seconds, continuously.

    Not thread-safe; it is only touched from the event loop.
    """

    def __init__(
        self,
        capacity: int,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if period <= 0:
            raise ValueError("period must be positive")
        self.capacity = capacity
        self.period = period
        self._clock = clock
        self._tokens = float(capacity)
        self._updated_at = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.capacity / self.period)
        self._updated_at = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        """Takes one token if available. Returns False when the bucket is empty."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def retry_after(self) -> float:
        """Seconds until the next token becomes available."""
        self._refill()
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) * self.period / self.capacity
