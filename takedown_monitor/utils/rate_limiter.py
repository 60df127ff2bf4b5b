"""Rate limiting utilities for search and judgment oracle requests."""

import random
import time
from typing import Callable, Optional


class TokenBucketRateLimiter:
    """
    Token bucket rate limiter for controlling request rates.

    Allows bursts up to max_tokens, then enforces rate limit.

    Args:
        requests_per_second: Maximum sustained request rate
        burst_size: Maximum burst capacity (defaults to requests_per_second)

    Examples:
        >>> limiter = TokenBucketRateLimiter(requests_per_second=2)
        >>> limiter.acquire()  # First request - immediate
        >>> limiter.acquire()  # Second request - immediate
        >>> limiter.acquire()  # Third request - waits ~0.5s
    """

    def __init__(
        self,
        requests_per_second: float,
        burst_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")

        self.rate = requests_per_second
        self.max_tokens = burst_size if burst_size is not None else max(1, int(requests_per_second))
        self.tokens = float(self.max_tokens)
        self._clock = clock
        self._sleep = sleep
        self.last_update = self._clock()

    def _add_tokens(self) -> None:
        """Add tokens based on elapsed time since last update."""
        now = self._clock()
        elapsed = now - self.last_update
        new_tokens = elapsed * self.rate

        self.tokens = min(self.max_tokens, self.tokens + new_tokens)
        self.last_update = now

    def acquire(self, tokens: int = 1) -> float:
        """
        Acquire tokens, blocking if necessary.

        Args:
            tokens: Number of tokens to acquire

        Returns:
            Time waited in seconds
        """
        if tokens > self.max_tokens:
            raise ValueError(f"Cannot acquire {tokens} tokens (max: {self.max_tokens})")

        wait_time = 0.0

        while True:
            self._add_tokens()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return wait_time

            deficit = tokens - self.tokens
            sleep_time = deficit / self.rate

            self._sleep(sleep_time)
            wait_time += sleep_time

    def try_acquire(self, tokens: int = 1) -> bool:
        """
        Try to acquire tokens without blocking.

        Returns:
            True if tokens were acquired, False otherwise
        """
        self._add_tokens()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True

        return False

    def reset(self) -> None:
        """Reset the bucket to full capacity."""
        self.tokens = float(self.max_tokens)
        self.last_update = self._clock()


class BatchDelay:
    """
    Fixed or randomized pause between consecutive oracle calls.

    Sleep-based backpressure: ``wait()`` sleeps a uniformly random duration in
    ``[min_seconds, max_seconds]`` (a fixed delay when both are equal).

    Examples:
        >>> delay = BatchDelay(10)          # always 10s
        >>> delay = BatchDelay(1.0, 3.0)    # 1-3s, randomized
    """

    def __init__(
        self,
        min_seconds: float,
        max_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        max_seconds = min_seconds if max_seconds is None else max_seconds
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError(f"Invalid delay range: {min_seconds}-{max_seconds}")

        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self._sleep = sleep

    def next_delay(self) -> float:
        if self.min_seconds == self.max_seconds:
            return self.min_seconds
        return random.uniform(self.min_seconds, self.max_seconds)

    def wait(self) -> float:
        """Sleep for the next delay and return it."""
        delay = self.next_delay()
        if delay > 0:
            self._sleep(delay)
        return delay


NO_DELAY = BatchDelay(0)
