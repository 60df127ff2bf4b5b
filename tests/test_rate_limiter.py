from __future__ import annotations

import pytest

from takedown_monitor.utils.rate_limiter import BatchDelay, TokenBucketRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def test_token_bucket_allows_burst_then_waits() -> None:
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(requests_per_second=2, clock=clock, sleep=clock.sleep)

    assert limiter.acquire() == 0
    assert limiter.acquire() == 0
    assert limiter.acquire() == pytest.approx(0.5)
    assert not limiter.try_acquire()

    limiter.reset()
    assert limiter.try_acquire()


def test_token_bucket_rejects_invalid_rate() -> None:
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(requests_per_second=0)


def test_fixed_batch_delay() -> None:
    sleeps: list[float] = []
    delay = BatchDelay(10, sleep=sleeps.append)

    assert delay.wait() == 10
    assert sleeps == [10]


def test_randomized_batch_delay_stays_in_range() -> None:
    sleeps: list[float] = []
    delay = BatchDelay(1.0, 3.0, sleep=sleeps.append)

    for _ in range(20):
        delay.wait()

    assert len(sleeps) == 20
    assert all(1.0 <= s <= 3.0 for s in sleeps)


def test_zero_delay_does_not_sleep() -> None:
    sleeps: list[float] = []
    assert BatchDelay(0, sleep=sleeps.append).wait() == 0
    assert sleeps == []


def test_invalid_delay_range() -> None:
    with pytest.raises(ValueError):
        BatchDelay(5, 1)
