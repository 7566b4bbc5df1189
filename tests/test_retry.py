"""Tests for the bounded retry helper."""

from __future__ import annotations

import pytest

from extbuild.retry import RetryPending, RetryPolicy, RetryTimeoutError, retry_async


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def test_retry_returns_first_success() -> None:
    sleep = FakeSleep()
    attempts = []

    async def operation() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise RetryPending("not yet")
        return "done"

    result = await retry_async(operation, RetryPolicy(5, 15), description="poll", sleep=sleep)

    assert result == "done"
    assert len(attempts) == 3
    assert sleep.delays == [15, 15]


async def test_retry_exhaustion_raises_timeout() -> None:
    sleep = FakeSleep()

    async def operation() -> str:
        raise RetryPending("still pending")

    with pytest.raises(RetryTimeoutError) as excinfo:
        await retry_async(operation, RetryPolicy(4, 1), description="build 7", sleep=sleep)

    assert excinfo.value.attempts == 4
    assert isinstance(excinfo.value.last_error, RetryPending)
    assert "build 7" in str(excinfo.value)
    assert len(sleep.delays) == 3


async def test_retry_propagates_unexpected_errors() -> None:
    sleep = FakeSleep()

    async def operation() -> str:
        raise KeyError("boom")

    with pytest.raises(KeyError):
        await retry_async(operation, RetryPolicy(4, 1), description="op", sleep=sleep)
    assert sleep.delays == []


async def test_retry_growth_is_capped() -> None:
    sleep = FakeSleep()

    async def operation() -> str:
        raise RetryPending()

    with pytest.raises(RetryTimeoutError):
        await retry_async(operation, RetryPolicy(5, 10, growth=10, max_delay=25), description="op", sleep=sleep)

    assert sleep.delays == [10, 20, 25, 25]


def test_policy_delay_for() -> None:
    policy = RetryPolicy(120, 15, growth=0.2, max_delay=45)

    assert policy.delay_for(1) == 15
    assert policy.delay_for(6) == pytest.approx(16)
    assert policy.delay_for(1000) == 45
