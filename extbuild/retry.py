"""Bounded retry with linear backoff for polling loops."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from .logging import get_logger

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]

logger = get_logger("retry")


class RetryPending(Exception):
    """Raised by a polled operation whose result is not available yet."""


class RetryTimeoutError(TimeoutError):
    """Raised when a polled operation exhausts its attempt budget."""

    def __init__(self, description: str, attempts: int, last_error: BaseException | None = None) -> None:
        message = f"{description} timed out after {attempts} attempt(s)"
        if last_error is not None and str(last_error):
            message += f" ({last_error})"
        super().__init__(message)
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay schedule (delay grows by ``growth`` per attempt)."""

    max_attempts: int
    initial_delay: float
    growth: float = 0.0
    max_delay: Optional[float] = None

    def delay_for(self, attempt: int) -> float:
        """Return the delay applied after attempt number ``attempt`` (1-based)."""
        delay = self.initial_delay + self.growth * (attempt - 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return max(delay, 0.0)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str,
    retry_on: Tuple[Type[BaseException], ...] = (RetryPending,),
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``policy.max_attempts`` is reached.

    Exceptions listed in ``retry_on`` schedule another attempt; anything else
    propagates immediately. Exhaustion raises :class:`RetryTimeoutError`.
    """

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        logger.debug(
            "%s: attempt %d/%d pending (%s), retrying in %.1fs",
            description,
            state.attempt_number,
            policy.max_attempts,
            error,
            state.next_action.sleep if state.next_action is not None else 0.0,
        )

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_incrementing(
            start=policy.initial_delay,
            increment=policy.growth,
            max=policy.max_delay if policy.max_delay is not None else float("inf"),
        ),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_before_sleep,
    )
    try:
        async for attempt in retrying:
            with attempt:
                return await operation()
    except RetryError as exc:
        last_error = exc.last_attempt.exception() if exc.last_attempt is not None else None
        raise RetryTimeoutError(description, policy.max_attempts, last_error) from exc
    raise RetryTimeoutError(description, policy.max_attempts)  # pragma: no cover - loop always returns or raises


__all__ = ["RetryPending", "RetryPolicy", "RetryTimeoutError", "retry_async"]
