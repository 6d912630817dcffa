"""Retry-with-backoff for every external call the pipeline makes.

The policy mirrors Temporal's ``RetryPolicy`` vocabulary so the numbers read
the same here as on the workflow side. With the defaults (3 attempts, 1s
initial interval, coefficient 2) the delay schedule is 1s, 2s, 4s, and delays
are only ever slept *between* attempts: a call that fails three times sleeps
1s then 2s and then gives up.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from reweave.pipeline.errors import RetryableError, RetryExhaustedError

log = structlog.get_logger("pipeline.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    maximum_attempts: int = 3
    initial_interval: float = 1.0  # seconds
    backoff_coefficient: float = 2.0
    maximum_interval: float | None = None

    def __post_init__(self) -> None:
        if self.maximum_attempts < 1:
            raise ValueError("maximum_attempts must be at least 1")
        if self.initial_interval < 0 or self.backoff_coefficient < 1:
            raise ValueError("initial_interval must be >= 0 and backoff_coefficient >= 1")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        delay = self.initial_interval * self.backoff_coefficient ** (attempt - 1)
        if self.maximum_interval is not None:
            delay = min(delay, self.maximum_interval)
        return delay

    def schedule(self, length: int = 3) -> list[float]:
        return [self.delay_after(n) for n in range(1, length + 1)]


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryExecutor:
    """Runs an async operation under a ``RetryPolicy``.

    ``RetryableError`` triggers another attempt; any other exception
    propagates immediately. When the last attempt fails, raises
    ``RetryExhaustedError`` carrying the attempt count and the last error.
    """

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        *,
        name: str = "operation",
    ) -> T:
        policy = policy or self.policy
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except RetryableError as exc:
                if attempt >= policy.maximum_attempts:
                    log.error(
                        "retry_exhausted",
                        operation=name,
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise RetryExhaustedError(name, attempt, exc) from exc
                delay = policy.delay_after(attempt)
                log.warning(
                    "retry_scheduled",
                    operation=name,
                    attempt=attempt,
                    max_attempts=policy.maximum_attempts,
                    delay_seconds=delay,
                    error=str(exc),
                )
                await self._sleep(delay)
