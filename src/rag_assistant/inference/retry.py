"""Retry with exponential backoff for completion backends.

The delay after failed attempt ``k`` (1-based) is
``initial_delay * 2 ** (k - 1)``, capped at ``max_delay``:

    attempt 1 fails -> wait 0.5s
    attempt 2 fails -> wait 1.0s
    attempt 3 fails -> give up and re-raise

Sleeping goes through an awaitable, so a backoff only suspends the request
that is retrying.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rag_assistant.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (ProviderError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay slept after the given failed attempt (1-based)."""
        return min(self.initial_delay * 2 ** (attempt - 1), self.max_delay)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Await ``fn`` until it succeeds or the policy's attempts run out.

    The last exception is re-raised unchanged once the budget is spent.
    """

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_delay, exp_base=2, min=0, max=policy.max_delay
        ),
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return await retrying(fn)
