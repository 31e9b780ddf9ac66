"""Retry policy and a generic retry-with-backoff combinator."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently an operation is retried.

    The delay before attempt ``n + 1`` is ``n * backoff_seconds``.

    :param max_retries: Additional attempts after the first one
    :param backoff_seconds: Linear backoff step in seconds
    """

    max_retries: int = 2
    backoff_seconds: float = 1.0

    def __post_init__(self) -> None:
        """Validate the policy values."""
        if self.max_retries < 0:
            msg = "max_retries must not be negative"
            raise ValueError(msg)
        if self.backoff_seconds < 0:
            msg = "backoff_seconds must not be negative"
            raise ValueError(msg)

    @property
    def max_attempts(self) -> int:
        """Total number of attempts, the first one included."""
        return self.max_retries + 1

    def delay(self, attempt: int) -> float:
        """Return the pause after a failed attempt.

        :param attempt: The 1-based attempt that just failed
        :return: Seconds to wait before the next attempt
        """
        return attempt * self.backoff_seconds


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Exceptions not listed in ``retry_on`` propagate immediately. When every
    attempt fails, the exception of the last attempt is raised.

    :param operation: Zero-argument coroutine function to run
    :param policy: The retry policy
    :param retry_on: Exception types that trigger a retry
    :param on_retry: Called with (attempt, error, delay) before each pause
    :param sleep: Coroutine used to pause between attempts
    :return: The result of the first successful attempt
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                raise

            delay = policy.delay(attempt)
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)
            attempt += 1
