"""
Retry utility for handling transient errors in model interactions.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from concierge.exceptions.model import ModelRateLimitError, ModelTimeoutError
from concierge.exceptions.provider import (
    ProviderConcurrencyError,
    ProviderConnectionError,
    ProviderRateLimitError,
)

T = TypeVar("T")

MAX_RETRY_DELAY = 30.0
MAX_JITTER = 0.5

# Closed set of transient causes: rate/concurrency limits and transport loss.
TRANSIENT_ERRORS = (
    ProviderRateLimitError,
    ProviderConcurrencyError,
    ModelRateLimitError,
    ModelTimeoutError,
    ProviderConnectionError,
    asyncio.TimeoutError,
    aiohttp.ServerTimeoutError,
    aiohttp.ServerDisconnectedError,
)

logger = logging.getLogger("RetryPolicy")


def is_retryable(error: BaseException) -> bool:
    """True only for the closed set of transient provider failures."""
    return isinstance(error, TRANSIENT_ERRORS)


def compute_delay(attempt: int, base_delay: float, jitter: Optional[float] = None) -> float:
    """
    Exponential backoff with jitter.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        base_delay: Delay for the first retry, in seconds.
        jitter: Fixed jitter for deterministic callers; random in [0, 0.5] otherwise.

    Returns:
        float: Seconds to sleep, never above 30.
    """
    if jitter is None:
        jitter = random.uniform(0, MAX_JITTER)
    return min(base_delay * (2 ** attempt) + jitter, MAX_RETRY_DELAY)


class RetryPolicy:
    """
    Retries a model call on transient errors, re-raising the last error once
    `max_attempts` attempts are exhausted. Non-retryable errors (including
    cancellation) propagate immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep

    def _wait(self, retry_state: RetryCallState) -> float:
        return compute_delay(retry_state.attempt_number - 1, self.base_delay)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.info(
            "Transient failure (%s), retrying in %.2fs (attempt %d/%d)",
            type(error).__name__,
            delay,
            retry_state.attempt_number,
            self.max_attempts,
        )

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(fn)
