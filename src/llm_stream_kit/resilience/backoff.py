# src/llm_stream_kit/resilience/backoff.py

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import anthropic
import httpx
import openai
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from llm_stream_kit.errors import TransportError
from llm_stream_kit.observability import names
from llm_stream_kit.observability.base import MetricsHook, NoOpMetricsHook

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_MIN = 0.8
JITTER_MAX = 1.2


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff settings.

    Immutable. Explicit. No magic defaults from environment.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0  # Seconds before the second attempt
    max_delay: float = 60.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")


class wait_jittered_exponential(wait_base):
    """Exponential wait scaled by a uniform jitter factor, capped at max_delay.

    After failed attempt n the base delay is
    ``min(initial * multiplier ** (n - 1), maximum)``; the jittered result
    is capped at ``maximum`` again.
    """

    def __init__(
        self,
        initial: float,
        maximum: float,
        multiplier: float,
        jitter: Callable[[], float] | None = None,
    ) -> None:
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.jitter = jitter or (lambda: random.uniform(JITTER_MIN, JITTER_MAX))

    def __call__(self, retry_state: RetryCallState) -> float:
        exponent = max(retry_state.attempt_number - 1, 0)
        try:
            base = min(self.initial * self.multiplier**exponent, self.maximum)
        except OverflowError:
            base = self.maximum
        return min(base * self.jitter(), self.maximum)


def is_transient_error(exc: BaseException) -> bool:
    """True for errors worth retrying: rate limits, connectivity, 5xx."""
    if isinstance(
        exc,
        (
            openai.RateLimitError,
            openai.APIConnectionError,
            openai.InternalServerError,
            anthropic.RateLimitError,
            anthropic.APIConnectionError,
            anthropic.InternalServerError,
            httpx.TransportError,
        ),
    ):
        return True

    if isinstance(exc, TransportError) and exc.status_code is not None:
        return exc.status_code == 429 or exc.status_code >= 500

    return False


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    config: RetryConfig = RetryConfig(),
    should_retry: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    jitter: Callable[[], float] | None = None,
    metrics_hook: MetricsHook = NoOpMetricsHook(),
) -> T:
    """Run ``operation`` with exponential backoff.

    Args:
        operation: Zero-argument coroutine function to call.
        config: Attempt count and delay schedule.
        should_retry: Decides whether a given error is retried. Defaults to
            retrying every ``Exception``.
        sleep: Awaitable sleep, injectable for tests.
        jitter: Returns the jitter factor. Defaults to uniform [0.8, 1.2].
        metrics_hook: Receives a counter per retry.

    Returns:
        The first successful result.

    Raises:
        The last error once attempts are exhausted, or the first error that
        ``should_retry`` rejects. Cancellation is never retried.

    Example:
        >>> result = await retry_async(
        ...     lambda: client.chat.completions.create(...),
        ...     should_retry=is_transient_error,
        ... )
    """
    predicate = should_retry or (lambda _: True)
    log_sleep = before_sleep_log(logger, logging.WARNING)

    def before_sleep(retry_state: RetryCallState) -> None:
        log_sleep(retry_state)
        metrics_hook.increment(names.RETRY_ATTEMPTS_TOTAL)

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_jittered_exponential(
            config.initial_delay, config.max_delay, config.multiplier, jitter
        ),
        retry=retry_if_exception(
            lambda exc: isinstance(exc, Exception) and predicate(exc)
        ),
        before_sleep=before_sleep,
        sleep=sleep,
        reraise=True,
    ):
        with attempt:
            result = await operation()
            if attempt.retry_state.attempt_number > 1:
                logger.info(
                    "Operation succeeded after %d attempts",
                    attempt.retry_state.attempt_number,
                )
            return result
