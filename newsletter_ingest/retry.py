"""Bounded retry for oracle calls, built on Tenacity."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Usage::

        @with_retry(config.retry)
        async def complete() -> str: ...
    """
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        reraise=True,
    )


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """Result of :func:`call_with_retry`: a value or the last error."""

    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def call_with_retry(
    config: RetryConfig,
    fn: Callable[[], Awaitable[T]],
    *,
    operation: str = "call",
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
) -> RetryOutcome[T]:
    """Await *fn* up to ``config.max_attempts`` times with capped backoff.

    Retryable failures are returned in the outcome instead of raised;
    anything outside *retryable_exceptions* propagates immediately.
    """
    attempts = 0

    @with_retry(config, retryable_exceptions=retryable_exceptions)
    async def _attempt() -> T:
        nonlocal attempts
        attempts += 1
        try:
            return await fn()
        except retryable_exceptions as exc:
            logger.warning(
                "retry_attempt_failed",
                operation=operation,
                attempt=attempts,
                max_attempts=config.max_attempts,
                error=str(exc),
            )
            raise

    try:
        value = await _attempt()
    except retryable_exceptions as exc:
        return RetryOutcome(error=exc, attempts=attempts)
    return RetryOutcome(value=value, attempts=attempts)
