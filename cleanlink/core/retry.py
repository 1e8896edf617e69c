"""Retry logic with exponential backoff for Telegram Bot API calls."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cleanlink.observability.logging import get_logger

T = TypeVar("T")
log = get_logger("retry")


class RetryableError(Exception):
    """Base exception for errors that should trigger retries."""

    pass


class TransientError(RetryableError):
    """Transient error that may succeed on retry."""

    pass


class RateLimitError(RetryableError):
    """Rate limit exceeded; ``retry_after`` is the server's hint in seconds."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


def _backoff(min_wait: float, max_wait: float) -> Callable[[RetryCallState], float]:
    exponential = wait_exponential(min=min_wait, max=max_wait)

    def _wait(state: RetryCallState) -> float:
        exc = state.outcome.exception() if state.outcome else None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            return min(float(exc.retry_after), max_wait)
        return exponential(state)

    return _wait


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    retryable_exceptions: tuple[Type[Exception], ...] = (TransientError, RateLimitError),
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    A RateLimitError carrying ``retry_after`` waits that long instead,
    capped at ``max_wait``.

    Raises:
        The last exception once ``max_attempts`` is exhausted.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=_backoff(min_wait, max_wait),
        retry=retry_if_exception_type(retryable_exceptions),
        reraise=True,
    )

    attempt = 0
    async for attempt_state in retrying:
        with attempt_state:
            attempt += 1
            try:
                result = await func(*args, **kwargs)
            except retryable_exceptions as e:
                log.warning(
                    "retry_failed_attempt",
                    func=func.__name__,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            if attempt > 1:
                log.info("retry_succeeded", func=func.__name__, attempts=attempt)
            return result

    # unreachable with reraise=True
    raise RuntimeError("Retry logic failed unexpectedly")
