"""
Retry with exponential backoff for calls to external dependencies
(object storage writes, mostly). Delays grow by `exponential_base` per
attempt and are capped at `max_delay`.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Type, TypeVar

logger = logging.getLogger("app.retry")

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[Type[Exception], ...] = (Exception,),
    target: Optional[str] = None,
) -> T:
    """
    Await `func()` until it succeeds or `max_attempts` is reached.

    Args:
        func: Zero-argument coroutine function
        max_attempts: Total number of attempts
        initial_delay: Delay before the second attempt (seconds)
        max_delay: Upper bound for a single delay (seconds)
        exponential_base: Backoff multiplier
        jitter: Scale each delay by a random factor in [0.5, 1.0)
        retryable_exceptions: Exceptions that trigger another attempt
        target: Label for logs, e.g. "storage.put"

    Raises:
        The exception of the last attempt
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            context = {
                "event": "retry",
                "attempt": attempt,
                "max_attempts": max_attempts,
                "error_type": type(e).__name__,
            }
            if target is not None:
                context["retry_target"] = target

            if attempt == max_attempts:
                logger.error(f"Retry exhausted after {max_attempts} attempts", extra=context)
                raise

            delay = min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)
            if jitter:
                delay = delay * (0.5 + random.random() * 0.5)
            context["delay"] = round(delay, 3)
            logger.warning(f"Retry attempt {attempt}/{max_attempts} after {delay:.2f}s", extra=context)
            await asyncio.sleep(delay)

    raise RuntimeError("max_attempts must be at least 1")
