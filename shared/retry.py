"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Any, Optional, Callable, Awaitable

from shared.logging import get_logger


BACKOFF_STRATEGIES = ("exponential", "linear", "fixed")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 backoff_strategy: str = "exponential"):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if backoff_strategy not in BACKOFF_STRATEGIES:
            raise ValueError(f"Unknown backoff strategy: {backoff_strategy}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, base_delay={self.base_delay}, "
            f"max_delay={self.max_delay}, backoff_strategy={self.backoff_strategy!r})"
        )


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate the delay to wait after a failed attempt (1-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


async def retry_async(func: Callable[[], Awaitable[Any]],
                      config: RetryConfig,
                      exceptions: tuple = (Exception,),
                      name: Optional[str] = None,
                      on_retry: Optional[Callable[[int, Exception], None]] = None) -> Any:
    """Call ``func`` until it succeeds or ``config.max_attempts`` is reached.

    Only exceptions listed in ``exceptions`` are retried; anything else
    propagates immediately. ``on_retry`` is called with the failed attempt
    number and its error before each wait.
    """
    name = name or getattr(func, "__name__", "operation")
    logger = get_logger(f"retry.{name}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
        except exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    function=name,
                    error_type=type(e).__name__
                )
                raise RetryError(
                    f"{name} failed after {attempt} attempts",
                    last_exception=e,
                    attempts=attempt
                ) from e

            delay = calculate_delay(attempt, config)
            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=delay,
                function=name,
                error_type=type(e).__name__
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.info("Retry succeeded", attempt=attempt, function=name)
            return result

    raise AssertionError("unreachable")
