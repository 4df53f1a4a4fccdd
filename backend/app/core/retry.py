"""
Centralized retry/backoff utilities.

Provides consistent retry behavior for the sync pipeline and
external feed calls with configurable strategies and proper logging.
"""

import asyncio
import logging
import random
import time
from typing import Callable, TypeVar, Sequence, Optional

from app.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Sequence[type[Exception]] = (Exception,),
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including first)
            base_delay: Initial delay between retries in seconds
            max_delay: Maximum delay between retries
            exponential_base: Base for exponential backoff
            jitter: Whether to add random jitter to delays
            retryable_exceptions: Exception types that trigger retry
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = tuple(retryable_exceptions)


# Pre-configured strategies
RETRY_QUICK = RetryConfig(
    max_attempts=2,
    base_delay=0.5,
    max_delay=2.0,
)

# Reconciling one event: only store hiccups are worth another attempt
RETRY_DB_OPERATION = RetryConfig(
    max_attempts=3,
    base_delay=0.5,
    max_delay=4.0,
    retryable_exceptions=(TransientStoreError,),
)

# One-shot reads from the realtime feed (backfill)
RETRY_FEED_FETCH = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    retryable_exceptions=(ConnectionError, TimeoutError, OSError),
)


def calculate_delay(
    attempt: int,
    config: RetryConfig,
) -> float:
    """
    Calculate delay for a given attempt number.

    Args:
        attempt: Zero-based attempt number
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(
        config.base_delay * (config.exponential_base ** attempt),
        config.max_delay
    )

    if config.jitter:
        # +/-25% so concurrent retriers spread out
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def _log_retry(op_name: str, attempt: int, config: RetryConfig, delay: float, error: Exception) -> None:
    logger.warning(
        f"{op_name} failed (attempt {attempt + 1}/{config.max_attempts}), "
        f"retrying in {delay:.1f}s: {error}",
        extra={
            "event_type": "retry_attempt",
            "operation": op_name,
            "attempt": attempt + 1,
            "max_attempts": config.max_attempts,
            "delay_seconds": delay,
            "error": str(error),
            "error_type": type(error).__name__,
        }
    )


def _log_exhausted(op_name: str, config: RetryConfig, error: Exception) -> None:
    logger.error(
        f"{op_name} failed after {config.max_attempts} attempts: {error}",
        extra={
            "event_type": "retry_exhausted",
            "operation": op_name,
            "attempts": config.max_attempts,
            "final_error": str(error),
            "error_type": type(error).__name__,
        }
    )


async def retry_async(
    func: Callable[..., T],
    *args,
    config: RetryConfig = RETRY_QUICK,
    operation_name: Optional[str] = None,
    **kwargs,
) -> T:
    """
    Execute an async function with retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        config: Retry configuration
        operation_name: Name for logging (defaults to func name)
        **kwargs: Keyword arguments for func

    Returns:
        Result of successful function call

    Raises:
        Last exception if all retries fail

    Example:
        events = await retry_async(
            source.recent, 1000,
            config=RETRY_FEED_FETCH,
            operation_name="feed_recent",
        )
    """
    op_name = operation_name or getattr(func, '__name__', 'operation')
    last_exception: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            last_exception = e

            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                _log_retry(op_name, attempt, config, delay, e)
                await asyncio.sleep(delay)
            else:
                _log_exhausted(op_name, config, e)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError(f"{op_name} failed with no exception captured")


def retry_sync(
    func: Callable[..., T],
    *args,
    config: RetryConfig = RETRY_QUICK,
    operation_name: Optional[str] = None,
    **kwargs,
) -> T:
    """
    Execute a synchronous function with retry logic.

    Args:
        func: Sync function to execute
        *args: Positional arguments for func
        config: Retry configuration
        operation_name: Name for logging (defaults to func name)
        **kwargs: Keyword arguments for func

    Returns:
        Result of successful function call

    Raises:
        Last exception if all retries fail
    """
    op_name = operation_name or getattr(func, '__name__', 'operation')
    last_exception: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            last_exception = e

            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                _log_retry(op_name, attempt, config, delay, e)
                time.sleep(delay)
            else:
                _log_exhausted(op_name, config, e)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError(f"{op_name} failed with no exception captured")
