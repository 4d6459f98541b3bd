"""
Retry logic with exponential backoff.

Used by scheduled pool jobs to ride out transient database and network errors.
"""

import asyncio
import logging
from typing import TypeVar, Callable, Tuple
from functools import wraps

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_with_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple = (Exception,)
):
    """
    Retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        initial_delay: Delay before the second attempt (seconds)
        backoff_factor: Multiplier for delay after each retry
        exceptions: Exception types that trigger a retry

    Example:
        @retry_with_backoff(max_attempts=3, initial_delay=2)
        async def sweep():
            ...

    Delays:
        Attempt 1: 0s (immediate)
        Attempt 2: initial_delay
        Attempt 3: initial_delay * backoff_factor
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            delay = initial_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.error(
                            f"❌ {func.__name__} failed after {max_attempts} attempts: {e}"
                        )
                        raise

                    logger.warning(
                        f"⚠️ {func.__name__} attempt {attempt}/{max_attempts} failed: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )

                    await asyncio.sleep(delay)
                    delay *= backoff_factor

        return wrapper
    return decorator


class RetryConfig:
    """Configuration for retry behavior."""

    # Scheduled pool jobs
    JOB_MAX_ATTEMPTS = 3
    JOB_INITIAL_DELAY = 5.0
    JOB_BACKOFF_FACTOR = 2.0
    STORE_EXCEPTIONS = (
        OperationalError,
        InterfaceError,
        asyncio.TimeoutError,
        ConnectionError,
        OSError,
    )

    @classmethod
    def get_job_retry_decorator(cls):
        """Pre-configured retry decorator for scheduled jobs."""
        return retry_with_backoff(
            max_attempts=cls.JOB_MAX_ATTEMPTS,
            initial_delay=cls.JOB_INITIAL_DELAY,
            backoff_factor=cls.JOB_BACKOFF_FACTOR,
            exceptions=cls.STORE_EXCEPTIONS
        )


job_retry = RetryConfig.get_job_retry_decorator()


async def retry_async(
    func: Callable,
    max_attempts: int = RetryConfig.JOB_MAX_ATTEMPTS,
    initial_delay: float = RetryConfig.JOB_INITIAL_DELAY,
    backoff_factor: float = RetryConfig.JOB_BACKOFF_FACTOR,
    exceptions: Tuple = RetryConfig.STORE_EXCEPTIONS
) -> T:
    """
    Retry an async callable with exponential backoff.

    Usage:
        result = await retry_async(
            lambda: service.cleanup_expired_requests(now),
            max_attempts=3
        )
    """
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except exceptions as e:
            if attempt == max_attempts:
                logger.error(f"❌ Function failed after {max_attempts} attempts: {e}")
                raise

            logger.warning(
                f"⚠️ Attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )

            await asyncio.sleep(delay)
            delay *= backoff_factor
