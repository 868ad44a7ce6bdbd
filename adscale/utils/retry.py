"""
Retry utilities with exponential backoff for ad platform and webhook calls.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Type

import aiohttp

from adscale.exceptions import AdPlatformError


@dataclass
class RetryStats:
    """Tracks retry statistics across the operations of one sync."""
    retries: int = 0
    total_delay_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def record_error(self, error: Exception, delay: float = 0.0):
        self.errors.append(f"{type(error).__name__}: {str(error)}")
        if delay:
            self.retries += 1
            self.total_delay_seconds += delay


# Network-level failures worth another attempt
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    aiohttp.ClientConnectionError,
    aiohttp.ServerTimeoutError,
)

RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add 0-25% randomness to prevent thundering herd

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)

    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status in RETRYABLE_STATUS_CODES or status >= 500)


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
) -> bool:
    """
    Check if an error is retryable.

    AdPlatformError decides for itself (explicit flag or HTTP status);
    other errors are retried when they are network failures or their
    message looks like rate limiting or a timeout.
    """
    if isinstance(error, AdPlatformError):
        return error.retryable or is_retryable_status(error.status)

    if isinstance(error, retryable_exceptions):
        return True

    error_str = str(error).lower()

    if "rate limit" in error_str or "too many requests" in error_str:
        return True

    if "timeout" in error_str or "timed out" in error_str:
        return True

    if "connection" in error_str and ("refused" in error_str or "reset" in error_str):
        return True

    return False
