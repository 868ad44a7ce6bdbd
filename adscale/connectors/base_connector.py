"""
Base connector class for ad platform connectors
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from datetime import datetime
from adscale.utils.logger import log
from adscale.utils.retry import RetryStats, is_retryable_error, calculate_backoff
import asyncio


class BaseConnector(ABC):
    """Shared retry and bookkeeping for platform connectors"""

    # Retry configuration (can be overridden by subclasses)
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MAX_DELAY = 60.0  # seconds

    def __init__(self, name: str):
        self.name = name
        self.last_request = None
        self.request_count = 0
        self.error_count = 0
        self.retry_count = 0  # Total retries across all operations

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Validate credentials and reachability"""
        pass

    async def _retry_operation(
        self,
        operation,
        operation_name: str = "operation",
        retry_stats: Optional[RetryStats] = None
    ) -> Any:
        """
        Execute an operation with retry logic.

        Args:
            operation: Callable returning a result or a coroutine
            operation_name: Name for logging
            retry_stats: RetryStats to accumulate into (mutated in place)

        Returns:
            Result of the operation
        """
        last_error = None

        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            try:
                result = operation()

                # Handle coroutines (from async functions or lambdas wrapping async calls)
                if asyncio.iscoroutine(result):
                    result = await result

                if attempt > 1:
                    self.retry_count += (attempt - 1)

                self.request_count += 1
                self.last_request = datetime.utcnow()
                return result

            except Exception as e:
                last_error = e

                if attempt >= self.RETRY_MAX_ATTEMPTS or not is_retryable_error(e):
                    self.error_count += 1
                    if retry_stats is not None:
                        retry_stats.record_error(e)
                    raise

                delay = calculate_backoff(
                    attempt,
                    base_delay=self.RETRY_BASE_DELAY,
                    max_delay=self.RETRY_MAX_DELAY
                )

                if retry_stats is not None:
                    retry_stats.record_error(e, delay=delay)

                log.warning(
                    f"{self.name} {operation_name} attempt {attempt} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )

                await asyncio.sleep(delay)

        # Should not reach here
        raise last_error if last_error else RuntimeError("Retry exhausted")

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        return {
            "name": self.name,
            "last_request": self.last_request,
            "request_count": self.request_count,
            "error_count": self.error_count,
            "retry_count": self.retry_count,
            "error_rate": self.error_count / max(self.request_count + self.error_count, 1),
            "retry_config": {
                "max_attempts": self.RETRY_MAX_ATTEMPTS,
                "base_delay": self.RETRY_BASE_DELAY,
                "max_delay": self.RETRY_MAX_DELAY
            }
        }
