"""Retry logic with exponential backoff."""

import asyncio
import logging
import random
from typing import Callable, Optional, Any

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_seconds: float = 60,
        max_delay_seconds: float = 3600,
        backoff_multiplier: float = 2.0,
        jitter: bool = True,
    ):
        """
        Initialize retry configuration.

        Args:
            max_retries: Maximum number of retries
            base_delay_seconds: Initial delay in seconds
            max_delay_seconds: Maximum delay between retries
            backoff_multiplier: Multiplier for exponential backoff
            jitter: Whether to add randomness to delays
        """
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter

    def calculate_delay(self, attempt_number: int) -> float:
        """
        Calculate delay for an attempt using exponential backoff.

        Args:
            attempt_number: The attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay_seconds * (
            self.backoff_multiplier ** attempt_number
        )
        delay = min(delay, self.max_delay_seconds)

        if self.jitter:
            delay = delay + random.uniform(0, delay * 0.1)  # 10% jitter

        return delay


class RetryScheduler:
    """Runs async callables with retries and exponential backoff."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        retry_on: tuple = (Exception,),
    ):
        """
        Args:
            config: Retry configuration (uses defaults if None)
            retry_on: Exception types that trigger a retry; others propagate at once
        """
        self.config = config or RetryConfig()
        self.retry_on = retry_on

    async def retry_with_backoff(
        self,
        func: Callable,
        *args,
        **kwargs
    ) -> Any:
        """
        Execute a function with retries and exponential backoff.

        Raises:
            The last exception once all retries are exhausted
        """
        for attempt in range(self.config.max_retries + 1):
            try:
                if asyncio.iscoroutinefunction(func):
                    return await func(*args, **kwargs)
                return func(*args, **kwargs)

            except self.retry_on as e:
                if attempt >= self.config.max_retries:
                    logger.error(
                        f"{func.__name__} failed after {self.config.max_retries + 1} attempts. "
                        f"Final error: {e}"
                    )
                    raise

                delay = self.config.calculate_delay(attempt)
                logger.warning(
                    f"{func.__name__} failed on attempt {attempt + 1}. "
                    f"Retrying in {delay:.2f}s. Error: {e}"
                )
                await asyncio.sleep(delay)


# Email jobs: 5s, 10s, 20s
NOTIFICATION_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    base_delay_seconds=5,
    max_delay_seconds=300,
    backoff_multiplier=2.0,
    jitter=False,
)

# Transient payment gateway errors inside one request
GATEWAY_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay_seconds=0.5,
    max_delay_seconds=2,
    backoff_multiplier=2.0,
)
