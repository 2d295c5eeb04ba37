"""Retry policy for embedding provider calls.

Only transient provider failures are retried. The wait before the next
attempt is the provider's ``Retry-After`` when it sent one, and exponential
backoff with jitter otherwise; both are capped by ``max_delay``.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

import structlog

from ..errors import ProviderUnavailableError

logger = structlog.get_logger("resilience.retry_handler")


def is_transient(error: BaseException) -> bool:
    """Provider outages are worth another attempt; anything else is not."""
    return isinstance(error, ProviderUnavailableError)


class RetryConfig:
    """Configuration for retry behavior.

    ``retry_if`` decides per exception whether another attempt is made.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        min_delay: float = 0.1,
        retry_if: Callable[[BaseException], bool] = is_transient
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.min_delay = min_delay
        self.retry_if = retry_if


class RetryHandler:
    """Runs a provider coroutine until it succeeds, fails for good, or runs
    out of attempts."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        operation_name: str = "unknown",
        **kwargs: Any
    ) -> Any:
        """Await ``func(*args, **kwargs)``, retrying while ``retry_if`` allows."""
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                if not self.config.retry_if(e):
                    raise
                if attempt >= self.config.max_attempts:
                    logger.error(
                        "Provider call failed after all retries",
                        operation=operation_name,
                        attempts=attempt,
                        error=str(e)
                    )
                    raise

                delay = self.delay_for(attempt, e)
                logger.warning(
                    "Provider call failed, retrying",
                    operation=operation_name,
                    attempt=attempt,
                    total_attempts=self.config.max_attempts,
                    delay_seconds=delay,
                    retry_after=getattr(e, "retry_after", None),
                    error=str(e)
                )
                await asyncio.sleep(delay)
                continue

            if attempt > 1:
                logger.info(
                    "Provider call succeeded after retry",
                    operation=operation_name,
                    attempt=attempt,
                    total_attempts=self.config.max_attempts
                )
            return result

    def delay_for(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            # the provider's own hint wins over backoff, without jitter
            return min(max(float(retry_after), self.config.min_delay), self.config.max_delay)

        delay = self.config.base_delay * (self.config.exponential_base ** (attempt - 1))
        delay = min(delay, self.config.max_delay)
        if self.config.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, self.config.min_delay)
