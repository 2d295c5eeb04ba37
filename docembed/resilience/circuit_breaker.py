"""Circuit breaker guarding calls to the embedding provider.

After ``failure_threshold`` consecutive provider outages the breaker opens
and rejects calls without reaching the provider. Rejections carry the time
left until the breaker lets a trial call through, so callers can schedule the
retry instead of hammering the provider. One successful trial call closes the
breaker; a failed one reopens it.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from .retry_handler import is_transient

logger = structlog.get_logger("resilience.circuit_breaker")


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject calls
    HALF_OPEN = "half_open"  # Checking whether the provider recovered


class CircuitBreakerError(Exception):
    """Circuit breaker is open; ``retry_after`` is the wait until the next trial call."""

    def __init__(self, message: str, retry_after: float):
        self.retry_after = retry_after
        super().__init__(message)


class CircuitBreaker:
    """Circuit breaker for the embedding provider."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        is_failure: Callable[[BaseException], bool] = is_transient,
        name: str = "circuit_breaker",
        clock: Callable[[], float] = time.monotonic
    ):
        """Configure a circuit breaker.

        Parameters
        - failure_threshold: Consecutive failures before opening the breaker
        - recovery_timeout: Seconds to wait before a HALF_OPEN trial call
        - is_failure: Decides whether an exception counts against the
          provider; by default only provider outages do, so a rejected
          request never opens the breaker
        - name: Identifier for logs
        - clock: Time source, replaceable in tests
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.is_failure = is_failure
        self.name = name
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED
        self._lock = asyncio.Lock()

    def retry_after(self) -> float:
        """Seconds until an open breaker admits a trial call; 0 when it would now."""
        if self.state != CircuitBreakerState.OPEN or self.last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self.last_failure_time
        return max(self.recovery_timeout - elapsed, 0.0)

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``func`` with circuit breaker protection."""
        async with self._lock:
            if self.state == CircuitBreakerState.OPEN:
                wait = self.retry_after()
                if wait <= 0:
                    self.state = CircuitBreakerState.HALF_OPEN
                    logger.info("Circuit breaker transitioning to HALF_OPEN", name=self.name)
                else:
                    logger.warning("Circuit breaker is OPEN, rejecting call", name=self.name, retry_after=wait)
                    raise CircuitBreakerError(f"Circuit breaker {self.name} is open", retry_after=wait)

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if self.is_failure(e):
                await self._on_failure()
            raise

        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self.state == CircuitBreakerState.HALF_OPEN:
                self.state = CircuitBreakerState.CLOSED
                logger.info("Circuit breaker reset to CLOSED", name=self.name)
            self.failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()

            # a failed trial call reopens immediately
            if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = CircuitBreakerState.OPEN
                logger.warning(
                    "Circuit breaker opened due to failures",
                    name=self.name,
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold
                )

    def get_state(self) -> CircuitBreakerState:
        return self.state

    def get_stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "retry_after": self.retry_after(),
        }

    async def force_close(self) -> None:
        """Force circuit breaker to closed state."""
        async with self._lock:
            self.state = CircuitBreakerState.CLOSED
            self.failure_count = 0
            self.last_failure_time = None
            logger.info("Circuit breaker forced to CLOSED", name=self.name)
