"""
Retry utility module with exponential backoff and circuit breaker patterns.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Circuit breaker guarding a flaky dependency such as the database."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time: float = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF-OPEN
        self._clock = clock

    def record_failure(self) -> None:
        """Record a failure and potentially open the circuit."""
        self.failures += 1
        self.last_failure_time = self._clock()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"
            logger.warning(
                f"Circuit breaker for {self.name} opened after "
                f"{self.failures} failures"
            )

    def record_success(self) -> None:
        """Record a success and reset the circuit."""
        if self.state != "CLOSED":
            logger.info(f"Circuit breaker for {self.name} closed after success")
        self.failures = 0
        self.state = "CLOSED"

    def is_open(self) -> bool:
        """Check if circuit is open."""
        if self.state == "OPEN":
            if self._clock() - self.last_failure_time >= self.reset_timeout:
                self.state = "HALF-OPEN"
                logger.info(
                    f"Circuit breaker for {self.name} entering half-open state"
                )
                return False
            return True
        return False


async def with_retry(
    operation: Callable[..., Awaitable[Any]],
    max_attempts: int = 5,
    initial_delay: float = 5.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: float = 0.1,
    circuit_breaker: Optional[CircuitBreaker] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation_args: tuple = (),
    operation_kwargs: Optional[dict] = None,
) -> Any:
    """
    Execute an async operation with exponential backoff retry logic.

    Args:
        operation: Async function to execute
        max_attempts: Maximum number of attempts
        initial_delay: Delay before the second attempt in seconds
        max_delay: Upper bound for any delay in seconds
        exponential_base: Growth factor of the delay
        jitter: Random jitter factor applied to each delay
        circuit_breaker: Optional circuit breaker instance
        retry_on: Exception types that trigger another attempt
        operation_args: Positional arguments for the operation
        operation_kwargs: Keyword arguments for the operation

    Returns:
        The result of the operation if successful

    Raises:
        The last exception raised by the operation once attempts run out,
        or immediately for exceptions outside ``retry_on``.
    """
    operation_kwargs = operation_kwargs or {}
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        if circuit_breaker and circuit_breaker.is_open():
            logger.warning(
                f"Circuit breaker for {circuit_breaker.name} is open, "
                "waiting before next attempt"
            )
            await asyncio.sleep(min(delay, max_delay))
            continue

        try:
            result = await operation(*operation_args, **operation_kwargs)
        except retry_on as e:
            if circuit_breaker:
                circuit_breaker.record_failure()

            if attempt == max_attempts:
                logger.error(
                    f"Operation failed after {max_attempts} attempts: {e}"
                )
                raise

            actual_delay = min(
                delay + delay * random.uniform(-jitter, jitter), max_delay
            )
            logger.warning(
                f"Operation failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {actual_delay:.2f}s: {e}"
            )
            await asyncio.sleep(actual_delay)
            delay = min(delay * exponential_base, max_delay)
        else:
            if circuit_breaker:
                circuit_breaker.record_success()
            return result

    raise RuntimeError(
        f"Operation not attempted: circuit breaker "
        f"{circuit_breaker.name if circuit_breaker else ''} stayed open"
    )
