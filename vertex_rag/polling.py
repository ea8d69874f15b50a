"""
Long-running operation polling.

Corpus creation, corpus deletion and file import all return an operation
handle that has to be polled until the service reports it done.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .models import Operation, OperationFailedError, OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    """
    How often and for how long to poll an operation.

    Example:
        policy = PollPolicy(interval=2.0, max_wait=30.0)
        policy = PollPolicy(interval=1.0, backoff=2.0, max_interval=16.0, max_attempts=20)
    """

    interval: float = 2.0               # Seconds before the second fetch
    max_wait: Optional[float] = None    # Give up once this many seconds would be exceeded
    max_attempts: Optional[int] = None  # Give up after this many fetches
    backoff: float = 1.0                # Interval multiplier after every wait
    max_interval: float = 30.0          # Cap for the backed-off interval

    def validate(self) -> list[str]:
        """Validate the policy and return any errors."""
        errors = []

        if self.interval <= 0:
            errors.append("interval must be positive")

        if self.max_wait is not None and self.max_wait <= 0:
            errors.append("max_wait must be positive")

        if self.max_attempts is not None and self.max_attempts < 1:
            errors.append("max_attempts must be at least 1")

        if self.backoff < 1:
            errors.append("backoff must be at least 1")

        return errors

    def next_interval(self, current: float) -> float:
        return min(current * self.backoff, max(self.max_interval, self.interval))


DEFAULT_POLL_POLICY = PollPolicy()


async def wait_for_operation(
    fetch: Callable[[], Awaitable[Operation]],
    decode: Callable[[dict[str, Any]], T],
    policy: PollPolicy = DEFAULT_POLL_POLICY,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Poll an operation until it is done and decode its result.

    Args:
        fetch: Coroutine function returning the current operation record
        decode: Turns the terminal ``response`` payload into a typed result
        policy: Interval, backoff and bounds for the wait
        sleep: Suspension function (injectable for tests)
        clock: Monotonic clock in seconds (injectable for tests)

    Returns:
        The decoded terminal payload

    Raises:
        OperationFailedError: If the operation finished with an error
        OperationTimeoutError: If the operation is still running when the
            attempt or time budget runs out
    """
    errors = policy.validate()
    if errors:
        raise ValueError(f"Invalid poll policy: {'; '.join(errors)}")

    start_time = clock()
    interval = policy.interval
    attempts = 0

    while True:
        operation = await fetch()
        attempts += 1

        if operation.done:
            if operation.error is not None:
                raise OperationFailedError(operation.name, operation.error)
            logger.info("Operation %s completed after %d attempt(s)", operation.name, attempts)
            return decode(operation.response or {})

        elapsed = clock() - start_time
        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            raise OperationTimeoutError(operation.name, attempts, elapsed)
        if policy.max_wait is not None and elapsed + interval >= policy.max_wait:
            raise OperationTimeoutError(operation.name, attempts, elapsed)

        progress = operation.progress_percentage
        if progress is not None:
            logger.info(
                "Operation %s still in progress (%.0f%%), waiting %.1fs",
                operation.name,
                progress,
                interval,
            )
        else:
            logger.info("Operation %s still in progress, waiting %.1fs", operation.name, interval)

        await sleep(interval)
        interval = policy.next_interval(interval)
