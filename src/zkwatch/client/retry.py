"""Retry policy for coordination-service operations.

Operations that fail because the connection was lost or the session expired
are retried once the connection is back, within one total time budget.
Every other failure is the caller's to handle.

Key Components:
- ExponentialBackoff: Backoff with jitter, used when a connectivity error
  races a connection that is already reported as established
- RetryPolicy: The retry-until-connected loop
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable
from typing import Callable, TypeVar

import structlog
from kazoo.exceptions import ConnectionLoss, SessionExpiredError

from zkwatch.client.state import ConnectionStateTracker
from zkwatch.config import BackoffConfig
from zkwatch.errors import OperationTimeoutError
from zkwatch.events import KeeperState

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (ConnectionLoss, SessionExpiredError)


class ExponentialBackoff:
    """Exponential backoff with jitter.

    Args:
        config: Backoff configuration
    """

    def __init__(self, config: BackoffConfig) -> None:
        self._config = config

    def next_delay(self, attempt: int) -> float:
        """Calculate next backoff delay.

        Formula: min(initial_delay * multiplier^attempt, max_delay)
        With jitter: delay * (0.5 + random() * 0.5)

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self._config.initial_delay_seconds * (self._config.multiplier**attempt)
        delay = min(delay, self._config.max_delay_seconds)

        if self._config.jitter:
            delay *= 0.5 + random.random() * 0.5

        return delay


class RetryPolicy:
    """Retries operations across connection loss and session expiry.

    The operating timeout bounds the whole retry loop, not each attempt.

    Args:
        state: Tracker reporting the current connection state
        operating_timeout: Total retry budget in seconds
        backoff: Backoff used while the connection looks established
    """

    def __init__(
        self,
        state: ConnectionStateTracker,
        operating_timeout: float,
        backoff: BackoffConfig | None = None,
    ) -> None:
        self._state = state
        self._operating_timeout = operating_timeout
        self._backoff = ExponentialBackoff(backoff or BackoffConfig())

    @property
    def operating_timeout(self) -> float:
        return self._operating_timeout

    async def retry_until_connected(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` until it completes without a connectivity error.

        Args:
            operation: Zero-argument coroutine function performing one attempt

        Returns:
            The operation's result.

        Raises:
            OperationTimeoutError: If connectivity errors persist past the
                operating timeout.
            Exception: Any non-connectivity error raised by the operation.
        """
        started = time.monotonic()
        attempt = 0
        while True:
            try:
                return await operation()
            except TRANSIENT_ERRORS as e:
                last_error = e

            remaining = self._operating_timeout - (time.monotonic() - started)
            logger.debug(
                "operation_retry_scheduled",
                attempt=attempt,
                error=type(last_error).__name__,
                remaining_seconds=round(max(remaining, 0.0), 3),
            )

            # Let the loop deliver pending state changes before deciding how to wait
            await asyncio.sleep(0)
            if remaining > 0:
                if self._state.current_state is KeeperState.SYNC_CONNECTED:
                    await asyncio.sleep(min(self._backoff.next_delay(attempt), remaining))
                else:
                    await self._state.wait_for_state(KeeperState.SYNC_CONNECTED, remaining)

            elapsed = time.monotonic() - started
            if elapsed >= self._operating_timeout:
                logger.warning(
                    "operation_retry_timeout",
                    attempts=attempt + 1,
                    elapsed_seconds=round(elapsed, 3),
                    budget_seconds=self._operating_timeout,
                )
                raise OperationTimeoutError(elapsed, self._operating_timeout) from last_error
            attempt += 1
