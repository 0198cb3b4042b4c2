"""Errors raised by zkwatch itself.

Coordination-service errors (``NoNodeError``, ``NodeExistsError``,
``BadVersionError``, ``ConnectionLoss``, ``SessionExpiredError``) are kazoo's
own exception types and are not wrapped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from zkwatch.events import RawEvent


class ZkWatchError(Exception):
    """Base class for zkwatch errors."""


class OperationTimeoutError(ZkWatchError, TimeoutError):
    """Raised when an operation keeps failing on connectivity past its budget.

    Attributes:
        elapsed_seconds: Time spent retrying before giving up.
        budget_seconds: The configured operating timeout.
    """

    def __init__(self, elapsed_seconds: float, budget_seconds: float):
        self.elapsed_seconds = elapsed_seconds
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Operation cannot be retried because of retry timeout "
            f"({budget_seconds * 1000:.0f} ms budget, {elapsed_seconds * 1000:.0f} ms elapsed)"
        )


class UnsupportedEventError(ZkWatchError):
    """Raised when a node event has a type outside the data and children classes.

    Attributes:
        event: The offending raw event.
    """

    def __init__(self, event: RawEvent):
        self.event = event
        super().__init__(f"Unsupported event type {event.type.value} for {event.path}")


class ClientClosedError(ZkWatchError):
    """Raised when an operation is attempted on a closed client."""
