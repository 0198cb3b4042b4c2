"""Connection state tracking.

Holds the last KeeperState reported by the coordination service and lets
tasks wait for a particular state.
"""

from __future__ import annotations

import asyncio
import threading
import time

import structlog

from zkwatch.events import KeeperState

logger = structlog.get_logger(__name__)


class ConnectionStateTracker:
    """Last known connection state with wait-for-state support.

    ``set_state`` must be called from the event loop thread; ``current_state``
    may be read from anywhere.

    Attributes:
        current_state: The last state set, DISCONNECTED initially
    """

    def __init__(self, initial: KeeperState = KeeperState.DISCONNECTED) -> None:
        self._lock = threading.Lock()
        self._state = initial
        self._changed = asyncio.Event()

    @property
    def current_state(self) -> KeeperState:
        with self._lock:
            return self._state

    def set_state(self, state: KeeperState) -> None:
        """Replace the current state and wake every waiter.

        Args:
            state: The new state
        """
        with self._lock:
            previous = self._state
            self._state = state
            changed, self._changed = self._changed, asyncio.Event()
        changed.set()

        if previous is not state:
            logger.debug(
                "keeper_state_changed",
                from_state=previous.value,
                to_state=state.value,
            )

    async def wait_for_state(self, target: KeeperState, timeout: float) -> bool:
        """Wait until the current state equals ``target``.

        Args:
            target: State to wait for
            timeout: Maximum wait in seconds

        Returns:
            True if the target state was reached, False on timeout.
        """
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                if self._state is target:
                    return True
                changed = self._changed

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                await asyncio.wait_for(changed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return self.current_state is target
