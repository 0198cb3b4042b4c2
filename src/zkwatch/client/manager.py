"""ZooKeeper client with durable subscriptions.

ZookeeperClient owns the one live coordination session, receives every raw
event the session reports, keeps the registry of per-path watch entries and
rebuilds the session when the server expires it.

Event flow:
    session thread --process()--> event loop intake
        connection event: state tracker updated immediately, then queued
            for the connection worker (reconnection, re-validation, state
            subscribers)
        node event: queued for the node worker, which hands it to the
            NodeEntry of that exact path

Connection states are applied at intake rather than by a worker, so a node
handler waiting in the retry policy for SYNC_CONNECTED never waits behind
itself.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Callable, TypeVar

import structlog
from kazoo.security import OPEN_ACL_UNSAFE

from zkwatch.client.node_entry import NodeEntry, call_handler
from zkwatch.client.retry import RetryPolicy
from zkwatch.client.state import ConnectionStateTracker
from zkwatch.config import ZookeeperClientOptions
from zkwatch.errors import ClientClosedError
from zkwatch.events import (
    ChildrenChangeHandler,
    ConnectionStateChange,
    ConnectionStateChangeHandler,
    DataChangeHandler,
    KeeperState,
    RawEvent,
)
from zkwatch.paths import normalize_path
from zkwatch.session.base import CoordinationSession, CreateMode, SessionFactory
from zkwatch.session.kazoo_session import KazooSession

if TYPE_CHECKING:
    from kazoo.protocol.states import ZnodeStat
    from kazoo.security import ACL

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ZookeeperClient:
    """Coordination-service client with retried operations and durable watches.

    All paths are relative to ``options.base_path``. Every operation is
    retried across connection loss and session expiry within
    ``options.operating_timeout_seconds``.

    Subscriptions survive disconnects and session expiry: after the session
    reconnects, every subscribed path is re-read and its handlers are called
    with the current value. The path registry grows with every distinct path
    touched and is never pruned.

    Example:
        >>> async with ZookeeperClient("127.0.0.1:2181") as client:
        ...     await client.wait_until_connected(10)
        ...     await client.subscribe_data_change("/config", on_config)

    Attributes:
        options: Client options
    """

    def __init__(
        self,
        options: ZookeeperClientOptions | str,
        session_factory: SessionFactory | None = None,
    ) -> None:
        if isinstance(options, str):
            options = ZookeeperClientOptions(connection_string=options)
        self.options = options
        self._session_factory: SessionFactory = session_factory or KazooSession
        self._state = ConnectionStateTracker()
        self._retry = RetryPolicy(
            self._state,
            options.operating_timeout_seconds,
            options.backoff,
        )
        self._entries: dict[str, NodeEntry] = {}
        self._state_handlers: list[ConnectionStateChangeHandler] = []
        self._reconnect_lock = asyncio.Lock()
        self._session: CoordinationSession | None = None
        self._generation = 0
        self._first_connection = True
        self._disposed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connection_events: asyncio.Queue[RawEvent] = asyncio.Queue()
        self._node_events: asyncio.Queue[RawEvent] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._logger = logger.bind(
            component="ZookeeperClient",
            connection_string=options.connection_string,
        )

    async def __aenter__(self) -> ZookeeperClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def session(self) -> CoordinationSession:
        """The live session. Replaced, never mutated, on reconnection."""
        if self._session is None:
            raise ClientClosedError("Client has not been started")
        return self._session

    @property
    def state(self) -> KeeperState:
        """Last connection state reported by the session."""
        return self._state.current_state

    @property
    def closed(self) -> bool:
        return self._disposed

    async def start(self) -> None:
        """Start the event workers and open the first session.

        Returns without waiting for the connection; use
        ``wait_until_connected`` for that. Calling it again is a no-op.
        """
        if self._disposed:
            raise ClientClosedError("Client is closed")
        if self._session is not None:
            return

        self._loop = asyncio.get_running_loop()
        self._workers = [
            asyncio.create_task(self._connection_worker(), name="zkwatch-connection-events"),
            asyncio.create_task(self._node_worker(), name="zkwatch-node-events"),
        ]
        self._generation = 1
        self._session = self._new_session(self._generation, self.options.client_id)
        await self._session.start()
        self._logger.info("client_started", base_path=self.options.base_path or "/")

    async def close(self) -> None:
        """Close the session and stop processing events.

        Idempotent. Raw events arriving afterwards are ignored and further
        operations raise ClientClosedError.
        """
        if self._disposed:
            return
        self._disposed = True

        async with self._reconnect_lock:
            if self._session is not None:
                try:
                    await self._session.close()
                except Exception as e:
                    self._logger.warning("session_close_failed", error=str(e))

        # A worker closing the client from a handler stops on its own
        current = asyncio.current_task()
        workers = [task for task in self._workers if task is not current]
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._logger.info("client_closed")

    def process(self, event: RawEvent) -> None:
        """Accept a raw event from the session. Safe to call from any thread."""
        self._receive(self._generation, event)

    async def wait_for_keeper_state(self, state: KeeperState, timeout: float) -> bool:
        """Wait until the connection reaches ``state``.

        Args:
            state: State to wait for
            timeout: Maximum wait in seconds

        Returns:
            True if the state was reached, False on timeout.
        """
        return await self._state.wait_for_state(state, timeout)

    async def wait_until_connected(self, timeout: float) -> bool:
        """Wait until the connection is SYNC_CONNECTED."""
        return await self.wait_for_keeper_state(KeeperState.SYNC_CONNECTED, timeout)

    async def retry_until_connected(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under the client's retry policy."""
        return await self._retry.retry_until_connected(operation)

    async def get_data(self, path: str) -> bytes:
        entry = self._entry(path)
        return await self.retry_until_connected(entry.get_data)

    async def get_children(self, path: str) -> list[str]:
        entry = self._entry(path)
        return await self.retry_until_connected(entry.get_children)

    async def exists(self, path: str) -> bool:
        entry = self._entry(path)
        return await self.retry_until_connected(entry.exists)

    async def create(
        self,
        path: str,
        data: bytes | None = None,
        acl: Sequence[ACL] | None = None,
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        """Create a node.

        Returns:
            The created node's actual path (sequence suffix included).

        Raises:
            NodeExistsError: If the node already exists.
            NoNodeError: If the parent node does not exist.
        """
        entry = self._entry(path)
        acl = acl if acl is not None else OPEN_ACL_UNSAFE
        return await self.retry_until_connected(lambda: entry.create(data, acl, mode))

    async def set_data(self, path: str, data: bytes | None, version: int = -1) -> ZnodeStat:
        entry = self._entry(path)
        return await self.retry_until_connected(lambda: entry.set_data(data, version))

    async def delete(self, path: str, version: int = -1) -> None:
        entry = self._entry(path)
        await self.retry_until_connected(lambda: entry.delete(version))

    async def subscribe_data_change(self, path: str, handler: DataChangeHandler) -> None:
        """Call ``handler`` on every creation, data change and deletion of ``path``.

        Returns once the watch is armed. The node does not need to exist.
        """
        await self._entry(path).subscribe_data_change(handler)

    def unsubscribe_data_change(self, path: str, handler: DataChangeHandler) -> None:
        self._entry(path).unsubscribe_data_change(handler)

    async def subscribe_children_change(
        self, path: str, handler: ChildrenChangeHandler
    ) -> tuple[str, ...] | None:
        """Call ``handler`` whenever the children of ``path`` change.

        Returns:
            The current children, or None if the node does not exist yet.
        """
        return await self._entry(path).subscribe_children_change(handler)

    def unsubscribe_children_change(self, path: str, handler: ChildrenChangeHandler) -> None:
        self._entry(path).unsubscribe_children_change(handler)

    def subscribe_state_change(self, handler: ConnectionStateChangeHandler) -> None:
        self._state_handlers.append(handler)

    def unsubscribe_state_change(self, handler: ConnectionStateChangeHandler) -> None:
        if handler in self._state_handlers:
            self._state_handlers.remove(handler)

    def _entry(self, path: str) -> NodeEntry:
        if self._disposed:
            raise ClientClosedError("Client is closed")
        full_path = normalize_path(self.options.base_path, path)
        entry = self._entries.get(full_path)
        if entry is None:
            entry = self._entries.setdefault(full_path, NodeEntry(full_path, self))
        return entry

    def _new_session(
        self, generation: int, client_id: tuple[int, bytes] | None
    ) -> CoordinationSession:
        watcher = functools.partial(self._receive, generation)
        return self._session_factory(self.options, watcher, client_id)

    def _receive(self, generation: int, event: RawEvent) -> None:
        if self._disposed or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._intake, generation, event)

    def _intake(self, generation: int, event: RawEvent) -> None:
        if self._disposed:
            return
        if generation != self._generation:
            self._logger.debug(
                "stale_session_event_dropped",
                generation=generation,
                event_type=event.type.value,
                path=event.path,
            )
            return

        if event.is_connection_event:
            self._state.set_state(event.state)
            self._connection_events.put_nowait(event)
        else:
            self._node_events.put_nowait(event)

    async def _connection_worker(self) -> None:
        while not self._disposed:
            event = await self._connection_events.get()
            try:
                await self._on_connection_state_change(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error(
                    "connection_event_dispatch_failed",
                    state=event.state.value,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._connection_events.task_done()

    async def _node_worker(self) -> None:
        while not self._disposed:
            event = await self._node_events.get()
            try:
                if event.is_connection_event:
                    await self._revalidate_entries(event)
                else:
                    await self._dispatch_node_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error(
                    "node_event_dispatch_failed",
                    path=event.path,
                    event_type=event.type.value,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._node_events.task_done()

    async def _on_connection_state_change(self, event: RawEvent) -> None:
        state = event.state
        self._logger.info("connection_state_changed", state=state.value)

        if state is KeeperState.EXPIRED:
            await self._reconnect()
        elif state is KeeperState.SYNC_CONNECTED:
            if self._first_connection:
                self._first_connection = False
            else:
                # Re-validation is ordered with node events on the node worker
                self._node_events.put_nowait(event)

        # Subscribers run after local state is applied
        change = ConnectionStateChange(state)
        for handler in list(self._state_handlers):
            await call_handler(handler, self, change)

    async def _dispatch_node_event(self, event: RawEvent) -> None:
        entry = self._entries.get(event.path)
        if entry is None:
            return
        await entry.on_change(event, False)

    async def _revalidate_entries(self, event: RawEvent) -> None:
        entries = list(self._entries.values())
        self._logger.info("revalidating_watches", entries=len(entries))
        for entry in entries:
            if self._disposed:
                return
            try:
                await entry.on_change(event, False)
            except Exception as e:
                self._logger.error(
                    "watch_revalidation_failed",
                    path=entry.path,
                    error=str(e),
                    exc_info=True,
                )

    async def _reconnect(self) -> None:
        """Replace an expired session with a new one.

        Retries the bounded lock acquisition until it succeeds, unless the
        client is closed or another rebuild already replaced the session.
        """
        generation = self._generation
        timeout = self.options.connection_timeout_seconds
        while not self._disposed:
            try:
                await asyncio.wait_for(self._reconnect_lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                self._logger.warning("reconnect_lock_timeout", timeout_seconds=timeout)
                if self._generation != generation:
                    return
                continue

            try:
                if self._disposed or self._generation != generation:
                    return

                # Events from the expired session are stale from here on
                self._generation += 1
                old_session = self._session
                if old_session is not None:
                    try:
                        await old_session.close()
                    except Exception as e:
                        self._logger.warning("expired_session_close_failed", error=str(e))

                # An expired session can't be resumed, so no client id
                self._session = self._new_session(self._generation, None)
                await self._session.start()
                self._logger.info("session_rebuilt", generation=self._generation)
                return
            finally:
                self._reconnect_lock.release()
