"""kazoo-backed coordination session.

kazoo runs its own connection and callback threads. This adapter turns its
``*_async`` results into asyncio futures on the loop that created the
session, and funnels kazoo's per-call watch callbacks and connection state
listener into a single watcher receiving ``RawEvent`` objects.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog
from kazoo.client import KazooClient
from kazoo.protocol.states import EventType as KazooEventType
from kazoo.protocol.states import KazooState
from kazoo.protocol.states import KeeperState as KazooKeeperState
from kazoo.protocol.states import WatchedEvent

from zkwatch.events import EventType, KeeperState, RawEvent
from zkwatch.session.base import CoordinationSession, CreateMode, Watcher

if TYPE_CHECKING:
    from kazoo.handlers.utils import AsyncResult
    from kazoo.protocol.states import ZnodeStat
    from kazoo.security import ACL

    from zkwatch.config import ZookeeperClientOptions

logger = structlog.get_logger(__name__)


EVENT_TYPES: dict[str, EventType] = {
    KazooEventType.NONE: EventType.NONE,
    KazooEventType.CREATED: EventType.CREATED,
    KazooEventType.DELETED: EventType.DELETED,
    KazooEventType.CHANGED: EventType.DATA_CHANGED,
    KazooEventType.CHILD: EventType.CHILDREN_CHANGED,
}

LOST_STATES: dict[str, KeeperState] = {
    KazooKeeperState.EXPIRED_SESSION: KeeperState.EXPIRED,
    KazooKeeperState.AUTH_FAILED: KeeperState.AUTH_FAILED,
    KazooKeeperState.CLOSED: KeeperState.CLOSED,
}


def map_keeper_state(state: str, client_state: str) -> KeeperState:
    """Translate a kazoo listener state into a KeeperState.

    Args:
        state: KazooState passed to the connection listener
        client_state: kazoo's KeeperState at the time of the call

    Returns:
        The equivalent KeeperState
    """
    if state == KazooState.CONNECTED:
        if client_state == KazooKeeperState.CONNECTED_RO:
            return KeeperState.CONNECTED_READ_ONLY
        return KeeperState.SYNC_CONNECTED
    if state == KazooState.SUSPENDED:
        return KeeperState.DISCONNECTED
    return LOST_STATES.get(client_state, KeeperState.EXPIRED)


class KazooSession(CoordinationSession):
    """CoordinationSession implemented with a KazooClient.

    Must be constructed while the owning event loop is running.

    Attributes:
        options: Client options the session was built from
    """

    def __init__(
        self,
        options: ZookeeperClientOptions,
        watcher: Watcher,
        client_id: tuple[int, bytes] | None = None,
    ) -> None:
        self.options = options
        self._watcher = watcher
        self._loop = asyncio.get_running_loop()
        self._lock = threading.Lock()
        # Paths with an outstanding child watch
        self._child_watched: set[str] = set()
        # Paths whose deletion was reported through a data watch while a
        # child watch was still outstanding
        self._reported_deletions: set[str] = set()
        self._client = KazooClient(
            hosts=options.connection_string,
            timeout=options.session_timeout_seconds,
            client_id=client_id,
            read_only=options.read_only,
        )
        self._client.add_listener(self._on_state)

    @property
    def session_id(self) -> int | None:
        client_id = self._client.client_id
        return client_id[0] if client_id else None

    @property
    def session_password(self) -> bytes | None:
        client_id = self._client.client_id
        return client_id[1] if client_id else None

    async def start(self) -> None:
        self._client.start_async()
        logger.info(
            "kazoo_session_connecting",
            hosts=self.options.connection_string,
            session_timeout=self.options.session_timeout_seconds,
        )

    async def close(self) -> None:
        await asyncio.to_thread(self._shutdown)

    def _shutdown(self) -> None:
        self._client.remove_listener(self._on_state)
        self._client.stop()
        self._client.close()
        logger.info("kazoo_session_closed", hosts=self.options.connection_string)

    async def get_data(self, path: str, watch: bool = False) -> bytes:
        data, _stat = await self._bridge(
            self._client.get_async(path, watch=self._on_data_watch if watch else None)
        )
        return data or b""

    async def get_children(self, path: str, watch: bool = False) -> list[str]:
        if not watch:
            return await self._bridge(self._client.get_children_async(path, watch=None))

        with self._lock:
            self._reported_deletions.discard(path)
            self._child_watched.add(path)
        try:
            return await self._bridge(
                self._client.get_children_async(path, watch=self._on_child_watch)
            )
        except Exception:
            # kazoo only registers the watch on success
            with self._lock:
                self._child_watched.discard(path)
            raise

    async def exists(self, path: str, watch: bool = False) -> bool:
        stat = await self._bridge(
            self._client.exists_async(path, watch=self._on_data_watch if watch else None)
        )
        return stat is not None

    async def create(
        self,
        path: str,
        data: bytes | None,
        acl: Sequence[ACL] | None,
        mode: CreateMode,
    ) -> str:
        return await self._bridge(
            self._client.create_async(
                path,
                value=data or b"",
                acl=list(acl) if acl else None,
                ephemeral=mode.ephemeral,
                sequence=mode.sequential,
            )
        )

    async def set_data(self, path: str, data: bytes | None, version: int = -1) -> ZnodeStat:
        return await self._bridge(self._client.set_async(path, data or b"", version))

    async def delete(self, path: str, version: int = -1) -> None:
        await self._bridge(self._client.delete_async(path, version))

    def _bridge(self, async_result: AsyncResult) -> asyncio.Future[Any]:
        """Expose a kazoo async result as a future of the owning loop."""
        future = self._loop.create_future()

        def transfer(result: AsyncResult) -> None:
            if future.cancelled():
                return
            if result.successful():
                future.set_result(result.value)
            else:
                future.set_exception(result.exception)

        async_result.rawlink(
            lambda result: self._loop.call_soon_threadsafe(transfer, result)
        )
        return future

    def _on_state(self, state: str) -> None:
        keeper_state = map_keeper_state(state, self._client.client_state)
        logger.debug(
            "kazoo_state_changed",
            kazoo_state=state,
            keeper_state=keeper_state.value,
        )
        self._watcher(RawEvent(EventType.NONE, keeper_state, None))

    def _on_data_watch(self, event: WatchedEvent) -> None:
        if event.type == KazooEventType.DELETED:
            with self._lock:
                if event.path in self._child_watched:
                    self._reported_deletions.add(event.path)
        self._forward(event)

    def _on_child_watch(self, event: WatchedEvent) -> None:
        # kazoo fires data and child watchers for one deletion; report it once
        with self._lock:
            self._child_watched.discard(event.path)
            if event.type == KazooEventType.DELETED and event.path in self._reported_deletions:
                self._reported_deletions.discard(event.path)
                return
        self._forward(event)

    def _forward(self, event: WatchedEvent) -> None:
        keeper_state = map_keeper_state(KazooState.CONNECTED, event.state)
        self._watcher(RawEvent(EVENT_TYPES[event.type], keeper_state, event.path))
