"""Per-path watch entries.

A NodeEntry exists for every path the client has touched. It keeps the data
and children handler chains for that path and owns the watch re-arming
protocol: ZooKeeper watches fire once, so after every event (and after every
reconnection) the entry re-reads the node, notifies its handlers and sets
a fresh watch.

Notifications follow an at-least-once, latest-value model. Re-arming happens
after the handlers ran, so a change made while they run is still caught, but
intermediate values between two reads are not reported.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import structlog
from kazoo.exceptions import NoNodeError

from zkwatch.errors import UnsupportedEventError
from zkwatch.events import (
    CHILDREN_EVENT_TYPES,
    DATA_EVENT_TYPES,
    ChildrenChangeHandler,
    DataChangeHandler,
    EventType,
    NodeChildrenChange,
    NodeDataChange,
    RawEvent,
)

if TYPE_CHECKING:
    from kazoo.protocol.states import ZnodeStat
    from kazoo.security import ACL

    from zkwatch.client.manager import ZookeeperClient
    from zkwatch.session.base import CreateMode

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def call_handler(handler: Callable[..., Any], *args: Any) -> None:
    """Invoke a handler that may be a plain function or a coroutine function."""
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class NodeEntry:
    """Watch state and subscribers of one node.

    Attributes:
        path: Absolute node path, base path included
    """

    def __init__(self, path: str, client: ZookeeperClient) -> None:
        self.path = path
        self._client = client
        self._data_handlers: list[DataChangeHandler] = []
        self._children_handlers: list[ChildrenChangeHandler] = []
        self._logger = logger.bind(path=path)

    @property
    def has_data_handlers(self) -> bool:
        return bool(self._data_handlers)

    @property
    def has_children_handlers(self) -> bool:
        return bool(self._children_handlers)

    # Single attempts against the current session; callers wrap them in the
    # retry policy.

    async def get_data(self, watch: bool = False) -> bytes:
        return await self._client.session.get_data(self.path, watch)

    async def get_children(self, watch: bool = False) -> list[str]:
        return await self._client.session.get_children(self.path, watch)

    async def exists(self, watch: bool = False) -> bool:
        return await self._client.session.exists(self.path, watch)

    async def create(
        self, data: bytes | None, acl: Sequence[ACL] | None, mode: CreateMode
    ) -> str:
        return await self._client.session.create(self.path, data, acl, mode)

    async def set_data(self, data: bytes | None, version: int = -1) -> ZnodeStat:
        return await self._client.session.set_data(self.path, data, version)

    async def delete(self, version: int = -1) -> None:
        await self._client.session.delete(self.path, version)

    async def subscribe_data_change(self, handler: DataChangeHandler) -> None:
        """Add a data change handler and make sure a data watch is armed."""
        self._data_handlers.append(handler)
        await self._watch_data_change()

    def unsubscribe_data_change(self, handler: DataChangeHandler) -> None:
        """Remove a data change handler; the outstanding watch stays armed."""
        if handler in self._data_handlers:
            self._data_handlers.remove(handler)

    async def subscribe_children_change(
        self, handler: ChildrenChangeHandler
    ) -> tuple[str, ...] | None:
        """Add a children change handler and arm the children watch.

        Returns:
            The current children, or None if the node does not exist yet.
            In that case the children watch is armed once the node is created.
        """
        self._children_handlers.append(handler)
        return await self._watch_children_change()

    def unsubscribe_children_change(self, handler: ChildrenChangeHandler) -> None:
        """Remove a children change handler; the outstanding watch stays armed."""
        if handler in self._children_handlers:
            self._children_handlers.remove(handler)

    async def on_change(self, event: RawEvent, is_first_connection: bool) -> None:
        """Handle a raw event concerning this node or the connection.

        Args:
            event: Raw event from the session
            is_first_connection: Whether the event is the very first
                connection of the client

        Raises:
            UnsupportedEventError: If a node event has an unknown type.
            Exception: Whatever a handler raises.
        """
        if event.is_connection_event:
            await self._on_status_change(event, is_first_connection)
            return

        if event.path != self.path:
            return

        if event.type in DATA_EVENT_TYPES:
            # Deferred arming: a children watch can't be set on a missing node
            if event.type is EventType.CREATED and self._children_handlers:
                await self._retry(self._get_children_or_none_watched)
            await self._on_data_change(event)
        elif event.type in CHILDREN_EVENT_TYPES:
            await self._on_children_change(event)
        else:
            raise UnsupportedEventError(event)

    async def _on_status_change(self, event: RawEvent, is_first_connection: bool) -> None:
        # The first connection is not a change
        if is_first_connection:
            return

        # Watches may have been lost with the previous connection
        if self._data_handlers:
            await self._on_data_change(event)
        if self._children_handlers:
            await self._on_children_change(event)

    async def _on_data_change(self, event: RawEvent) -> None:
        if event.type is EventType.DELETED:
            change = NodeDataChange(self.path, EventType.DELETED, None)
        elif event.type is EventType.CREATED:
            change = NodeDataChange(self.path, EventType.CREATED, await self._current_data())
        elif event.type in (EventType.DATA_CHANGED, EventType.NONE):
            change = NodeDataChange(self.path, EventType.DATA_CHANGED, await self._current_data())
        else:
            raise UnsupportedEventError(event)

        handlers = list(self._data_handlers)
        self._logger.debug(
            "node_data_changed",
            event_type=change.type.value,
            handlers=len(handlers),
        )
        try:
            for handler in handlers:
                await call_handler(handler, self._client, change)
        finally:
            # The fired watch is gone even when a handler failed
            if not self._client.closed:
                await self._watch_data_change()

    async def _on_children_change(self, event: RawEvent) -> None:
        if event.type not in (EventType.CHILDREN_CHANGED, EventType.NONE):
            raise UnsupportedEventError(event)

        children = await self._retry(self._get_children_or_none)
        change = NodeChildrenChange(
            self.path,
            EventType.CHILDREN_CHANGED,
            tuple(children) if children is not None else None,
        )

        handlers = list(self._children_handlers)
        self._logger.debug(
            "node_children_changed",
            children=None if children is None else len(children),
            handlers=len(handlers),
        )
        try:
            for handler in handlers:
                await call_handler(handler, self._client, change)
        finally:
            if not self._client.closed:
                await self._watch_children_change()

    async def _current_data(self) -> bytes | None:
        if not self._data_handlers:
            return None
        return await self._retry(self._get_data_or_none)

    async def _get_data_or_none(self) -> bytes | None:
        # The node may be gone by the time the event is handled
        try:
            return await self.get_data()
        except NoNodeError:
            return None

    async def _get_children_or_none(self) -> list[str] | None:
        try:
            return await self.get_children()
        except NoNodeError:
            return None

    async def _get_children_or_none_watched(self) -> list[str] | None:
        try:
            return await self.get_children(watch=True)
        except NoNodeError:
            return None

    async def _watch_data_change(self) -> None:
        await self._retry(lambda: self.exists(watch=True))

    async def _watch_children_change(self) -> tuple[str, ...] | None:
        async def arm() -> list[str] | None:
            await self.exists(watch=True)
            return await self._get_children_or_none_watched()

        children = await self._retry(arm)
        return tuple(children) if children is not None else None

    async def _retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await self._client.retry_until_connected(operation)
