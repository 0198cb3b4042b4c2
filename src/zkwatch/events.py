"""Connection states, event types and change notifications.

``RawEvent`` is what the wrapped client library reports; the notification
classes are what subscribers receive.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Union

if TYPE_CHECKING:
    from zkwatch.client.manager import ZookeeperClient


class KeeperState(str, Enum):
    """Connectivity of the client as reported by the coordination service.

    State transitions:
        DISCONNECTED -> SYNC_CONNECTED <-> DISCONNECTED
                              |
                           EXPIRED -> (new session) -> SYNC_CONNECTED
    """

    DISCONNECTED = "disconnected"
    SYNC_CONNECTED = "sync_connected"
    CONNECTED_READ_ONLY = "connected_read_only"
    AUTH_FAILED = "auth_failed"
    EXPIRED = "expired"
    CLOSED = "closed"


class EventType(str, Enum):
    """Kind of a raw event or change notification."""

    NONE = "none"
    CREATED = "created"
    DELETED = "deleted"
    DATA_CHANGED = "data_changed"
    CHILDREN_CHANGED = "children_changed"


DATA_EVENT_TYPES = frozenset({EventType.CREATED, EventType.DATA_CHANGED, EventType.DELETED})
CHILDREN_EVENT_TYPES = frozenset({EventType.CHILDREN_CHANGED})


@dataclass(frozen=True)
class RawEvent:
    """Event delivered by the wrapped client library.

    Attributes:
        type: Low-level event type (NONE for connection-level events)
        state: Keeper state at the time of the event
        path: Node path, or None for a connection-level event
    """

    type: EventType
    state: KeeperState
    path: str | None = None

    @property
    def is_connection_event(self) -> bool:
        """Whether this event concerns the connection rather than a node."""
        return not self.path


@dataclass(frozen=True)
class NodeDataChange:
    """Data change notification.

    Attributes:
        path: Absolute node path (base path included)
        type: CREATED, DATA_CHANGED or DELETED
        data: Node data fetched after the event; None when the node is gone
    """

    path: str
    type: EventType
    data: bytes | None


@dataclass(frozen=True)
class NodeChildrenChange:
    """Children change notification.

    Attributes:
        path: Absolute node path (base path included)
        type: Always CHILDREN_CHANGED
        children: Child names fetched after the event; None when the node is gone
    """

    path: str
    type: EventType
    children: tuple[str, ...] | None


@dataclass(frozen=True)
class ConnectionStateChange:
    """Connection state change notification."""

    state: KeeperState


# Handlers may be plain functions or coroutine functions.
DataChangeHandler = Callable[
    ["ZookeeperClient", NodeDataChange], Union[Awaitable[None], None]
]
ChildrenChangeHandler = Callable[
    ["ZookeeperClient", NodeChildrenChange], Union[Awaitable[None], None]
]
ConnectionStateChangeHandler = Callable[
    ["ZookeeperClient", ConnectionStateChange], Union[Awaitable[None], None]
]
