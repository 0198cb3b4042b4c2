"""zkwatch - Durable ZooKeeper subscriptions.

This package wraps a ZooKeeper session (through kazoo) and turns its
one-shot watches into subscriptions that keep firing across disconnects
and session expirations, with every operation retried through transient
connection loss.
"""

from __future__ import annotations

__version__ = "0.1.0"

from zkwatch.client import (
    ZookeeperClient,
    create_ephemeral,
    create_persistent,
    create_recursive,
    delete_recursive,
    wait_for_retry,
    wait_until_connected,
)
from zkwatch.config import ZookeeperClientOptions
from zkwatch.errors import (
    ClientClosedError,
    OperationTimeoutError,
    UnsupportedEventError,
    ZkWatchError,
)
from zkwatch.events import (
    ConnectionStateChange,
    EventType,
    KeeperState,
    NodeChildrenChange,
    NodeDataChange,
    RawEvent,
)
from zkwatch.session import CoordinationSession, CreateMode, KazooSession

__all__ = [
    "ClientClosedError",
    "ConnectionStateChange",
    "CoordinationSession",
    "CreateMode",
    "EventType",
    "KazooSession",
    "KeeperState",
    "NodeChildrenChange",
    "NodeDataChange",
    "OperationTimeoutError",
    "RawEvent",
    "UnsupportedEventError",
    "ZkWatchError",
    "ZookeeperClient",
    "ZookeeperClientOptions",
    "__version__",
    "create_ephemeral",
    "create_persistent",
    "create_recursive",
    "delete_recursive",
    "wait_for_retry",
    "wait_until_connected",
]
