"""Client subsystem for zkwatch.

This module implements the session manager (ZookeeperClient), the per-path
watch entries, the connection state tracker, the retry policy, and helper
operations for ephemeral, persistent and recursive node management.
"""

from __future__ import annotations

from zkwatch.client.helpers import (
    create_ephemeral,
    create_persistent,
    create_recursive,
    delete_recursive,
    wait_for_retry,
    wait_until_connected,
)
from zkwatch.client.manager import ZookeeperClient
from zkwatch.client.node_entry import NodeEntry
from zkwatch.client.retry import ExponentialBackoff, RetryPolicy
from zkwatch.client.state import ConnectionStateTracker

__all__ = [
    # Session manager
    "ZookeeperClient",
    # Watch entries
    "NodeEntry",
    # Connection state
    "ConnectionStateTracker",
    # Retry
    "ExponentialBackoff",
    "RetryPolicy",
    # Helpers
    "create_ephemeral",
    "create_persistent",
    "create_recursive",
    "delete_recursive",
    "wait_for_retry",
    "wait_until_connected",
]
