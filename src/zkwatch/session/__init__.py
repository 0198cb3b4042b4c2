"""Coordination-service sessions.

``CoordinationSession`` is the interface ZookeeperClient drives;
``KazooSession`` implements it on top of kazoo.
"""

from __future__ import annotations

from zkwatch.session.base import CoordinationSession, CreateMode, SessionFactory, Watcher
from zkwatch.session.kazoo_session import KazooSession, map_keeper_state

__all__ = [
    "CoordinationSession",
    "CreateMode",
    "KazooSession",
    "SessionFactory",
    "Watcher",
    "map_keeper_state",
]
