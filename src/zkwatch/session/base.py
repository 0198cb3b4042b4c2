"""Interface of the wrapped coordination-service session.

A session is the single live handle to the ensemble. ZookeeperClient owns
exactly one at a time and replaces it (never mutates it) when the server
expires it. Implementations report every connection-level and node-level
event to one watcher callback, possibly from a thread they own.

Errors are classified with kazoo's exception types:
``ConnectionLoss`` and ``SessionExpiredError`` are transient,
``NoNodeError``, ``NodeExistsError``, ``BadVersionError`` and
``NotEmptyError`` are logical.
"""

from __future__ import annotations

import abc
from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from kazoo.protocol.states import ZnodeStat
    from kazoo.security import ACL

    from zkwatch.config import ZookeeperClientOptions
    from zkwatch.events import RawEvent


class CreateMode(str, Enum):
    """How a node is created."""

    PERSISTENT = "persistent"
    PERSISTENT_SEQUENTIAL = "persistent_sequential"
    EPHEMERAL = "ephemeral"
    EPHEMERAL_SEQUENTIAL = "ephemeral_sequential"

    @property
    def ephemeral(self) -> bool:
        return self in (CreateMode.EPHEMERAL, CreateMode.EPHEMERAL_SEQUENTIAL)

    @property
    def sequential(self) -> bool:
        return self in (CreateMode.PERSISTENT_SEQUENTIAL, CreateMode.EPHEMERAL_SEQUENTIAL)


Watcher = Callable[["RawEvent"], None]


class CoordinationSession(abc.ABC):
    """One session with the coordination service.

    ``watch=True`` on a read registers a one-shot watch whose firing is
    reported to the session's watcher.
    """

    @abc.abstractmethod
    async def start(self) -> None:
        """Begin connecting; returns without waiting for the connection."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Close the session and release its resources."""

    @property
    @abc.abstractmethod
    def session_id(self) -> int | None:
        """Server-assigned session id, None until connected."""

    @property
    @abc.abstractmethod
    def session_password(self) -> bytes | None:
        """Password needed to resume this session."""

    @abc.abstractmethod
    async def get_data(self, path: str, watch: bool = False) -> bytes:
        """Return node data. Raises NoNodeError if the node is missing."""

    @abc.abstractmethod
    async def get_children(self, path: str, watch: bool = False) -> list[str]:
        """Return child names. Raises NoNodeError if the node is missing."""

    @abc.abstractmethod
    async def exists(self, path: str, watch: bool = False) -> bool:
        """Return whether the node exists; a watch is set either way."""

    @abc.abstractmethod
    async def create(
        self,
        path: str,
        data: bytes | None,
        acl: Sequence[ACL] | None,
        mode: CreateMode,
    ) -> str:
        """Create a node and return its actual path."""

    @abc.abstractmethod
    async def set_data(self, path: str, data: bytes | None, version: int = -1) -> ZnodeStat:
        """Replace node data when the version matches (-1 for any)."""

    @abc.abstractmethod
    async def delete(self, path: str, version: int = -1) -> None:
        """Delete a childless node when the version matches (-1 for any)."""


SessionFactory = Callable[
    ["ZookeeperClientOptions", Watcher, "tuple[int, bytes] | None"],
    CoordinationSession,
]
