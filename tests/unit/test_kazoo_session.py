"""Unit tests for the kazoo-backed session.

KazooClient is replaced with a MagicMock; kazoo's async results are stood in
for by results that complete as soon as they are linked.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from kazoo.exceptions import NoNodeError
from kazoo.protocol.states import EventType as KazooEventType
from kazoo.protocol.states import KazooState
from kazoo.protocol.states import KeeperState as KazooKeeperState
from kazoo.protocol.states import WatchedEvent

from zkwatch.config import ZookeeperClientOptions
from zkwatch.events import EventType, KeeperState, RawEvent
from zkwatch.session.base import CreateMode
from zkwatch.session.kazoo_session import KazooSession, map_keeper_state


class CompletedResult:
    """Async result that is already complete."""

    def __init__(self, value: Any = None, exception: Exception | None = None) -> None:
        self.value = value
        self.exception = exception

    def successful(self) -> bool:
        return self.exception is None

    def rawlink(self, callback: Any) -> None:
        callback(self)


@pytest.fixture
def kazoo_client() -> MagicMock:
    """Create a mock KazooClient."""
    client = MagicMock()
    client.client_state = KazooKeeperState.CONNECTED
    client.client_id = (0x42, b"pw")
    return client


@pytest.fixture
def events() -> list[RawEvent]:
    """Collect events reported by the session."""
    return []


@pytest_asyncio.fixture
async def session(kazoo_client: MagicMock, events: list[RawEvent]) -> KazooSession:
    """Create a KazooSession around the mock client."""
    options = ZookeeperClientOptions(
        connection_string="zk1:2181,zk2:2181",
        session_timeout_seconds=15,
        read_only=True,
    )
    with patch("zkwatch.session.kazoo_session.KazooClient", return_value=kazoo_client) as cls:
        built = KazooSession(options, events.append, (0x42, b"pw"))
    cls.assert_called_once_with(
        hosts="zk1:2181,zk2:2181",
        timeout=15.0,
        client_id=(0x42, b"pw"),
        read_only=True,
    )
    return built


class TestMapKeeperState:
    """Tests for kazoo state translation."""

    @pytest.mark.parametrize(
        ("state", "client_state", "expected"),
        [
            (KazooState.CONNECTED, KazooKeeperState.CONNECTED, KeeperState.SYNC_CONNECTED),
            (KazooState.CONNECTED, KazooKeeperState.CONNECTED_RO, KeeperState.CONNECTED_READ_ONLY),
            (KazooState.SUSPENDED, KazooKeeperState.CONNECTING, KeeperState.DISCONNECTED),
            (KazooState.LOST, KazooKeeperState.EXPIRED_SESSION, KeeperState.EXPIRED),
            (KazooState.LOST, KazooKeeperState.AUTH_FAILED, KeeperState.AUTH_FAILED),
            (KazooState.LOST, KazooKeeperState.CLOSED, KeeperState.CLOSED),
            (KazooState.LOST, KazooKeeperState.CONNECTING, KeeperState.EXPIRED),
        ],
    )
    def test_mapping(self, state: str, client_state: str, expected: KeeperState) -> None:
        """Test listener states map to the matching KeeperState."""
        assert map_keeper_state(state, client_state) is expected


class TestKazooSession:
    """Tests for KazooSession."""

    @pytest.mark.asyncio
    async def test_listener_registered(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test the connection listener is attached at construction."""
        kazoo_client.add_listener.assert_called_once_with(session._on_state)

    @pytest.mark.asyncio
    async def test_credentials(self, session: KazooSession) -> None:
        """Test the session id and password come from kazoo's client id."""
        assert session.session_id == 0x42
        assert session.session_password == b"pw"

    @pytest.mark.asyncio
    async def test_start_and_close(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test start connects asynchronously and close shuts kazoo down."""
        await session.start()
        kazoo_client.start_async.assert_called_once_with()

        await session.close()
        kazoo_client.remove_listener.assert_called_once_with(session._on_state)
        kazoo_client.stop.assert_called_once_with()
        kazoo_client.close.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_state_forwarded(
        self, session: KazooSession, kazoo_client: MagicMock, events: list[RawEvent]
    ) -> None:
        """Test listener calls become connection-level raw events."""
        kazoo_client.client_state = KazooKeeperState.CONNECTING
        session._on_state(KazooState.SUSPENDED)
        kazoo_client.client_state = KazooKeeperState.EXPIRED_SESSION
        session._on_state(KazooState.LOST)

        assert events == [
            RawEvent(EventType.NONE, KeeperState.DISCONNECTED),
            RawEvent(EventType.NONE, KeeperState.EXPIRED),
        ]

    @pytest.mark.asyncio
    async def test_get_data(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test data is returned and a watch callback is passed only when asked."""
        kazoo_client.get_async.return_value = CompletedResult((b"v", MagicMock()))
        assert await session.get_data("/n") == b"v"
        kazoo_client.get_async.assert_called_with("/n", watch=None)

        await session.get_data("/n", watch=True)
        kazoo_client.get_async.assert_called_with("/n", watch=session._on_data_watch)

    @pytest.mark.asyncio
    async def test_get_data_empty(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test a node without data yields empty bytes."""
        kazoo_client.get_async.return_value = CompletedResult((None, MagicMock()))
        assert await session.get_data("/n") == b""

    @pytest.mark.asyncio
    async def test_errors_propagate(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test kazoo exceptions reach the caller unchanged."""
        kazoo_client.get_children_async.return_value = CompletedResult(exception=NoNodeError())
        with pytest.raises(NoNodeError):
            await session.get_children("/missing")

    @pytest.mark.asyncio
    async def test_exists(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test a stat means the node exists."""
        kazoo_client.exists_async.return_value = CompletedResult(MagicMock())
        assert await session.exists("/n", watch=True) is True
        kazoo_client.exists_async.assert_called_with("/n", watch=session._on_data_watch)

        kazoo_client.exists_async.return_value = CompletedResult(None)
        assert await session.exists("/n") is False

    @pytest.mark.asyncio
    async def test_create_flags(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test the create mode becomes kazoo's ephemeral and sequence flags."""
        kazoo_client.create_async.return_value = CompletedResult("/q/item-0000000003")

        path = await session.create("/q/item-", None, None, CreateMode.EPHEMERAL_SEQUENTIAL)

        assert path == "/q/item-0000000003"
        kazoo_client.create_async.assert_called_once_with(
            "/q/item-", value=b"", acl=None, ephemeral=True, sequence=True
        )

    @pytest.mark.asyncio
    async def test_set_and_delete(self, session: KazooSession, kazoo_client: MagicMock) -> None:
        """Test versions are passed through."""
        stat = MagicMock()
        kazoo_client.set_async.return_value = CompletedResult(stat)
        kazoo_client.delete_async.return_value = CompletedResult(True)

        assert await session.set_data("/n", b"v", 3) is stat
        await session.delete("/n", 4)

        kazoo_client.set_async.assert_called_once_with("/n", b"v", 3)
        kazoo_client.delete_async.assert_called_once_with("/n", 4)


class TestWatchForwarding:
    """Tests for watch callbacks reaching the watcher."""

    @pytest.mark.asyncio
    async def test_event_types_mapped(self, session: KazooSession, events: list[RawEvent]) -> None:
        """Test kazoo event types map to raw event types."""
        session._on_data_watch(WatchedEvent(KazooEventType.CREATED, KazooKeeperState.CONNECTED, "/n"))
        session._on_data_watch(WatchedEvent(KazooEventType.CHANGED, KazooKeeperState.CONNECTED, "/n"))
        session._on_child_watch(WatchedEvent(KazooEventType.CHILD, KazooKeeperState.CONNECTED, "/n"))

        assert events == [
            RawEvent(EventType.CREATED, KeeperState.SYNC_CONNECTED, "/n"),
            RawEvent(EventType.DATA_CHANGED, KeeperState.SYNC_CONNECTED, "/n"),
            RawEvent(EventType.CHILDREN_CHANGED, KeeperState.SYNC_CONNECTED, "/n"),
        ]

    @pytest.mark.asyncio
    async def test_deletion_reported_once(
        self, session: KazooSession, kazoo_client: MagicMock, events: list[RawEvent]
    ) -> None:
        """Test a deletion seen by both watchers is reported once."""
        kazoo_client.get_children_async.return_value = CompletedResult([])
        await session.get_children("/n", watch=True)

        deleted = WatchedEvent(KazooEventType.DELETED, KazooKeeperState.CONNECTED, "/n")
        session._on_data_watch(deleted)
        session._on_child_watch(deleted)

        assert events == [RawEvent(EventType.DELETED, KeeperState.SYNC_CONNECTED, "/n")]

    @pytest.mark.asyncio
    async def test_data_only_deletions_not_retained(
        self, session: KazooSession, events: list[RawEvent]
    ) -> None:
        """Test deletions of paths without a child watch leave no marker behind."""
        for path in ("/a", "/b", "/c"):
            session._on_data_watch(
                WatchedEvent(KazooEventType.DELETED, KazooKeeperState.CONNECTED, path)
            )

        assert len(events) == 3
        assert session._reported_deletions == set()

    @pytest.mark.asyncio
    async def test_failed_child_watch_not_outstanding(
        self, session: KazooSession, kazoo_client: MagicMock, events: list[RawEvent]
    ) -> None:
        """Test a child watch that kazoo refused does not capture the next deletion."""
        kazoo_client.get_children_async.return_value = CompletedResult(exception=NoNodeError())
        with pytest.raises(NoNodeError):
            await session.get_children("/n", watch=True)

        session._on_data_watch(
            WatchedEvent(KazooEventType.DELETED, KazooKeeperState.CONNECTED, "/n")
        )

        assert events == [RawEvent(EventType.DELETED, KeeperState.SYNC_CONNECTED, "/n")]
        assert session._reported_deletions == set()

    @pytest.mark.asyncio
    async def test_child_watch_deletion_alone(
        self, session: KazooSession, events: list[RawEvent]
    ) -> None:
        """Test a deletion seen only by the child watcher is still reported."""
        session._on_child_watch(WatchedEvent(KazooEventType.DELETED, KazooKeeperState.CONNECTED, "/n"))

        assert events == [RawEvent(EventType.DELETED, KeeperState.SYNC_CONNECTED, "/n")]

    @pytest.mark.asyncio
    async def test_new_child_watch_resets_deletion_marker(
        self, session: KazooSession, kazoo_client: MagicMock, events: list[RawEvent]
    ) -> None:
        """Test a child watch set after a reported deletion reports the next one."""
        deleted = WatchedEvent(KazooEventType.DELETED, KazooKeeperState.CONNECTED, "/n")
        session._on_data_watch(deleted)

        kazoo_client.get_children_async.return_value = CompletedResult([])
        await session.get_children("/n", watch=True)
        session._on_child_watch(deleted)

        assert events == [
            RawEvent(EventType.DELETED, KeeperState.SYNC_CONNECTED, "/n"),
            RawEvent(EventType.DELETED, KeeperState.SYNC_CONNECTED, "/n"),
        ]
