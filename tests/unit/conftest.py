"""Pytest fixtures for unit tests.

Every client fixture runs against the in-memory coordination service from
fake_zookeeper, so no ZooKeeper server is needed.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fake_zookeeper import FakeZookeeperServer, Recorder, make_options, settle

from zkwatch.client.manager import ZookeeperClient


@pytest.fixture
def server() -> FakeZookeeperServer:
    """Create an empty in-memory coordination service."""
    return FakeZookeeperServer()


@pytest.fixture
def recorder() -> Recorder:
    """Create a recording handler."""
    return Recorder()


@pytest_asyncio.fixture
async def client(server: FakeZookeeperServer) -> AsyncGenerator[ZookeeperClient, None]:
    """Create a started, connected client on the in-memory service.

    Yields:
        ZookeeperClient whose first connection has been fully processed
    """
    zk = ZookeeperClient(make_options(), session_factory=server.session_factory)
    await zk.start()
    assert await zk.wait_until_connected(1.0)
    await settle(zk)
    yield zk
    await zk.close()
