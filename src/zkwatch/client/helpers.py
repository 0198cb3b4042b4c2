"""Convenience operations built on ZookeeperClient.

These compose the client's public operations and inherit their retrying and
base-path handling.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog
from kazoo.exceptions import NodeExistsError, NoNodeError
from kazoo.security import OPEN_ACL_UNSAFE

from zkwatch.events import KeeperState
from zkwatch.paths import join_path, parent_path
from zkwatch.session.base import CreateMode

if TYPE_CHECKING:
    from kazoo.security import ACL

    from zkwatch.client.manager import ZookeeperClient

logger = structlog.get_logger(__name__)


async def create_ephemeral(
    client: ZookeeperClient,
    path: str,
    data: bytes | None = None,
    acl: Sequence[ACL] = OPEN_ACL_UNSAFE,
) -> str:
    """Create a node removed automatically when the session ends."""
    return await client.create(path, data, acl, CreateMode.EPHEMERAL)


async def create_persistent(
    client: ZookeeperClient,
    path: str,
    data: bytes | None = None,
    acl: Sequence[ACL] = OPEN_ACL_UNSAFE,
) -> str:
    """Create a node that outlives the session."""
    return await client.create(path, data, acl, CreateMode.PERSISTENT)


async def create_recursive(
    client: ZookeeperClient,
    path: str,
    data: bytes | None = None,
    mode: CreateMode = CreateMode.PERSISTENT,
    acl: Sequence[ACL] = OPEN_ACL_UNSAFE,
) -> None:
    """Create a node along with any missing ancestors.

    Ancestors are created persistent and empty. An existing node counts as
    success at every level. The base path may be created this way, but its
    own parent must exist.

    Args:
        client: Connected client
        path: Node to create, relative to the client's base path
        data: Data of the final node
        mode: Create mode of the final node
        acl: ACL applied to every created node
    """
    try:
        await client.create(path, data, acl, mode)
    except NodeExistsError:
        pass
    except NoNodeError:
        # The base path itself is missing its parent
        if not path.strip("/"):
            raise
        await create_recursive(client, parent_path(path), None, CreateMode.PERSISTENT, acl)
        try:
            await client.create(path, data, acl, mode)
        except NodeExistsError:
            pass


async def delete_recursive(client: ZookeeperClient, path: str) -> bool:
    """Delete a node and all of its descendants.

    A node that is already gone counts as deleted.

    Args:
        client: Connected client
        path: Node to delete, relative to the client's base path

    Returns:
        True once the subtree is gone.
    """
    try:
        children = await client.get_children(path)
    except NoNodeError:
        return True

    for child in children:
        if not await delete_recursive(client, join_path(path, child)):
            return False

    try:
        await client.delete(path)
    except NoNodeError:
        pass
    logger.debug("node_deleted_recursively", path=path, children=len(children))
    return True


async def wait_until_connected(client: ZookeeperClient, timeout: float) -> bool:
    """Wait until the client is SYNC_CONNECTED.

    Returns:
        True if connected within ``timeout`` seconds, False otherwise.
    """
    return await client.wait_for_keeper_state(KeeperState.SYNC_CONNECTED, timeout)


async def wait_for_retry(client: ZookeeperClient) -> bool:
    """Wait until connected, up to the client's operating timeout."""
    return await wait_until_connected(client, client.options.operating_timeout_seconds)
