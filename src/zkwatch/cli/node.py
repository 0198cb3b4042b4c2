"""Node inspection and editing CLI commands.

This module provides the get, ls, exists, create, set and delete commands.
Every command opens a client, waits for the connection and runs a single
retried operation.
"""

from __future__ import annotations

from typing import Annotated, Optional

import typer
from kazoo.exceptions import NoNodeError

from zkwatch.cli.common import console, decode, err_console, run_with_client
from zkwatch.client.helpers import create_recursive, delete_recursive
from zkwatch.client.manager import ZookeeperClient
from zkwatch.session.base import CreateMode


def _not_found(path: str) -> typer.Exit:
    err_console.print(f"[red]Node not found:[/red] {path}")
    return typer.Exit(code=1)


def get(
    path: Annotated[str, typer.Argument(help="Node path")],
) -> None:
    """Print the data of a node."""

    async def _get(client: ZookeeperClient) -> bytes:
        try:
            return await client.get_data(path)
        except NoNodeError:
            raise _not_found(path)

    data = run_with_client(_get)
    console.print(decode(data), markup=False, highlight=False)


def ls(
    path: Annotated[str, typer.Argument(help="Node path")] = "/",
) -> None:
    """List the children of a node, sorted by name."""

    async def _ls(client: ZookeeperClient) -> list[str]:
        try:
            return await client.get_children(path)
        except NoNodeError:
            raise _not_found(path)

    for child in sorted(run_with_client(_ls)):
        console.print(child, markup=False, highlight=False)


def exists(
    path: Annotated[str, typer.Argument(help="Node path")],
) -> None:
    """Check whether a node exists. Exits with code 1 if it does not."""
    found = run_with_client(lambda client: client.exists(path))
    if found:
        console.print(f"[green]{path} exists[/green]")
    else:
        console.print(f"[yellow]{path} does not exist[/yellow]")
        raise typer.Exit(code=1)


def create(
    path: Annotated[str, typer.Argument(help="Node path")],
    data: Annotated[
        Optional[str],
        typer.Option("--data", "-d", help="Initial node data (UTF-8)"),
    ] = None,
    ephemeral: Annotated[
        bool,
        typer.Option("--ephemeral", "-e", help="Create an ephemeral node"),
    ] = False,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Create missing parent nodes"),
    ] = False,
) -> None:
    """Create a node.

    Args:
        path: Node path, relative to the base path
        data: Optional initial data
        ephemeral: Create an ephemeral node (removed when this command exits)
        recursive: Create missing parents as empty persistent nodes
    """
    payload = data.encode("utf-8") if data is not None else None
    mode = CreateMode.EPHEMERAL if ephemeral else CreateMode.PERSISTENT

    async def _create(client: ZookeeperClient) -> str:
        if recursive:
            await create_recursive(client, path, payload, mode)
            return path
        return await client.create(path, payload, mode=mode)

    created = run_with_client(_create)
    console.print(f"[green]Created[/green] {created}")


def set_data(
    path: Annotated[str, typer.Argument(help="Node path")],
    data: Annotated[str, typer.Argument(help="New node data (UTF-8)")],
    version: Annotated[
        int,
        typer.Option("--version", help="Expected node version, -1 for any"),
    ] = -1,
) -> None:
    """Replace the data of a node."""

    async def _set(client: ZookeeperClient) -> int:
        try:
            stat = await client.set_data(path, data.encode("utf-8"), version)
        except NoNodeError:
            raise _not_found(path)
        return stat.version

    new_version = run_with_client(_set)
    console.print(f"[green]Updated[/green] {path} (version {new_version})")


def delete(
    path: Annotated[str, typer.Argument(help="Node path")],
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Delete all descendants as well"),
    ] = False,
    version: Annotated[
        int,
        typer.Option("--version", help="Expected node version, -1 for any"),
    ] = -1,
) -> None:
    """Delete a node."""
    if recursive and version != -1:
        err_console.print("[red]--version can't be combined with --recursive[/red]")
        raise typer.Exit(code=1)

    async def _delete(client: ZookeeperClient) -> None:
        if recursive:
            await delete_recursive(client, path)
            return
        try:
            await client.delete(path, version)
        except NoNodeError:
            raise _not_found(path)

    run_with_client(_delete)
    console.print(f"[green]Deleted[/green] {path}")
