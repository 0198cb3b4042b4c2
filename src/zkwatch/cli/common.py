"""Helpers shared by the CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Callable, TypeVar

import typer
from kazoo.exceptions import KazooException
from rich.console import Console

from zkwatch.client.manager import ZookeeperClient
from zkwatch.errors import ZkWatchError

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


def decode(data: bytes | None) -> str:
    """Render node data for the terminal."""
    if data is None:
        return "<deleted>"
    return data.decode("utf-8", errors="replace")


def run_with_client(operation: Callable[[ZookeeperClient], Awaitable[T]]) -> T:
    """Connect, run ``operation`` against the client and close it.

    Exits with code 1 if the connection can't be established in time or the
    operation fails with a coordination error.
    """
    from zkwatch.main import get_app_context

    ctx = get_app_context()

    async def _run() -> T:
        async with ctx.create_client() as client:
            timeout = client.options.connection_timeout_seconds
            if not await client.wait_until_connected(timeout):
                err_console.print(
                    f"[red]Could not connect to[/red] {client.options.connection_string} "
                    f"[red]within {timeout}s[/red]"
                )
                raise typer.Exit(code=1)
            return await operation(client)

    try:
        return asyncio.run(_run())
    except (KazooException, ZkWatchError) as e:
        err_console.print(f"[red]{type(e).__name__}[/red] {e}".rstrip())
        raise typer.Exit(code=1)
