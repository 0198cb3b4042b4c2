"""Watch CLI command.

Subscribes to a node and prints every notification and connection state
change until interrupted with Ctrl+C (or SIGTERM).
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime
from typing import Annotated, Optional

import typer
from kazoo.exceptions import NoNodeError
from rich.markup import escape
from rich.panel import Panel

from zkwatch.cli.common import console, decode, run_with_client
from zkwatch.client.manager import ZookeeperClient
from zkwatch.events import (
    ConnectionStateChange,
    KeeperState,
    NodeChildrenChange,
    NodeDataChange,
)


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def print_data_change(client: ZookeeperClient, change: NodeDataChange) -> None:
    """Print a data notification."""
    console.print(
        f"[dim]{_timestamp()}[/dim] [bold cyan]{change.type.value}[/bold cyan] "
        f"{escape(change.path)}: {escape(decode(change.data))}",
        highlight=False,
    )


def print_children_change(client: ZookeeperClient, change: NodeChildrenChange) -> None:
    """Print a children notification."""
    children = "<no node>" if change.children is None else ", ".join(sorted(change.children))
    listing = escape(f"[{children}]")
    console.print(
        f"[dim]{_timestamp()}[/dim] [bold magenta]children[/bold magenta] "
        f"{escape(change.path)}: {listing}",
        highlight=False,
    )


def print_state_change(client: ZookeeperClient, change: ConnectionStateChange) -> None:
    """Print a connection state change."""
    style = "green" if change.state is KeeperState.SYNC_CONNECTED else "yellow"
    console.print(f"[dim]{_timestamp()}[/dim] [{style}]connection {change.state.value}[/{style}]")


async def watch_until(
    client: ZookeeperClient,
    path: str,
    children: bool,
    shutdown_event: asyncio.Event,
) -> None:
    """Subscribe to ``path`` and keep the subscription until ``shutdown_event`` is set."""
    client.subscribe_state_change(print_state_change)
    await client.subscribe_data_change(path, print_data_change)

    if children:
        current = await client.subscribe_children_change(path, print_children_change)
        if current is None:
            console.print(f"[yellow]{path} does not exist yet; waiting for it[/yellow]")
        else:
            console.print(f"[dim]children:[/dim] {escape(', '.join(sorted(current))) or '-'}")

    try:
        data = decode(await client.get_data(path))
    except NoNodeError:
        # Not created yet, or deleted since subscribing
        pass
    else:
        console.print(f"[dim]data:[/dim] {escape(data)}", highlight=False)

    await shutdown_event.wait()


def watch(
    path: Annotated[str, typer.Argument(help="Node path to watch")],
    children: Annotated[
        bool,
        typer.Option("--children", help="Also watch the list of children"),
    ] = False,
    duration: Annotated[
        Optional[float],
        typer.Option("--duration", help="Stop after this many seconds"),
    ] = None,
) -> None:
    """Watch a node and print every change until interrupted.

    Args:
        path: Node path, relative to the base path
        children: Also subscribe to children changes
        duration: Optional time limit in seconds
    """
    console.print(
        Panel(
            f"[bold]Path:[/bold] {path}\n[bold]Children:[/bold] {'yes' if children else 'no'}",
            title="Watching",
            border_style="cyan",
        )
    )
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    async def _watch(client: ZookeeperClient) -> None:
        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_event.set)
        if duration is not None:
            loop.call_later(duration, shutdown_event.set)

        try:
            await watch_until(client, path, children, shutdown_event)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    run_with_client(_watch)
    console.print("[green]Watch stopped[/green]")
