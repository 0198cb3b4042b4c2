"""Main CLI entry point for zkwatch.

This module provides the Typer application for inspecting and editing nodes
and for watching them through durable subscriptions.

Usage:
    zkwatch --server zk1:2181 get /config/app
    zkwatch --base-path /services ls /
    zkwatch create /locks/job --ephemeral
    zkwatch watch /config --children
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from zkwatch.cli import node as node_cli
from zkwatch.cli import watch as watch_cli
from zkwatch.client.manager import ZookeeperClient
from zkwatch.config import ZkWatchConfig, ZookeeperClientOptions, load_config
from zkwatch.logging import bind_client_context, setup_logging
from zkwatch.session.kazoo_session import KazooSession

app = typer.Typer(
    name="zkwatch",
    help="zkwatch: durable ZooKeeper watches from the command line",
    no_args_is_help=True,
)

# Commands sit at the top level, not in sub-apps
app.command("get")(node_cli.get)
app.command("ls")(node_cli.ls)
app.command("exists")(node_cli.exists)
app.command("create")(node_cli.create)
app.command("set")(node_cli.set_data)
app.command("delete")(node_cli.delete)
app.command("watch")(watch_cli.watch)

console = Console(stderr=True)


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded zkwatch configuration
    """

    def __init__(self, config: ZkWatchConfig):
        self.config = config

    def create_client(self) -> ZookeeperClient:
        """Build an unstarted client from the configured options."""
        return ZookeeperClient(self.config.client, session_factory=KazooSession)


# Global context holder
_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: ZkWatchConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    server: Annotated[
        Optional[str],
        typer.Option("--server", "-s", help="Connection string, e.g. zk1:2181,zk2:2181"),
    ] = None,
    base_path: Annotated[
        Optional[str],
        typer.Option("--base-path", "-b", help="Prefix applied to every path"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        server: Overrides the configured connection string
        base_path: Overrides the configured base path
        verbose: Enable debug-level logging
    """
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    overrides: dict[str, object] = {}
    if server is not None:
        overrides["connection_string"] = server
    if base_path is not None:
        overrides["base_path"] = base_path
    if overrides:
        try:
            config.client = ZookeeperClientOptions.model_validate(
                {**config.client.model_dump(), **overrides}
            )
        except ValidationError as e:
            console.print(f"[red]Invalid option:[/red] {e}")
            raise typer.Exit(code=1)

    if verbose:
        config.logging = config.logging.model_copy(update={"level": "DEBUG"})

    # Node data goes to stdout, so logs go to stderr
    setup_logging(config.logging, stream=sys.stderr)
    bind_client_context(config.client.connection_string, config.client.base_path)

    initialize_context(config)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
