"""``cibuild ssh INSTANCE_ID`` — print the ssh command for a build node."""

from __future__ import annotations

import shlex
from pathlib import Path

import typer
from rich.console import Console

from cibuild.bridge.document_store import SqliteDocumentStore
from cibuild.bridge.ssh import NodeAccessError
from cibuild.config import config
from cibuild.core.build_store import BuildStore, PreconditionError
from cibuild.core.node_access import ssh_command_for_instance

console = Console()


def ssh_cmd(
    instance_id: str = typer.Argument(..., help="Instance the build ran on."),
    store_path: str = typer.Option(
        str(config.store_path),
        "--store",
        "-s",
        help="Path to the SQLite document store.",
    ),
) -> None:
    """Print an ssh command reaching the node a build ran on.

    Assumes the instance was started by a build, the build is in the
    store, and the instance is still running.
    """
    store = BuildStore(SqliteDocumentStore(Path(store_path)), config.builds_collection)
    try:
        argv = ssh_command_for_instance(store, instance_id)
    except (PreconditionError, NodeAccessError) as exc:
        console.print(f"[bold red]Cannot reach instance:[/bold red] {exc}")
        raise typer.Exit(code=1)
    typer.echo(shlex.join(argv))
