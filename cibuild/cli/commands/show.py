"""``cibuild show BUILD_ID`` — display a stored build document."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cibuild.bridge.document_store import SqliteDocumentStore
from cibuild.config import config
from cibuild.core.build_store import BuildStore

console = Console()


def show_cmd(
    build_id: str = typer.Argument(..., help="The build ID to show."),
    store_path: str = typer.Option(
        str(config.store_path),
        "--store",
        "-s",
        help="Path to the SQLite document store.",
    ),
) -> None:
    """Show the stored mirror of a build."""
    if not Path(store_path).exists():
        console.print(f"[bold red]Store not found:[/bold red] {store_path}")
        raise typer.Exit(code=1)

    store = BuildStore(SqliteDocumentStore(Path(store_path)), config.builds_collection)
    document = store.find_one(build_id)
    if document is None:
        console.print(f"[bold red]No build with id[/bold red] {build_id}")
        raise typer.Exit(code=1)

    table = Table(title=f"Build {build_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key in sorted(document):
        value = document[key]
        text = value if isinstance(value, str) else json.dumps(value)
        table.add_row(key, text)
    console.print(table)
