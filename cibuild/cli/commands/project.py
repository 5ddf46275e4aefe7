"""``cibuild register-project NAME VCS_URL`` — register a project."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from cibuild.bridge.document_store import SqliteDocumentStore
from cibuild.bridge.projects import StoreProjectDirectory
from cibuild.bridge.vcs_url import ParseError
from cibuild.config import config

console = Console()


def register_project_cmd(
    name: str = typer.Argument(..., help="Project name."),
    vcs_url: str = typer.Argument(..., help="Repository URL of the project."),
    store_path: str = typer.Option(
        str(config.store_path),
        "--store",
        "-s",
        help="Path to the SQLite document store.",
    ),
) -> None:
    """Register a project so builds can be created for its repository."""
    directory = StoreProjectDirectory(
        SqliteDocumentStore(Path(store_path)), config.projects_collection
    )
    try:
        project = directory.register(name, vcs_url)
    except ParseError as exc:
        console.print(f"[bold red]Invalid repository URL:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        f"[bold green]Project[/bold green] {project.name} "
        f"[dim]({project.project_id})[/dim] -> {project.vcs_url}"
    )
