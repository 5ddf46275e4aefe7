"""``cibuild create VCS_URL`` — create and persist a new build.

Resolves the project from the repository URL, allocates the next build
number, validates the build and writes it to the document store.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from cibuild.bridge.document_store import SqliteDocumentStore
from cibuild.bridge.projects import ProjectNotFound, StoreProjectDirectory
from cibuild.config import config
from cibuild.core.build import create_build
from cibuild.core.build_store import BuildStore, PersistenceError
from cibuild.core.validation import ValidationError
from cibuild.models.build import BuildType

console = Console()


def create_cmd(
    vcs_url: str = typer.Argument(..., help="Repository URL of the project."),
    revision: str = typer.Option(
        None,
        "--revision",
        "-r",
        help="Commit that triggered the build.",
    ),
    build_type: BuildType = typer.Option(
        BuildType.NORMAL,
        "--type",
        "-t",
        help="Build type; deploy builds require --revision.",
    ),
    store_path: str = typer.Option(
        str(config.store_path),
        "--store",
        "-s",
        help="Path to the SQLite document store.",
    ),
) -> None:
    """Create a new build for a registered project."""
    documents = SqliteDocumentStore(Path(store_path))
    projects = StoreProjectDirectory(documents, config.projects_collection)
    store = BuildStore(
        documents, config.builds_collection, config.persist_excluded_keys
    )

    try:
        build = create_build(
            {"vcs_url": vcs_url, "vcs_revision": revision, "type": build_type},
            projects=projects,
            store=store,
        )
    except ProjectNotFound as exc:
        console.print(f"[bold red]Unknown project:[/bold red] {exc.vcs_url}")
        console.print("[dim]Register it first with: cibuild register-project[/dim]")
        raise typer.Exit(code=1)
    except ValidationError as exc:
        console.print("[bold red]Invalid build:[/bold red]")
        for message in exc.errors:
            console.print(f"  - {message}")
        raise typer.Exit(code=1)
    except PersistenceError as exc:
        console.print(f"[bold red]Build created but not stored:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Build created![/bold green]",
                "",
                f"[bold]Build ID:[/bold]     {build.id}",
                f"[bold]Build:[/bold]        {build.build_name()}",
                f"[bold]Checkout dir:[/bold] {build.checkout_dir()}",
                f"[bold]Revision:[/bold]     {revision or '-'}",
                f"[bold]Type:[/bold]         {build_type.value}",
            ]),
            title="[bold]cibuild[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()

    # Print the build id plainly for scripting
    console.print(f"[bold]{build.id}[/bold]")
