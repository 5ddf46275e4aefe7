"""Main Typer application — imports and registers all CLI commands.

Entry point: ``cibuild`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import logging

import typer

from cibuild.cli.commands.create import create_cmd
from cibuild.cli.commands.project import register_project_cmd
from cibuild.cli.commands.show import show_cmd
from cibuild.cli.commands.ssh_cmd import ssh_cmd
from cibuild.config import config

app = typer.Typer(
    name="cibuild",
    help="cibuild: validated, mirrored Build records for a CI backend.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback() -> None:
    """Configure logging from CIBUILD_LOG_LEVEL (CIBUILD_DEBUG forces DEBUG)."""
    logging.basicConfig(
        level=getattr(logging, config.effective_log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
app.command(name="register-project", help="Register a project.")(register_project_cmd)
app.command(name="create", help="Create a new build.")(create_cmd)
app.command(name="show", help="Show a stored build.")(show_cmd)
app.command(name="ssh", help="Print the ssh command for a build node.")(ssh_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
