"""cibuild CLI — Typer-based command-line interface.

Provides the ``cibuild`` command with subcommands for registering
projects, creating builds, inspecting stored builds and reaching build
nodes over SSH.

All output uses Rich for formatted terminal display.
"""
