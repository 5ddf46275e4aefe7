"""Reach the machine a stored build ran on."""

from __future__ import annotations

from cibuild.bridge.ssh import ssh_command
from cibuild.core.build_store import BuildStore, PreconditionError


def ssh_command_for_instance(store: BuildStore, instance_id: str) -> list[str]:
    """Return the ssh argv for the node of the build that ran on *instance_id*.

    Assumes the build is in the store and its instance is still running.
    """
    build = store.find_by_instance_id(instance_id)
    if build is None:
        raise PreconditionError(f"No stored build ran on instance {instance_id!r}")
    return ssh_command(build)
