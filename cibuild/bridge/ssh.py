"""Remote command execution boundary and its output extension points.

Every line a command writes goes through ``handle_out`` (stdout) or
``handle_error`` (stderr). Both dispatch through ``hooks``, a registry
other modules use to augment output handling without touching the call
sites here. A hook is called as ``hook(handler, line)`` and must call
``handler(line)`` to continue the chain; the innermost handler is the
module default.

Hooks are registered under a key. Registering the same key twice
replaces the earlier hook, so installation is idempotent.
"""

from __future__ import annotations

import contextvars
import functools
import logging
import os
import subprocess
import tempfile
import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from cibuild.models.build import NodeInfo

logger = logging.getLogger(__name__)

LineHandler = Callable[[str], None]
OutputHook = Callable[[LineHandler, str], None]

STDOUT = "out"
STDERR = "err"


class OutputHooks:
    """Keyed, ordered hook chains for the stdout and stderr handlers."""

    def __init__(self) -> None:
        self._hooks: dict[str, dict[str, OutputHook]] = {STDOUT: {}, STDERR: {}}
        self._lock = threading.Lock()

    def add_hook(self, stream: str, key: str, hook: OutputHook) -> bool:
        """Register *hook* on *stream* under *key*.

        Returns ``True`` if the key was new, ``False`` if it replaced an
        existing hook.
        """
        with self._lock:
            chain = self._chain(stream)
            is_new = key not in chain
            chain[key] = hook
        return is_new

    def remove_hook(self, stream: str, key: str) -> bool:
        with self._lock:
            return self._chain(stream).pop(key, None) is not None

    def hooks(self, stream: str) -> list[OutputHook]:
        with self._lock:
            return list(self._chain(stream).values())

    def dispatch(self, stream: str, line: str, base: LineHandler) -> None:
        """Run *line* through the hooks of *stream*, ending at *base*."""
        handler = base
        for hook in reversed(self.hooks(stream)):
            handler = functools.partial(hook, handler)
        handler(line)

    def _chain(self, stream: str) -> dict[str, OutputHook]:
        try:
            return self._hooks[stream]
        except KeyError:
            raise ValueError(f"Unknown output stream {stream!r}") from None


hooks = OutputHooks()


def _default_out(line: str) -> None:
    logger.info("%s", line)


def _default_err(line: str) -> None:
    logger.warning("%s", line)


def handle_out(line: str) -> None:
    hooks.dispatch(STDOUT, line, _default_out)


def handle_error(line: str) -> None:
    hooks.dispatch(STDERR, line, _default_err)


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


class CommandResult(BaseModel):
    """Exit status and captured output of one command."""

    model_config = ConfigDict(frozen=True)

    argv: list[str]
    exit_code: int
    out: list[str] = []
    err: list[str] = []

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def _pump(stream: Any, handler: LineHandler, sink: list[str]) -> None:
    for raw in iter(stream.readline, ""):
        line = raw.rstrip("\n")
        sink.append(line)
        handler(line)


def run_command(
    argv: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run *argv*, streaming each output line through the output handlers.

    If a handler raises on either stream the process is killed and reaped,
    and the handler's exception propagates.
    """
    logger.debug("Running %s", " ".join(argv))
    proc = subprocess.Popen(
        list(argv),
        cwd=cwd,
        env=dict(env) if env is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    out: list[str] = []
    err: list[str] = []
    err_failures: list[BaseException] = []

    def _pump_err() -> None:
        try:
            _pump(proc.stderr, handle_error, err)
        except BaseException as exc:
            err_failures.append(exc)
            proc.kill()

    # Carry the caller's context (active build log) into the stderr reader
    ctx = contextvars.copy_context()
    err_thread = threading.Thread(target=ctx.run, args=(_pump_err,))
    err_thread.start()
    try:
        _pump(proc.stdout, handle_out, out)
    except BaseException:
        proc.kill()
        raise
    finally:
        err_thread.join()
        exit_code = proc.wait()
        proc.stdout.close()
        proc.stderr.close()
    if err_failures:
        raise err_failures[0]
    return CommandResult(argv=list(argv), exit_code=exit_code, out=out, err=err)


# ---------------------------------------------------------------------------
# SSH access to build nodes
# ---------------------------------------------------------------------------


class NodeAccessError(RuntimeError):
    """Raised when a build carries no usable node address or credentials."""


def write_private_key(private_key: str) -> str:
    """Write *private_key* to an owner-read-only temp file and return its path.

    The caller owns the file and is responsible for removing it.
    """
    fd, path = tempfile.mkstemp(prefix="ssh")
    with os.fdopen(fd, "w") as fh:
        fh.write(private_key)
    os.chmod(path, 0o400)
    return path


def ssh_argv(
    node: NodeInfo, command: Sequence[str] = (), key_path: str | None = None
) -> list[str]:
    """Return the ``ssh`` argv reaching *node*, optionally running *command*.

    When the node carries a private key and no *key_path* is given, the
    key is written to a new temp file (see ``write_private_key``) which
    must outlive the returned command.
    """
    if not node.ip_addr:
        raise NodeAccessError("node has no ip_addr")
    argv = ["ssh"]
    if node.private_key:
        argv += ["-i", key_path or write_private_key(node.private_key)]
    argv.append(f"{node.username}@{node.ip_addr}")
    argv.extend(command)
    return argv


def ssh_command(build: Mapping[str, Any]) -> list[str]:
    """Return the ssh argv for the node recorded on a stored *build*.

    The key file named in the argv is left in place for whoever runs it.
    """
    node = build.get("node")
    if not node:
        raise NodeAccessError(f"build {build.get('_id')!r} has no node info")
    return ssh_argv(NodeInfo.model_validate(node))


def run_remote(node: NodeInfo, command: Sequence[str]) -> CommandResult:
    """Run *command* on *node* over ssh, removing the key file afterwards."""
    if not node.ip_addr:
        raise NodeAccessError("node has no ip_addr")
    key_path = write_private_key(node.private_key) if node.private_key else None
    try:
        return run_command(ssh_argv(node, command, key_path=key_path))
    finally:
        if key_path is not None:
            os.remove(key_path)
