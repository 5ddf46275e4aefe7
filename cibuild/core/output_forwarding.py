"""Forward remote command output into the active build log.

The remote executor knows nothing about builds. Installing forwarding
registers a hook on each of its output streams: stdout lines go to the
active build's logger at INFO, stderr lines at ERROR, and the executor's
own handler still runs afterwards. Installation is keyed, so installing
twice never forwards a line twice.
"""

from __future__ import annotations

import logging
import threading

from cibuild.bridge import ssh
from cibuild.bridge.ssh import STDERR, STDOUT, LineHandler, OutputHook, OutputHooks
from cibuild.core.build_log import build_log_line

logger = logging.getLogger(__name__)

HOOK_KEY = "cibuild.build_log"

_install_lock = threading.Lock()


def forward_to_build_log(level: int) -> OutputHook:
    def _hook(handler: LineHandler, line: str) -> None:
        build_log_line(line, level)
        handler(line)

    return _hook


# Module-level so a re-install registers the same callables
forward_out = forward_to_build_log(logging.INFO)
forward_err = forward_to_build_log(logging.ERROR)


def install_output_forwarding(hooks: OutputHooks | None = None) -> bool:
    """Hook build-log forwarding into the executor's output handlers.

    Returns ``True`` on first installation, ``False`` if already installed.
    """
    target = hooks if hooks is not None else ssh.hooks
    with _install_lock:
        added_out = target.add_hook(STDOUT, HOOK_KEY, forward_out)
        added_err = target.add_hook(STDERR, HOOK_KEY, forward_err)
    if added_out or added_err:
        logger.debug("Installed build-log output forwarding")
    return added_out or added_err


def uninstall_output_forwarding(hooks: OutputHooks | None = None) -> None:
    target = hooks if hooks is not None else ssh.hooks
    with _install_lock:
        target.remove_hook(STDOUT, HOOK_KEY)
        target.remove_hook(STDERR, HOOK_KEY)
