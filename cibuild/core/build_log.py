"""Per-build log routing.

While a build is active, ``build_log`` and ``build_log_error`` write to
that build's logger, named ``"<namespace>.<project>-<build_num>"``. The
active logger *name* lives in a context variable, so every thread or
asyncio task has its own binding and nested scopes restore the outer
one on exit. Outside any scope the calls do nothing.

Logging here never raises: a build must not fail because a line could
not be logged.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from cibuild.config import config

logger = logging.getLogger(__name__)

_log_name_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "cibuild.build_log.current", default=None
)


def log_name(project_name: str, build_num: int, namespace: str | None = None) -> str:
    """Return the logger name for one build."""
    prefix = namespace if namespace is not None else config.log_namespace
    return f"{prefix}.{project_name}-{build_num}"


def current_log_name() -> str | None:
    return _log_name_var.get()


@contextmanager
def build_log_context(name: str) -> Iterator[str]:
    """Bind *name* as the active build logger for the enclosed block."""
    token = _log_name_var.set(name)
    try:
        yield name
    finally:
        _log_name_var.reset(token)


def _emit(level: int, message: str, args: tuple[Any, ...]) -> None:
    name = _log_name_var.get()
    if name is None:
        return
    try:
        text = message % args if args else message
        logging.getLogger(name).log(level, text)
    except Exception:
        logger.debug("Dropped build log line for %s", name, exc_info=True)


def build_log(message: str, *args: Any) -> None:
    """Log at INFO to the active build, formatting ``message % args``."""
    _emit(logging.INFO, message, args)


def build_log_error(message: str, *args: Any) -> None:
    """Log at ERROR to the active build, formatting ``message % args``."""
    _emit(logging.ERROR, message, args)


def build_log_line(line: str, level: int = logging.INFO) -> None:
    """Log a raw line to the active build without %-formatting.

    Remote command output may contain ``%`` characters and carries no
    arguments, so it is passed through verbatim.
    """
    name = _log_name_var.get()
    if name is None:
        return
    try:
        logging.getLogger(name).log(level, "%s", line)
    except Exception:
        logger.debug("Dropped build output line for %s", name, exc_info=True)
