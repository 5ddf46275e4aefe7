"""The Build aggregate — one build's canonical, validated, mirrored state.

Every change goes through ``mutate``: the transform runs on a private
copy of the current snapshot, the candidate is validated, and only a
valid candidate replaces the snapshot. A rejected candidate leaves the
aggregate untouched. Commits are serialized by a per-aggregate lock;
readers always see a complete, frozen snapshot.

Store writes happen after the lock is released. A failed write raises
``PersistenceError`` but the in-memory commit stands.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Any

from cibuild.bridge.projects import ProjectLookup, get_by_url_or_raise
from cibuild.bridge.vcs_url import parse
from cibuild.core.build_log import build_log_context, log_name
from cibuild.core.build_store import BuildStore, PersistenceError
from cibuild.core.rules import build_engine
from cibuild.core.snapshot import freeze, thaw
from cibuild.core.validation import ValidationEngine, ValidationError
from cibuild.models.build import ActionResult
from cibuild.models.project import Project

logger = logging.getLogger(__name__)

BUILD_DEFAULTS: dict[str, Any] = {
    "continue": True,
    "action_results": [],
}

# Assigned once at creation
IMMUTABLE_KEYS: tuple[str, ...] = ("_id", "_project_id", "build_num")

Snapshot = Mapping[str, Any]
Transform = Callable[[dict[str, Any]], Mapping[str, Any]]


def build_name(project_name: str, build_num: int) -> str:
    return f"{project_name}-{build_num}"


def checkout_dir(project_name: str, build_num: int) -> str:
    """Directory name the build is checked out into on the build box."""
    return build_name(project_name, build_num).replace(" ", "-")


class BuildAggregate:
    """Transactional holder of one Build record.

    Parameters
    ----------
    state:
        Initial build record. Must pass the engine's rules.
    engine:
        Validation engine guarding every commit. Defaults to the build
        rule set.
    store:
        Optional mirror. When set, every commit is pushed to it.
    """

    def __init__(
        self,
        state: Mapping[str, Any],
        *,
        engine: ValidationEngine | None = None,
        store: BuildStore | None = None,
    ) -> None:
        self._engine = engine or build_engine()
        candidate = thaw(state)
        self._engine.enforce(candidate)
        self._snapshot: Snapshot = freeze(candidate)
        self._store = store
        self._lock = threading.Lock()
        # Store writes are ordered separately from commits
        self._persist_lock = threading.Lock()
        self._version = 0
        self._persisted_version = -1

    # ------------------------------------------------------------------
    # Core: read / mutate
    # ------------------------------------------------------------------

    def read(self) -> Snapshot:
        """Return the current frozen snapshot."""
        return self._snapshot

    def mutate(self, transform: Transform) -> Snapshot:
        """Apply *transform* and commit the result if it validates.

        *transform* receives a mutable deep copy of the current state and
        returns the candidate state (it may modify and return its argument).

        Raises
        ------
        ValidationError
            If the candidate breaks a rule or changes an identity key. The
            aggregate keeps its previous state.
        PersistenceError
            If the commit succeeded but the store write failed.
        """
        with self._lock:
            current = self._snapshot
            candidate = transform(thaw(current))
            errors = self._engine.validate(candidate)
            if not errors:
                errors = [
                    f"{key} is immutable"
                    for key in IMMUTABLE_KEYS
                    if candidate.get(key) != current.get(key)
                ]
            if errors:
                raise ValidationError(errors)
            snapshot = freeze(candidate)
            self._snapshot = snapshot
            self._version += 1
        self.sync()
        return snapshot

    def sync(self) -> None:
        """Push the latest snapshot to the store, if one is attached.

        Concurrent callers are serialized; a snapshot older than the last
        one written is never written over it.
        """
        if self._store is None:
            return
        with self._persist_lock:
            with self._lock:
                snapshot, version = self._snapshot, self._version
            if version <= self._persisted_version:
                return
            self._store.update(snapshot)
            self._persisted_version = version

    # ------------------------------------------------------------------
    # Convenience transitions (all through mutate)
    # ------------------------------------------------------------------

    def set(self, **fields: Any) -> Snapshot:
        """Commit *fields* merged over the current state."""

        def _merge(b: dict[str, Any]) -> dict[str, Any]:
            b.update(fields)
            return b

        return self.mutate(_merge)

    def add_action_result(self, result: ActionResult) -> Snapshot:
        """Record an action outcome. A failed action stops later steps."""

        def _append(b: dict[str, Any]) -> dict[str, Any]:
            b["action_results"] = list(b.get("action_results", [])) + [result]
            if not result.success:
                b["continue"] = False
            return b

        return self.mutate(_append)

    def finish(self, stop_time: datetime | None = None) -> Snapshot:
        return self.set(stop_time=stop_time or datetime.now(timezone.utc))

    def extend_group_with_revision(self) -> Snapshot:
        """Set the execution group name to ``<project>-<revision>``, lowercased."""

        def _extend(b: dict[str, Any]) -> dict[str, Any]:
            project = parse(b.get("vcs_url")).project
            group = dict(b.get("group") or {})
            group["group_name"] = f"{project}-{b.get('vcs_revision')}".lower()
            b["group"] = group
            return b

        return self.mutate(_extend)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def id(self) -> Any:
        return self._snapshot["_id"]

    @property
    def build_num(self) -> int:
        return self._snapshot["build_num"]

    def is_successful(self) -> bool:
        """True once the build has stopped without a failed action."""
        b = self._snapshot
        return bool(b.get("stop_time")) and bool(b.get("continue"))

    def project_name(self) -> str:
        """Project name parsed from ``vcs_url``; raises ``ParseError`` if unparseable."""
        return parse(self._snapshot.get("vcs_url")).project

    def build_name(self) -> str:
        return build_name(self.project_name(), self.build_num)

    def checkout_dir(self) -> str:
        return checkout_dir(self.project_name(), self.build_num)

    def log_name(self) -> str:
        return log_name(self.project_name(), self.build_num)

    def log_context(self) -> AbstractContextManager[str]:
        """Route ``build_log`` output to this build for the enclosed block."""
        return build_log_context(self.log_name())

    def get_project(self, projects: ProjectLookup) -> Project:
        return get_by_url_or_raise(projects, self._snapshot["vcs_url"])

    def __repr__(self) -> str:
        b = self._snapshot
        return f"BuildAggregate(_id={b.get('_id')!r}, build_num={b.get('build_num')!r})"


def create_build(
    args: Mapping[str, Any] | None = None,
    *,
    projects: ProjectLookup,
    store: BuildStore | None = None,
    engine: ValidationEngine | None = None,
    **fields: Any,
) -> BuildAggregate:
    """Create a build, validate it, and mirror it to the store.

    Recognized inputs: ``vcs_url`` (required), ``vcs_revision``,
    ``actions``, ``node``, ``continue``, ``type`` and an optional
    pre-assigned ``_id``. Other keys pass through unchanged.

    Raises
    ------
    ProjectNotFound
        If no project is registered for ``vcs_url``.
    ValidationError
        If the assembled build breaks a rule.
    PersistenceError
        If the initial store write fails. The live aggregate is attached
        as ``exc.build``.
    """
    args = {**(args or {}), **fields}
    vcs_url = args.get("vcs_url")
    if not vcs_url:
        raise ValidationError(["vcs_url is required"])

    project = get_by_url_or_raise(projects, vcs_url)
    build_num = projects.next_build_number(project)
    state = {
        **BUILD_DEFAULTS,
        **args,
        "_id": args.get("_id") or uuid.uuid4().hex,
        "build_num": build_num,
        "_project_id": project.project_id,
    }
    build = BuildAggregate(state, engine=engine, store=store)
    logger.info("Created build %s #%d for %s", build.id, build_num, project.name)

    try:
        build.sync()
    except PersistenceError as exc:
        exc.build = build
        raise
    return build
