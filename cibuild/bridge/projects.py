"""Project lookup and build-number allocation.

Builds resolve their project from the repository URL and take the next
build number from it. ``ProjectLookup`` is the boundary the build core
depends on; ``StoreProjectDirectory`` keeps projects in a document store.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Protocol, runtime_checkable

from cibuild.bridge.document_store import DocumentStore
from cibuild.bridge.vcs_url import parse
from cibuild.models.project import Project

logger = logging.getLogger(__name__)


class ProjectNotFound(LookupError):
    """Raised when no project is registered for a repository URL."""

    def __init__(self, vcs_url: str) -> None:
        self.vcs_url = vcs_url
        super().__init__(f"No project registered for {vcs_url!r}")


@runtime_checkable
class ProjectLookup(Protocol):
    """Project resolution and per-project build numbering."""

    def get_project_by_vcs_url(self, vcs_url: str) -> Project | None: ...

    def next_build_number(self, project: Project) -> int:
        """Return a build number unique and increasing within *project*."""
        ...


def get_by_url_or_raise(lookup: ProjectLookup, vcs_url: str) -> Project:
    project = lookup.get_project_by_vcs_url(vcs_url)
    if project is None:
        raise ProjectNotFound(vcs_url)
    return project


class StoreProjectDirectory:
    """Projects kept in the ``projects`` collection of a document store.

    Build numbers are handed out under a lock, so they are unique and
    increasing across threads of this process. Cross-process allocation
    needs a store with an atomic increment.

    Parameters
    ----------
    store:
        The backing document store.
    collection:
        Collection name for project documents.
    """

    def __init__(self, store: DocumentStore, collection: str = "projects") -> None:
        self._store = store
        self._collection = collection
        self._lock = threading.Lock()

    def register(self, name: str, vcs_url: str, project_id: str | None = None) -> Project:
        """Register a project for *vcs_url*, returning the existing one if present."""
        existing = self.get_project_by_vcs_url(vcs_url)
        if existing is not None:
            return existing
        parse(vcs_url)
        project = Project(_id=project_id or uuid.uuid4().hex, name=name, vcs_url=vcs_url)
        self._store.insert(self._collection, project.model_dump(by_alias=True))
        logger.info("Registered project %s for %s", name, vcs_url)
        return project

    def get_project_by_vcs_url(self, vcs_url: str) -> Project | None:
        document = self._store.find_one(self._collection, {"vcs_url": vcs_url})
        return Project.model_validate(document) if document is not None else None

    def next_build_number(self, project: Project) -> int:
        with self._lock:
            document = self._store.find_one(self._collection, {"_id": project.project_id})
            if document is None:
                raise ProjectNotFound(project.vcs_url)
            build_num = int(document.get("next_build_num", 1))
            document["next_build_num"] = build_num + 1
            self._store.upsert(self._collection, {"_id": project.project_id}, document)
        return build_num
