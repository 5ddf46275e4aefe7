"""One-way projection of committed build snapshots into a document store.

The in-memory aggregate is the source of truth while the process lives;
the store holds a best-effort mirror. A failed write never rolls back the
in-memory commit. It is reported as ``PersistenceError`` so retry or
monitoring outside this module can react.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from cibuild.bridge.document_store import DocumentStore
from cibuild.core.snapshot import thaw

logger = logging.getLogger(__name__)

# Process-local artifacts: action definitions and result objects
DEFAULT_EXCLUDED_KEYS: tuple[str, ...] = ("actions", "action_results")


class PreconditionError(RuntimeError):
    """Raised when an operation is invoked on state missing a precondition."""


class PersistenceError(RuntimeError):
    """Raised when a store write fails after a valid in-memory commit.

    Attributes
    ----------
    build_id:
        Identity of the build whose mirror is now stale.
    build:
        The live aggregate, when the failure happened during creation.
    """

    def __init__(self, message: str, build_id: Any = None) -> None:
        super().__init__(message)
        self.build_id = build_id
        self.build: Any = None


class BuildStore:
    """Mirror of build snapshots in the ``builds`` collection.

    Parameters
    ----------
    store:
        The document store collaborator.
    collection:
        Collection holding build documents.
    excluded_keys:
        Keys stripped from every document before it is written.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = "builds",
        excluded_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
    ) -> None:
        self._store = store
        self._collection = collection
        self._excluded = frozenset(excluded_keys)

    def to_document(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        """Project *snapshot* into a plain, writable document."""
        return {k: thaw(v) for k, v in snapshot.items() if k not in self._excluded}

    def insert(self, snapshot: Mapping[str, Any]) -> None:
        """Write *snapshot* as a new document."""
        build_id = self._require_id(snapshot)
        document = self.to_document(snapshot)
        try:
            self._store.insert(self._collection, document)
        except Exception as exc:
            raise PersistenceError(
                f"Failed to insert build {build_id!r}: {exc}", build_id
            ) from exc
        logger.debug("Inserted build %s into %s", build_id, self._collection)

    def update(self, snapshot: Mapping[str, Any]) -> None:
        """Upsert *snapshot* by its ``_id``."""
        build_id = self._require_id(snapshot)
        document = self.to_document(snapshot)
        try:
            self._store.upsert(self._collection, {"_id": build_id}, document)
        except Exception as exc:
            raise PersistenceError(
                f"Failed to update build {build_id!r}: {exc}", build_id
            ) from exc
        logger.debug("Updated build %s in %s", build_id, self._collection)

    def find_one(self, build_id: Any) -> dict[str, Any] | None:
        return self._store.find_one(self._collection, {"_id": build_id})

    def find_by_instance_id(self, instance_id: str) -> dict[str, Any] | None:
        """Return the stored build whose node ran on *instance_id*."""
        return self._store.find_one(self._collection, {"instance_ids": instance_id})

    @staticmethod
    def _require_id(snapshot: Mapping[str, Any]) -> Any:
        build_id = snapshot.get("_id")
        if build_id is None:
            raise PreconditionError("build must have an _id before it can be persisted")
        return build_id
