"""Document store backends for build and project records.

Two backends share the ``DocumentStore`` protocol:

1. **SQLite** (``SqliteDocumentStore``): persistent, one JSON body per
   document, WAL journal mode for concurrent readers.
2. **In-memory** (``MemoryDocumentStore``): volatile, suitable for tests
   and single-process use.

Documents are keyed by ``_id``. Filters match on top-level keys by
equality; a list-valued document field also matches a scalar filter
value it contains, so ``{"instance_ids": "i-123"}`` finds the document
whose ``instance_ids`` list holds ``"i-123"``.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic_core import to_jsonable_python

logger = logging.getLogger(__name__)


class DuplicateDocumentError(RuntimeError):
    """Raised when inserting a document whose ``_id`` already exists."""


@runtime_checkable
class DocumentStore(Protocol):
    """Minimal document-store surface the build backend depends on."""

    def insert(self, collection: str, document: dict[str, Any]) -> None: ...

    def upsert(
        self, collection: str, filter: dict[str, Any], document: dict[str, Any]
    ) -> None: ...

    def find_one(
        self, collection: str, filter: dict[str, Any]
    ) -> dict[str, Any] | None: ...


def matches(document: dict[str, Any], filter: dict[str, Any]) -> bool:
    """Return ``True`` if *document* satisfies every key of *filter*."""
    for key, expected in filter.items():
        if key not in document:
            return False
        actual = document[key]
        if actual == expected:
            continue
        if isinstance(actual, list) and not isinstance(expected, list) and expected in actual:
            continue
        return False
    return True


def _require_id(document: dict[str, Any]) -> Any:
    if "_id" not in document:
        raise ValueError("document must carry an _id")
    return document["_id"]


class MemoryDocumentStore:
    """Thread-safe, volatile document store. Stores and returns deep copies."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[Any, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def insert(self, collection: str, document: dict[str, Any]) -> None:
        doc_id = _require_id(document)
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if doc_id in docs:
                raise DuplicateDocumentError(f"{collection}: duplicate _id {doc_id!r}")
            docs[doc_id] = copy.deepcopy(document)

    def upsert(
        self, collection: str, filter: dict[str, Any], document: dict[str, Any]
    ) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            for doc_id, existing in docs.items():
                if matches(existing, filter):
                    docs[doc_id] = copy.deepcopy(document)
                    return
            docs[_require_id(document)] = copy.deepcopy(document)

    def find_one(
        self, collection: str, filter: dict[str, Any]
    ) -> dict[str, Any] | None:
        with self._lock:
            for document in self._collections.get(collection, {}).values():
                if matches(document, filter):
                    return copy.deepcopy(document)
        return None

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))


_CREATE_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id     TEXT NOT NULL,
    body       TEXT NOT NULL,
    PRIMARY KEY (collection, doc_id)
);
"""


class SqliteDocumentStore:
    """Persistent document store backed by a single SQLite table.

    Bodies are JSON; values pydantic can serialize (datetimes, enums,
    models) are converted on write and come back in their JSON form.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        with self._connect() as conn:
            conn.execute(_CREATE_DOCUMENTS)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @staticmethod
    def _encode(document: dict[str, Any]) -> tuple[str, str]:
        doc_id = _require_id(document)
        body = json.dumps(to_jsonable_python(document), sort_keys=True)
        return json.dumps(to_jsonable_python(doc_id)), body

    def insert(self, collection: str, document: dict[str, Any]) -> None:
        doc_id, body = self._encode(document)
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    "INSERT INTO documents (collection, doc_id, body) VALUES (?, ?, ?)",
                    (collection, doc_id, body),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateDocumentError(
                f"{collection}: duplicate _id {document['_id']!r}"
            ) from exc

    def upsert(
        self, collection: str, filter: dict[str, Any], document: dict[str, Any]
    ) -> None:
        doc_id, body = self._encode(document)
        with self._lock, self._connect() as conn:
            existing = self._find_row(conn, collection, filter)
            if existing is not None:
                conn.execute(
                    "UPDATE documents SET doc_id = ?, body = ? WHERE collection = ? AND doc_id = ?",
                    (doc_id, body, collection, existing[0]),
                )
            else:
                conn.execute(
                    "INSERT INTO documents (collection, doc_id, body) VALUES (?, ?, ?)",
                    (collection, doc_id, body),
                )
            conn.commit()

    def find_one(
        self, collection: str, filter: dict[str, Any]
    ) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = self._find_row(conn, collection, filter)
        return row[1] if row is not None else None

    def count(self, collection: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
            ).fetchone()
        return row[0] if row else 0

    @staticmethod
    def _find_row(
        conn: sqlite3.Connection, collection: str, filter: dict[str, Any]
    ) -> tuple[str, dict[str, Any]] | None:
        filter = to_jsonable_python(filter)
        if set(filter) == {"_id"}:
            rows = conn.execute(
                "SELECT doc_id, body FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, json.dumps(filter["_id"])),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT doc_id, body FROM documents WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
        for doc_id, body in rows:
            document = json.loads(body)
            if matches(document, filter):
                return doc_id, document
        return None
