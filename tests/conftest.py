"""Shared test fixtures for cibuild."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from cibuild.bridge.document_store import MemoryDocumentStore, SqliteDocumentStore
from cibuild.bridge.projects import StoreProjectDirectory
from cibuild.core import output_forwarding
from cibuild.core.build import BuildAggregate, create_build
from cibuild.core.build_store import BuildStore
from cibuild.models.project import Project

WIDGET_URL = "https://example.com/acme/widget"


@pytest.fixture
def documents() -> MemoryDocumentStore:
    """Provide a fresh in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def sqlite_documents(tmp_path: Path) -> SqliteDocumentStore:
    """Provide a SQLite document store in a temp directory."""
    return SqliteDocumentStore(tmp_path / "store.db")


@pytest.fixture
def build_store(documents: MemoryDocumentStore) -> BuildStore:
    return BuildStore(documents)


@pytest.fixture
def projects(documents: MemoryDocumentStore) -> StoreProjectDirectory:
    return StoreProjectDirectory(documents)


@pytest.fixture
def project(projects: StoreProjectDirectory) -> Project:
    """A registered project for WIDGET_URL with id P1."""
    return projects.register("widget", WIDGET_URL, project_id="P1")


@pytest.fixture
def valid_state() -> dict[str, Any]:
    """A minimal build record that passes every default rule."""
    return {
        "_id": "b-1",
        "_project_id": "P1",
        "build_num": 1,
        "vcs_url": WIDGET_URL,
        "vcs_revision": "abc123",
        "continue": True,
        "action_results": [],
    }


@pytest.fixture
def make_build(
    projects: StoreProjectDirectory, project: Project, build_store: BuildStore
) -> Callable[..., BuildAggregate]:
    """Factory fixture: create a persisted build for the widget project."""

    def _factory(**overrides: Any) -> BuildAggregate:
        args: dict[str, Any] = {"vcs_url": WIDGET_URL, "vcs_revision": "abc123"}
        args.update(overrides)
        return create_build(args, projects=projects, store=build_store)

    return _factory


@pytest.fixture(autouse=True)
def _no_output_forwarding():
    """Keep the process-wide executor hooks clean between tests."""
    output_forwarding.uninstall_output_forwarding()
    yield
    output_forwarding.uninstall_output_forwarding()
