"""Tests for the Build aggregate — creation, validated commits, derived names."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from pydantic import ValidationError as PydanticValidationError

from cibuild.bridge.document_store import MemoryDocumentStore
from cibuild.bridge.projects import ProjectNotFound
from cibuild.bridge.vcs_url import ParseError
from cibuild.core.build import BuildAggregate, build_name, checkout_dir, create_build
from cibuild.core.build_store import BuildStore, PersistenceError
from cibuild.core.validation import ValidationError
from cibuild.models.build import ActionResult
from cibuild.models.project import Project

WIDGET_URL = "https://example.com/acme/widget"


class FixedProjects:
    """Project lookup returning one project and a fixed build number."""

    def __init__(self, project: Project | None, build_num: int) -> None:
        self.project = project
        self.build_num = build_num

    def get_project_by_vcs_url(self, vcs_url: str) -> Project | None:
        return self.project

    def next_build_number(self, project: Project) -> int:
        return self.build_num


class FailingStore:
    def insert(self, collection, document):
        raise ConnectionError("store down")

    def upsert(self, collection, filter, document):
        raise ConnectionError("store down")

    def find_one(self, collection, filter):
        return None


class TestCreate:
    def test_create_scenario(self, build_store: BuildStore):
        projects = FixedProjects(
            Project(_id="P1", name="widget", vcs_url=WIDGET_URL), build_num=7
        )
        build = create_build(
            {"vcs_url": WIDGET_URL, "vcs_revision": "abc123"},
            projects=projects,
            store=build_store,
        )
        snapshot = build.read()
        assert snapshot["build_num"] == 7
        assert snapshot["_project_id"] == "P1"
        assert snapshot["continue"] is True
        assert snapshot["action_results"] == ()
        assert snapshot["_id"]

        stored = build_store.find_one(snapshot["_id"])
        assert stored is not None
        assert stored["build_num"] == 7
        assert stored["_project_id"] == "P1"
        assert stored["continue"] is True

    def test_build_numbers_increase(self, make_build: Callable[..., BuildAggregate]):
        nums = [make_build().build_num for _ in range(3)]
        assert nums == [1, 2, 3]

    def test_preassigned_id_kept(self, make_build: Callable[..., BuildAggregate]):
        build = make_build(_id="custom-id")
        assert build.id == "custom-id"

    def test_caller_cannot_override_assigned_fields(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build(build_num=99, _project_id="other")
        assert build.build_num == 1
        assert build.read()["_project_id"] == "P1"

    def test_extra_keys_pass_through(self, make_build: Callable[..., BuildAggregate]):
        build = make_build(lb_name="web-lb")
        assert build.read()["lb_name"] == "web-lb"

    def test_continue_can_be_supplied(self, make_build: Callable[..., BuildAggregate]):
        build = make_build(**{"continue": False})
        assert build.read()["continue"] is False

    def test_unknown_project(self, build_store: BuildStore):
        with pytest.raises(ProjectNotFound):
            create_build(
                {"vcs_url": "https://example.com/acme/nothing", "vcs_revision": "x"},
                projects=FixedProjects(None, 1),
                store=build_store,
            )

    def test_missing_vcs_url(self, projects, build_store: BuildStore):
        with pytest.raises(ValidationError):
            create_build({"vcs_revision": "x"}, projects=projects, store=build_store)

    def test_missing_revision_key_is_construction_error(
        self, project: Project, projects, build_store: BuildStore,
        documents: MemoryDocumentStore,
    ):
        with pytest.raises(ValidationError) as exc_info:
            create_build({"vcs_url": WIDGET_URL}, projects=projects, store=build_store)
        assert "vcs_revision" in exc_info.value.errors[0]
        assert documents.count("builds") == 0

    def test_deploy_without_revision_rejected(
        self, make_build: Callable[..., BuildAggregate]
    ):
        with pytest.raises(ValidationError) as exc_info:
            make_build(type="deploy", vcs_revision=None)
        assert "revision is required" in str(exc_info.value)

    def test_persistence_failure_keeps_build(self):
        projects = FixedProjects(
            Project(_id="P1", name="widget", vcs_url=WIDGET_URL), build_num=3
        )
        with pytest.raises(PersistenceError) as exc_info:
            create_build(
                {"vcs_url": WIDGET_URL, "vcs_revision": "abc"},
                projects=projects,
                store=BuildStore(FailingStore()),
            )
        build = exc_info.value.build
        assert isinstance(build, BuildAggregate)
        assert build.build_num == 3
        assert exc_info.value.build_id == build.id
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestMutate:
    def test_valid_mutation_commits_and_persists(
        self, make_build: Callable[..., BuildAggregate], build_store: BuildStore
    ):
        build = make_build()
        build.set(status="running")
        assert build.read()["status"] == "running"
        assert build_store.find_one(build.id)["status"] == "running"

    def test_negative_build_num_rejected(self, make_build: Callable[..., BuildAggregate]):
        build = make_build()
        original = build.read()

        def _break(b: dict[str, Any]) -> dict[str, Any]:
            b["build_num"] = -1
            return b

        with pytest.raises(ValidationError):
            build.mutate(_break)
        assert build.read() is original
        assert build.read()["build_num"] == 1

    @pytest.mark.parametrize("key", ["_id", "_project_id", "vcs_url", "vcs_revision"])
    def test_removing_required_key_rejected(
        self, make_build: Callable[..., BuildAggregate], key: str
    ):
        build = make_build()
        before = build.read()

        def _drop(b: dict[str, Any]) -> dict[str, Any]:
            del b[key]
            return b

        with pytest.raises(ValidationError):
            build.mutate(_drop)
        assert build.read() is before

    def test_identity_is_immutable(self, make_build: Callable[..., BuildAggregate]):
        build = make_build()
        with pytest.raises(ValidationError) as exc_info:
            build.set(build_num=5)
        assert exc_info.value.errors == ["build_num is immutable"]
        assert build.build_num == 1

    def test_transform_returning_none_rejected(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        before = build.read()
        with pytest.raises(ValidationError):
            build.mutate(lambda b: None)
        assert build.read() is before

    def test_transform_cannot_touch_committed_state(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        before = build.read()

        def _scribble_then_fail(b: dict[str, Any]) -> dict[str, Any]:
            b["action_results"].append("junk")
            b["build_num"] = 0
            return b

        with pytest.raises(ValidationError):
            build.mutate(_scribble_then_fail)
        assert build.read()["action_results"] == ()
        assert before["action_results"] == ()

    def test_rejected_transform_cannot_touch_action_results(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        build.add_action_result(ActionResult(name="checkout", success=True, out=["ok"]))

        def _scribble_then_fail(b: dict[str, Any]) -> dict[str, Any]:
            result = b["action_results"][0]
            b["action_results"][0] = result.model_copy(update={"out": ("junk",)})
            b["build_num"] = -1
            return b

        with pytest.raises(ValidationError):
            build.mutate(_scribble_then_fail)
        assert build.read()["action_results"][0].out == ("ok",)

    def test_transform_gets_copies_of_action_results(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        build.add_action_result(ActionResult(name="checkout", success=True))
        seen: list[Any] = []

        def _capture_then_fail(b: dict[str, Any]) -> dict[str, Any]:
            seen.append(b["action_results"][0])
            b["build_num"] = -1
            return b

        with pytest.raises(ValidationError):
            build.mutate(_capture_then_fail)
        assert seen[0] == build.read()["action_results"][0]
        assert seen[0] is not build.read()["action_results"][0]

    def test_action_result_output_is_read_only(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        build.add_action_result(ActionResult(name="checkout", success=True, out=["ok"]))
        result = build.read()["action_results"][0]
        with pytest.raises(AttributeError):
            result.out.append("from reader")  # type: ignore[attr-defined]
        with pytest.raises(PydanticValidationError):
            result.out = ("from reader",)  # type: ignore[misc]
        assert build.read()["action_results"][0].out == ("ok",)

    def test_snapshot_is_read_only(self, make_build: Callable[..., BuildAggregate]):
        snapshot = make_build().read()
        with pytest.raises(TypeError):
            snapshot["build_num"] = 2  # type: ignore[index]

    def test_persistence_failure_does_not_roll_back(self, valid_state: dict[str, Any]):
        build = BuildAggregate(valid_state, store=BuildStore(FailingStore()))
        with pytest.raises(PersistenceError):
            build.set(status="running")
        assert build.read()["status"] == "running"

    def test_invalid_initial_state(self, valid_state: dict[str, Any]):
        valid_state["build_num"] = 0
        with pytest.raises(ValidationError):
            BuildAggregate(valid_state)


class TestLifecycle:
    def test_failed_action_stops_continue(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        build.add_action_result(ActionResult(name="checkout", success=True))
        assert build.read()["continue"] is True
        build.add_action_result(ActionResult(name="test", success=False))
        build.add_action_result(ActionResult(name="cleanup", success=True))
        snapshot = build.read()
        assert snapshot["continue"] is False
        assert [r.name for r in snapshot["action_results"]] == ["checkout", "test", "cleanup"]

    def test_action_results_not_persisted(
        self, make_build: Callable[..., BuildAggregate], build_store: BuildStore
    ):
        build = make_build(actions=["checkout"])
        build.add_action_result(ActionResult(name="checkout", success=True))
        stored = build_store.find_one(build.id)
        assert "action_results" not in stored
        assert "actions" not in stored

    def test_successful_only_when_stopped_and_continuing(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build()
        assert build.is_successful() is False
        build.finish(datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert build.is_successful() is True

    def test_failed_build_not_successful(self, make_build: Callable[..., BuildAggregate]):
        build = make_build()
        build.add_action_result(ActionResult(name="test", success=False))
        build.finish()
        assert build.is_successful() is False

    def test_extend_group_with_revision(self, make_build: Callable[..., BuildAggregate]):
        build = make_build(vcs_revision="ABC123", group={"image": "base"})
        build.extend_group_with_revision()
        group = build.read()["group"]
        assert group["group_name"] == "widget-abc123"
        assert group["image"] == "base"

    def test_group_name_uses_revision_committed_first(
        self, make_build: Callable[..., BuildAggregate]
    ):
        build = make_build(vcs_revision="old")
        mutate = build.mutate

        def _revision_lands_first(transform):
            build.mutate = mutate
            build.set(vcs_revision="new")
            return mutate(transform)

        build.mutate = _revision_lands_first  # type: ignore[method-assign]
        snapshot = build.extend_group_with_revision()
        assert snapshot["vcs_revision"] == "new"
        assert snapshot["group"]["group_name"] == "widget-new"


class TestNames:
    def test_build_name(self):
        assert build_name("widget", 7) == "widget-7"

    def test_checkout_dir_replaces_spaces(self):
        assert checkout_dir("my widget", 3) == "my-widget-3"

    def test_derived_from_vcs_url(self, make_build: Callable[..., BuildAggregate]):
        build = make_build()
        assert build.project_name() == "widget"
        assert build.build_name() == "widget-1"
        assert build.checkout_dir() == "widget-1"
        assert build.log_name() == "cibuild.build.widget-1"

    def test_unparseable_url_is_fatal(self, valid_state: dict[str, Any]):
        valid_state["vcs_url"] = "not a url"
        build = BuildAggregate(valid_state)
        with pytest.raises(ParseError):
            build.build_name()

    def test_get_project(self, make_build: Callable[..., BuildAggregate], projects):
        assert make_build().get_project(projects).project_id == "P1"


class TestConcurrency:
    def test_no_lost_updates(self, valid_state: dict[str, Any]):
        valid_state["counter"] = 0
        build = BuildAggregate(valid_state, store=BuildStore(MemoryDocumentStore()))
        n = 64
        observed: list[int] = []
        done = threading.Event()

        def _increment(b: dict[str, Any]) -> dict[str, Any]:
            b["counter"] += 1
            return b

        def _reader():
            while not done.is_set():
                observed.append(build.read()["counter"])

        reader = threading.Thread(target=_reader)
        reader.start()
        workers = [threading.Thread(target=build.mutate, args=(_increment,)) for _ in range(n)]
        for w in workers:
            w.start()
        for w in workers:
            w.join()
        done.set()
        reader.join()

        assert build.read()["counter"] == n
        assert all(0 <= v <= n for v in observed)
        assert observed == sorted(observed)

    def test_store_converges_to_latest(self, valid_state: dict[str, Any]):
        valid_state["counter"] = 0
        store = BuildStore(MemoryDocumentStore())
        build = BuildAggregate(valid_state, store=store)

        def _increment(b: dict[str, Any]) -> dict[str, Any]:
            b["counter"] += 1
            return b

        workers = [threading.Thread(target=build.mutate, args=(_increment,)) for _ in range(32)]
        for w in workers:
            w.start()
        for w in workers:
            w.join()
        assert store.find_one(build.id)["counter"] == 32
