"""The build rule set.

``BUILD_RULES`` guards every committed build state. ``NODE_RULES`` checks
the execution-target descriptor; it is not part of the default build set
and callers that want node credentials enforced add ``node_rule`` to
their engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cibuild.core.validation import Rule, ValidationEngine, require_keys, validate
from cibuild.models.build import BuildType

REQUIRED_BUILD_KEYS: tuple[str, ...] = (
    "_id",
    "_project_id",
    "build_num",
    "vcs_url",
    "vcs_revision",
)


def deploy_requires_revision(build: Mapping[str, Any]) -> str | None:
    if build.get("type") == BuildType.DEPLOY and not build.get("vcs_revision"):
        return "version-control revision is required for deploys"
    return None


def positive_build_num(build: Mapping[str, Any]) -> str | None:
    num = build.get("build_num")
    # bool is an int subclass
    if isinstance(num, bool) or not isinstance(num, int) or num <= 0:
        return "build_num must be a positive integer"
    return None


NODE_RULES: list[Rule] = [require_keys(["username"])]


def node_rule(build: Mapping[str, Any]) -> str | None:
    """Validate ``build["node"]`` against ``NODE_RULES`` when a node is set."""
    node = build.get("node")
    if node is None:
        return None
    errors = validate(NODE_RULES, node)
    if errors:
        return "node: " + "; ".join(errors)
    return None


BUILD_RULES: list[Rule] = [
    require_keys(REQUIRED_BUILD_KEYS),
    deploy_requires_revision,
    positive_build_num,
]


def build_engine() -> ValidationEngine:
    """Return a fresh engine loaded with the default build rules."""
    return ValidationEngine(BUILD_RULES)
