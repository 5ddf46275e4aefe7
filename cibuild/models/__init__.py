"""cibuild data models — all Pydantic v2, all frozen (immutable)."""

from cibuild.models.build import ActionResult, BuildType, NodeInfo
from cibuild.models.project import Project, VcsUrl

__all__ = [
    # build
    "ActionResult",
    "BuildType",
    "NodeInfo",
    # project
    "Project",
    "VcsUrl",
]
