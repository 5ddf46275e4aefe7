"""Typed pieces of a Build.

The Build record itself is a schema-tolerant mapping (extra keys pass
through untouched), so only the fields other subsystems read with a fixed
shape get a model here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BuildType(str, Enum):
    """Kind of build. Deploy builds must name an exact revision."""

    NORMAL = "normal"
    DEPLOY = "deploy"


class ActionResult(BaseModel):
    """Outcome of one executed pipeline action."""

    model_config = ConfigDict(frozen=True)

    name: str
    success: bool
    out: tuple[str, ...] = ()
    err: tuple[str, ...] = ()
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stop_time: datetime | None = None


class NodeInfo(BaseModel):
    """Execution target recorded on a build (credentials and address)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    username: str
    ip_addr: str | None = None
    private_key: str | None = None
