"""Project and repository-URL models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Project(BaseModel):
    """A project known to the backend, keyed by its repository URL."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    project_id: str = Field(alias="_id")
    name: str
    vcs_url: str
    next_build_num: int = 1


class VcsUrl(BaseModel):
    """Components of a parsed repository URL."""

    model_config = ConfigDict(frozen=True)

    host: str
    owner: str
    project: str
