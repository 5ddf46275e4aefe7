"""Runtime configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
CIBUILD_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class BuildSettings(BaseSettings):
    """Build backend configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CIBUILD_LOG_LEVEL=DEBUG
        export CIBUILD_STORE_PATH=/data/cibuild.db

    Or via .env file::

        CIBUILD_ENVIRONMENT=production
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CIBUILD_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Document store
    store_path: Path = Path(".cibuild/store.db")
    builds_collection: str = "builds"
    projects_collection: str = "projects"

    # Keys on a build that never go into the store
    persist_excluded_keys: list[str] = ["actions", "action_results"]

    # Per-build loggers are named "<log_namespace>.<project>-<build_num>"
    log_namespace: str = "cibuild.build"

    @property
    def effective_log_level(self) -> str:
        """``DEBUG`` when debug mode is on, otherwise ``log_level``."""
        return "DEBUG" if self.debug else self.log_level.upper()

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton — import as `from cibuild.config import config`
config = BuildSettings()
