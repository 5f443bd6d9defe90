"""Configuration management for the CI/CD worker.

Worker-wide settings come from environment variables (prefix
``CICD_WORKER_``) or a ``.env`` file.  The list of projects to update is a
separate YAML file mapping each project name to its paths::

    my-service:
      source_code_path: /srv/src/my-service
      release_bin_storage_path: /opt/bin
    docs-site:
      source_code_path: /srv/src/docs-site
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from cicd_worker.constants import (
    DEFAULT_ARTIFACT_DIR,
    DEFAULT_BUILD_COMMAND,
    DEFAULT_LOG_DIRECTORY,
    DEFAULT_PROJECTS_FILE,
    DEFAULT_SERVICE_COMMAND,
    MAIN_LOG_FILE_NAME,
    POLL_DEADLINE_SECONDS,
    POLL_INTERVAL_SECONDS,
    UP_TO_DATE_MARKER,
)
from cicd_worker.errors import ProjectConfigError
from cicd_worker.models import PollPolicy

# Numeric LOG_LEVEL scale used by older deployments (0 = off ... 5 = trace).
_NUMERIC_LOG_LEVELS = {
    "0": "CRITICAL",
    "1": "ERROR",
    "2": "WARNING",
    "3": "INFO",
    "4": "DEBUG",
    "5": "DEBUG",
}


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CICD_WORKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    projects_file: str = Field(
        default=DEFAULT_PROJECTS_FILE, description="YAML file listing the projects to update"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    # Also read from the unprefixed LOG_LEVEL.
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("CICD_WORKER_LOG_LEVEL", "LOG_LEVEL"),
        description="Logging level (name or 0-5)",
    )

    # File logging
    log_to_file: bool = Field(default=True, description="Write main and per-project log files")
    log_directory: str = Field(default=DEFAULT_LOG_DIRECTORY, description="Log directory")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate size")
    log_file_backup_count: int = Field(default=5, description="Rotated files to keep")

    # Build
    build_command: str = Field(
        default=DEFAULT_BUILD_COMMAND, description="Release build command run in the checkout"
    )
    artifact_dir: str = Field(
        default=DEFAULT_ARTIFACT_DIR, description="Build output directory, relative to checkout"
    )
    build_timeout_seconds: float | None = Field(
        default=None, description="Kill the build after this many seconds"
    )
    rollback_on_build_failure: bool = Field(
        default=False, description="git reset --hard to the pre-pull commit if the build fails"
    )
    up_to_date_marker: str = Field(
        default=UP_TO_DATE_MARKER, description="git status text meaning nothing to pull"
    )

    # Service control
    service_name: str | None = Field(
        default=None, description="System service paused while binaries are swapped"
    )
    service_command: str = Field(
        default=DEFAULT_SERVICE_COMMAND, description="Service manager executable"
    )
    service_pause_mode: Literal["per_project", "once"] = Field(
        default="per_project",
        description="Pause the service around each install, or once for the whole run",
    )

    # Polling
    poll_interval_seconds: float = Field(default=POLL_INTERVAL_SECONDS, gt=0)
    poll_deadline_seconds: float = Field(default=POLL_DEADLINE_SECONDS, ge=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: Any) -> str:
        text = str(value).strip()
        return _NUMERIC_LOG_LEVELS.get(text, text.upper())

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def log_file_path(self) -> str:
        return str(Path(self.log_directory) / MAIN_LOG_FILE_NAME)

    @property
    def poll_policy(self) -> PollPolicy:
        return PollPolicy(
            interval=self.poll_interval_seconds,
            deadline=self.poll_deadline_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ---------------------------------------------------------------------------
# Project list
# ---------------------------------------------------------------------------


class ProjectConfig(BaseModel):
    """One repository managed by the worker.

    ``install_path`` being set is what turns a sync-only project into a
    sync-build-install one.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    source_path: str = Field(alias="source_code_path", min_length=1)
    install_path: str | None = Field(default=None, alias="release_bin_storage_path")

    @property
    def deploys(self) -> bool:
        return self.install_path is not None


def load_projects(path: str | Path) -> list[ProjectConfig]:
    """Load the project list from a YAML file, preserving file order."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProjectConfigError(f"Could not read project list {path}: {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ProjectConfigError(f"Could not parse project list {path}: {exc}") from exc

    if data is None:
        return []
    if not isinstance(data, dict):
        raise ProjectConfigError(f"Project list {path} must be a mapping of project names")

    projects: list[ProjectConfig] = []
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise ProjectConfigError(f"Project {name!r} must map to a table of paths")
        try:
            projects.append(ProjectConfig.model_validate({**entry, "name": str(name)}))
        except ValidationError as exc:
            raise ProjectConfigError(f"Invalid configuration for project {name!r}: {exc}") from exc
    return projects
