"""Exception hierarchy for the CI/CD worker.

Every failure that can end a project's pipeline derives from
``WorkerError``.  ``ServiceError`` is the one branch that is fatal to the
whole batch rather than to a single project.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cicd_worker.models import CommandResult


class WorkerError(Exception):
    """Base class for all worker errors."""


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


class CommandError(WorkerError):
    """A delegated command could not be run or did not succeed."""


class InvalidCommand(CommandError):
    """The command line was empty."""


class ExecutionError(CommandError):
    """The process could not be spawned or its exit status is unknown."""


class EncodingError(CommandError):
    """The process wrote output that is not valid UTF-8."""


class CommandFailure(CommandError):
    """The process exited with a code outside the accepted set."""

    def __init__(self, diagnostic: str, result: CommandResult | None = None) -> None:
        super().__init__(diagnostic)
        self.diagnostic = diagnostic
        self.result = result


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class ConvergenceTimeout(WorkerError):
    """A polled condition was not reached within its deadline."""


# ---------------------------------------------------------------------------
# Installation lock
# ---------------------------------------------------------------------------


class LockError(WorkerError):
    """The installation lock could not be used."""

    def __init__(self, message: str, project: str = "") -> None:
        super().__init__(message)
        self.project = project


class LockAcquisitionTimeout(LockError):
    """The sentinel file stayed present until the deadline."""


class LockReleaseTimeout(LockError):
    """The sentinel file could not be removed before the deadline."""


# ---------------------------------------------------------------------------
# Service control
# ---------------------------------------------------------------------------


class ServiceError(WorkerError):
    """The managed service is in a state that could not be established."""


class ServiceCommandError(ServiceError):
    """An explicit stop/start command failed."""


class ServiceConvergenceTimeout(ServiceError, ConvergenceTimeout):
    """The service did not report the requested state before the deadline."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigError(WorkerError):
    """Configuration is missing or malformed."""


class StructuralConfigError(ConfigError):
    """A project's configuration cannot support the requested pipeline."""

    def __init__(self, message: str, project: str = "") -> None:
        super().__init__(message)
        self.project = project


class ProjectConfigError(ConfigError):
    """The project list file could not be loaded."""
