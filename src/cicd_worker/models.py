"""Data models for command outcomes, polling and pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from cicd_worker.constants import POLL_DEADLINE_SECONDS, POLL_INTERVAL_SECONDS
from cicd_worker.errors import CommandFailure


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandResult:
    """Raw result of one external command invocation."""

    command: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""

    def diagnostic(self) -> str:
        """Human-readable failure description including captured output."""
        message = (
            f"The command {self.command} did not finish with an expected status code "
            f"(exit code {self.exit_code})."
        )
        if self.stdout:
            message += f"\nstdout was:\n{self.stdout}"
        if self.stderr:
            message += f"\nstderr was:\n{self.stderr}"
        return message


@dataclass(frozen=True)
class CommandOutcome:
    """Success or failure classification of a ``CommandResult``.

    A successful outcome carries the command's stdout; a failed one carries a
    diagnostic built from the command line, exit code and captured output.
    """

    ok: bool
    result: CommandResult
    stdout: str = ""
    diagnostic: str = ""

    @classmethod
    def success(cls, result: CommandResult) -> CommandOutcome:
        return cls(ok=True, result=result, stdout=result.stdout)

    @classmethod
    def failure(cls, result: CommandResult) -> CommandOutcome:
        return cls(ok=False, result=result, diagnostic=result.diagnostic())

    def unwrap(self) -> str:
        """Return stdout, or raise ``CommandFailure`` for a failed outcome."""
        if not self.ok:
            raise CommandFailure(self.diagnostic, self.result)
        return self.stdout


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class PollOutcome(Enum):
    """Result of waiting for a condition."""

    CONVERGED = "converged"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollPolicy:
    """Interval and deadline (seconds) for one kind of convergence wait."""

    interval: float = POLL_INTERVAL_SECONDS
    deadline: float = POLL_DEADLINE_SECONDS


# ---------------------------------------------------------------------------
# Installation lock
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockHandle:
    """Proof of holding the installation lock for one project."""

    path: str
    project: str


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PipelineState(Enum):
    """States of a single project's update pipeline."""

    IDLE = "idle"
    FETCHED = "fetched"
    STATUS_CHECKED = "status_checked"
    UP_TO_DATE = "up_to_date"
    PULL_PENDING = "pull_pending"
    PULLED = "pulled"
    NO_BUILD_REQUESTED = "no_build_requested"
    BUILD_PENDING = "build_pending"
    BUILT = "built"
    LOCK_HELD = "lock_held"
    INSTALLED = "installed"
    LOCK_RELEASED = "lock_released"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProjectRunResult:
    """Record of one pipeline run for one project. Never persisted."""

    project: str
    state: PipelineState = PipelineState.IDLE
    transitions: list[PipelineState] = field(default_factory=list)
    failed_at: PipelineState | None = None
    error: str | None = None
    error_type: str | None = None
    previous_commit: str | None = None
    rolled_back: bool = False
    duration_seconds: float = 0.0
    started_at: str = field(default_factory=_now_iso)
    completed_at: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is PipelineState.FAILED

    @property
    def up_to_date(self) -> bool:
        return PipelineState.UP_TO_DATE in self.transitions

    @property
    def updated(self) -> bool:
        return self.state is PipelineState.DONE and PipelineState.PULLED in self.transitions

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "state": self.state.value,
            "transitions": [state.value for state in self.transitions],
            "failed_at": self.failed_at.value if self.failed_at else None,
            "error": self.error,
            "error_type": self.error_type,
            "previous_commit": self.previous_commit,
            "rolled_back": self.rolled_back,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass
class RunSummary:
    """Results of one worker invocation over all configured projects."""

    results: list[ProjectRunResult] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str | None = None

    @property
    def failed_projects(self) -> list[str]:
        return [r.project for r in self.results if r.failed]

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.failed_projects

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "failed_projects": self.failed_projects,
        }
