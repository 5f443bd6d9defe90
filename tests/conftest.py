"""Shared fixtures for cicd_worker tests."""

from __future__ import annotations

from collections.abc import Callable, Collection
from pathlib import Path
from typing import Any

import pytest

from cicd_worker.config import ProjectConfig, Settings
from cicd_worker.models import CommandOutcome, CommandResult

UP_TO_DATE_STATUS = "On branch main\nYour branch is up to date with 'origin/main'.\n"
BEHIND_STATUS = (
    "On branch main\nYour branch is behind 'origin/main' by 2 commits, "
    "and can be fast-forwarded.\n"
)
SERVICE_INACTIVE_STATUS = "● cron.service\n     Active: inactive (dead)\n"
SERVICE_RUNNING_STATUS = "● cron.service\n     Active: active (running) since Mon\n"


class ScriptedExecutor:
    """Executor double that answers commands from a script.

    ``responses`` maps a command prefix to one answer or a list of answers
    (consumed in order; the last one repeats).  An answer is an
    ``(exit_code, stdout)`` tuple, an exception to raise, or a callable
    receiving the command line and returning either of those.  Commands
    with no matching prefix succeed with empty output.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self._responses: dict[str, list[Any]] = {}
        for prefix, answer in (responses or {}).items():
            self._responses[prefix] = list(answer) if isinstance(answer, list) else [answer]
        self.calls: list[str] = []
        self.cwds: list[str] = []

    def commands_starting_with(self, prefix: str) -> list[str]:
        return [cmd for cmd in self.calls if cmd.startswith(prefix)]

    async def run(
        self,
        command_line: str,
        working_directory: str,
        accepted_exit_codes: Collection[int] = (0,),
        timeout: float | None = None,
    ) -> CommandOutcome:
        self.calls.append(command_line)
        self.cwds.append(working_directory)

        answer: Any = (0, "")
        for prefix, answers in self._responses.items():
            if command_line.startswith(prefix):
                answer = answers.pop(0) if len(answers) > 1 else answers[0]
                break

        if callable(answer) and not isinstance(answer, type):
            answer = answer(command_line)
        if isinstance(answer, BaseException):
            raise answer

        exit_code, stdout = answer
        result = CommandResult(command=command_line, exit_code=exit_code, stdout=stdout)
        if exit_code in accepted_exit_codes:
            return CommandOutcome.success(result)
        return CommandOutcome.failure(result)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Settings with fast polling and no file logging."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "_env_file": None,
            "log_to_file": False,
            "poll_interval_seconds": 0.05,
            "poll_deadline_seconds": 0.3,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def install_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def deploy_project(tmp_path: Path, install_dir: Path) -> ProjectConfig:
    return ProjectConfig(
        name="A",
        source_path=str(tmp_path / "src" / "app-a"),
        install_path=str(install_dir),
    )


@pytest.fixture
def sync_project(tmp_path: Path) -> ProjectConfig:
    return ProjectConfig(name="docs", source_path=str(tmp_path / "src" / "docs"))
