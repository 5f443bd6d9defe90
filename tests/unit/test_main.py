"""Unit tests for the worker entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cicd_worker import main as main_module
from cicd_worker.config import ProjectConfig
from cicd_worker.constants import EXIT_ABORTED, EXIT_OK, EXIT_PROJECT_FAILED
from cicd_worker.errors import ProjectConfigError
from cicd_worker.models import PipelineState, ProjectRunResult, RunSummary


@pytest.fixture
def mock_settings() -> MagicMock:
    settings = MagicMock()
    settings.projects_file = "/etc/ci-cd_worker/list_of_projects_to_update.yaml"
    settings.environment = "test"
    settings.service_name = None
    settings.service_pause_mode = "per_project"
    return settings


def _patched(mock_settings: MagicMock, summary: RunSummary | None = None, projects=None):
    worker = MagicMock()
    worker.run_all = AsyncMock(return_value=summary or RunSummary())
    worker_cls = MagicMock(return_value=worker)
    return (
        patch.object(main_module, "get_settings", return_value=mock_settings),
        patch.object(main_module, "load_projects", return_value=projects or []),
        patch.object(main_module, "setup_logging"),
        patch.object(main_module, "UpdateWorker", worker_cls),
        worker_cls,
    )


class TestMain:
    """Tests for main() exit codes."""

    async def test_all_projects_ok(self, mock_settings: MagicMock) -> None:
        projects = [ProjectConfig(name="api", source_path="/srv/api")]
        summary = RunSummary(results=[ProjectRunResult(project="api", state=PipelineState.DONE)])
        settings_p, load_p, logging_p, worker_p, worker_cls = _patched(
            mock_settings, summary, projects
        )

        with settings_p, load_p, logging_p as mock_setup, worker_p:
            code = await main_module.main()

        assert code == EXIT_OK
        assert list(mock_setup.call_args.args[0]) == ["api"]
        assert worker_cls.call_args.args[0] == projects
        # Pipelines log under their own module logger.
        assert "logger" not in worker_cls.call_args.kwargs

    async def test_failed_project_exit_code(self, mock_settings: MagicMock) -> None:
        summary = RunSummary(results=[ProjectRunResult(project="api", state=PipelineState.FAILED)])
        settings_p, load_p, logging_p, worker_p, _ = _patched(mock_settings, summary)

        with settings_p, load_p, logging_p, worker_p:
            code = await main_module.main()

        assert code == EXIT_PROJECT_FAILED

    async def test_aborted_run_exit_code(self, mock_settings: MagicMock) -> None:
        summary = RunSummary(aborted=True, abort_reason="service would not stop")
        settings_p, load_p, logging_p, worker_p, _ = _patched(mock_settings, summary)

        with settings_p, load_p, logging_p, worker_p:
            code = await main_module.main()

        assert code == EXIT_ABORTED

    async def test_unreadable_project_list_aborts(self, mock_settings: MagicMock) -> None:
        settings_p, _, logging_p, worker_p, worker_cls = _patched(mock_settings)

        with (
            settings_p,
            patch.object(main_module, "load_projects", side_effect=ProjectConfigError("bad")),
            logging_p as mock_setup,
            worker_p,
        ):
            code = await main_module.main()

        assert code == EXIT_ABORTED
        mock_setup.assert_called_once_with()
        worker_cls.assert_not_called()


class TestRun:
    def test_run_exits_with_main_code(self) -> None:
        with (
            patch.object(main_module, "main", new=AsyncMock(return_value=EXIT_PROJECT_FAILED)),
            pytest.raises(SystemExit) as exc_info,
        ):
            main_module.run()

        assert exc_info.value.code == EXIT_PROJECT_FAILED
