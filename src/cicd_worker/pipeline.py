"""Project update pipeline.

For every configured project, in configuration order:

1. ``git fetch --all`` and ``git status``
2. Stop if the branch is already up to date
3. ``git pull``
4. Projects with an install path: release build, then, holding the
   installation lock (and with the service paused), move the binary into
   the install directory
5. Release the lock

A failure ends only the current project's pipeline; the worker moves on to
the next project.  Service failures are the exception: the service state is
then unknown, so the remaining projects are not touched.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

import structlog

from cicd_worker.commands import CommandExecutor
from cicd_worker.config import ProjectConfig, Settings, get_settings
from cicd_worker.errors import (
    CommandError,
    LockError,
    ServiceError,
    StructuralConfigError,
    WorkerError,
)
from cicd_worker.lock import acquire_lock, lock_path_for, release_lock
from cicd_worker.logging import get_logger
from cicd_worker.models import LockHandle, PipelineState, ProjectRunResult, RunSummary
from cicd_worker.service import ServiceController

log = get_logger("cicd_worker.pipeline")


class ProjectPipeline:
    """Runs the update state machine for one project."""

    def __init__(
        self,
        project: ProjectConfig,
        executor: CommandExecutor | None = None,
        settings: Settings | None = None,
        service: ServiceController | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._project = project
        self._executor = executor or CommandExecutor()
        self._settings = settings or get_settings()
        self._service = service
        self._log = (logger or log).bind(project=project.name)
        self.result = ProjectRunResult(project=project.name)
        self._move_error: CommandError | None = None

    async def run(self) -> ProjectRunResult:
        """Run the pipeline to a terminal state.

        Raises:
            ServiceError: The managed service could not be stopped or
                restarted.  ``self.result`` is already marked failed.
        """
        start = time.monotonic()
        result = self.result
        self._log.info(
            "pipeline_started",
            source_path=self._project.source_path,
            install_path=self._project.install_path,
        )

        try:
            with structlog.contextvars.bound_contextvars(project=self._project.name):
                await self._run_steps()
        except ServiceError as exc:
            self._fail(exc)
            raise
        except WorkerError as exc:
            self._fail(exc)
        except Exception as exc:
            self._fail(exc, unexpected=True)
        finally:
            result.duration_seconds = round(time.monotonic() - start, 2)
            result.completed_at = datetime.now(UTC).isoformat()

        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_steps(self) -> None:
        settings = self._settings
        self._enter(PipelineState.IDLE)
        if self._project.deploys:
            self._check_structure()

        fetch = await self._run("git fetch --all")
        self._enter(PipelineState.FETCHED, output=fetch)

        status = await self._run("git status")
        self._enter(PipelineState.STATUS_CHECKED, output=status)

        if settings.up_to_date_marker in status:
            self._enter(PipelineState.UP_TO_DATE)
            self._enter(PipelineState.DONE)
            self._log.info("project_up_to_date")
            return
        self._enter(PipelineState.PULL_PENDING)

        if settings.rollback_on_build_failure:
            head = await self._run("git rev-parse HEAD")
            self.result.previous_commit = head.strip() or None

        pull = await self._run("git pull")
        self._enter(PipelineState.PULLED, output=pull)

        if not self._project.deploys:
            self._enter(PipelineState.NO_BUILD_REQUESTED)
            self._enter(PipelineState.DONE)
            self._log.info("project_updated", build=False)
            return
        self._enter(PipelineState.BUILD_PENDING)

        try:
            build = await self._run(settings.build_command, timeout=settings.build_timeout_seconds)
        except CommandError:
            await self._rollback()
            raise
        self._enter(PipelineState.BUILT, output=build)

        await self._install()

        self._enter(PipelineState.DONE)
        self._log.info("project_updated", build=True)

    async def _install(self) -> None:
        """Move the built binary into place while holding the install lock."""
        install_path = self._project.install_path or ""
        policy = self._settings.poll_policy
        handle = await acquire_lock(
            lock_path_for(install_path, self._project.name),
            self._project.name,
            policy,
        )
        self._enter(PipelineState.LOCK_HELD, lock_path=handle.path)

        try:
            moved = await self._swap_binary(install_path)
        except Exception:
            await self._release_after_failure(handle)
            raise
        self._enter(PipelineState.INSTALLED, output=moved)

        try:
            await release_lock(handle, policy)
        except LockError as exc:
            self._log.error(
                "lock_release_failed",
                lock_path=handle.path,
                binary_installed=True,
                error=str(exc),
            )
            raise
        self._enter(PipelineState.LOCK_RELEASED)

    async def _swap_binary(self, install_path: str) -> str:
        binary_name = PurePosixPath(self._project.source_path).name
        artifact = f"{self._settings.artifact_dir}/{binary_name}"
        destination = str(Path(install_path) / self._project.name)
        move_command = f"mv {artifact} {destination}"

        if self._service is None:
            return await self._move(move_command)

        await self._service.ensure_stopped()
        try:
            return await self._move(move_command)
        finally:
            await self._service.ensure_started()

    async def _move(self, move_command: str) -> str:
        try:
            return await self._run(move_command)
        except CommandError as exc:
            self._move_error = exc
            self._log.error("binary_move_failed", cmd=move_command, error=str(exc))
            await self._rollback()
            raise

    async def _release_after_failure(self, handle: LockHandle) -> None:
        try:
            await release_lock(handle, self._settings.poll_policy)
        except LockError as exc:
            self._log.error(
                "lock_release_failed",
                lock_path=handle.path,
                binary_installed=False,
                error=str(exc),
            )

    async def _rollback(self) -> None:
        """Reset the checkout to the pre-pull commit, when configured."""
        commit = self.result.previous_commit
        if not self._settings.rollback_on_build_failure or not commit:
            return
        self._log.info("pipeline_rolling_back", commit=commit[:12])
        try:
            await self._run(f"git reset --hard {commit}")
        except CommandError as exc:
            self._log.error("pipeline_rollback_failed", commit=commit[:12], error=str(exc))
            return
        self.result.rolled_back = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_structure(self) -> None:
        path = PurePosixPath(self._project.source_path)
        if not path.is_absolute() or not path.name:
            raise StructuralConfigError(
                f"Project {self._project.name} requests a build but its source path "
                f"{self._project.source_path!r} is not an absolute path naming a directory",
                self._project.name,
            )

    async def _run(self, command: str, timeout: float | None = None) -> str:
        outcome = await self._executor.run(
            command,
            self._project.source_path,
            (0,),
            timeout=timeout,
        )
        return outcome.unwrap()

    def _enter(self, state: PipelineState, output: str | None = None, **extra: object) -> None:
        self.result.state = state
        self.result.transitions.append(state)
        if output is not None:
            extra["output"] = output
        self._log.debug("pipeline_transition", state=state.value, **extra)

    def _fail(self, exc: Exception, unexpected: bool = False) -> None:
        result = self.result
        result.failed_at = result.state
        result.state = PipelineState.FAILED
        result.transitions.append(PipelineState.FAILED)
        result.error_type = type(exc).__name__
        result.error = f"Unexpected error: {exc}" if unexpected else str(exc)
        if isinstance(exc, ServiceError) and self._move_error is not None:
            result.error += f" (after the binary move failed: {self._move_error})"
        if unexpected:
            self._log.exception("pipeline_failed", failed_at=result.failed_at.value)
        else:
            self._log.error(
                "pipeline_failed",
                failed_at=result.failed_at.value,
                error_type=result.error_type,
                error=result.error,
            )


class UpdateWorker:
    """Runs every configured project's pipeline, one after another."""

    def __init__(
        self,
        projects: Iterable[ProjectConfig],
        executor: CommandExecutor | None = None,
        settings: Settings | None = None,
        service: ServiceController | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._projects = list(projects)
        self._settings = settings or get_settings()
        self._executor = executor or CommandExecutor()
        self._log = logger or log
        if service is None and self._settings.service_name:
            service = ServiceController(
                self._settings.service_name,
                executor=self._executor,
                policy=self._settings.poll_policy,
                service_command=self._settings.service_command,
            )
        self._service = service

    @property
    def pause_once(self) -> bool:
        return self._service is not None and self._settings.service_pause_mode == "once"

    async def run_all(self) -> RunSummary:
        """Update all projects and return their results."""
        summary = RunSummary()
        self._log.info("run_started", projects=[p.name for p in self._projects])

        if self.pause_once:
            try:
                await self._service.ensure_stopped()
            except ServiceError as exc:
                self._abort(summary, f"Could not stop service before updating: {exc}")
                return summary

        try:
            await self._run_projects(summary)
        finally:
            if self.pause_once:
                try:
                    await self._service.ensure_started()
                except ServiceError as exc:
                    self._abort(summary, f"Could not restart service after updating: {exc}")

        self._log.info(
            "run_finished",
            updated=[r.project for r in summary.results if r.updated],
            failed=summary.failed_projects,
            aborted=summary.aborted,
        )
        return summary

    async def _run_projects(self, summary: RunSummary) -> None:
        per_project_service = None if self.pause_once else self._service
        for project in self._projects:
            pipeline = ProjectPipeline(
                project,
                executor=self._executor,
                settings=self._settings,
                service=per_project_service,
                logger=self._log,
            )
            try:
                summary.results.append(await pipeline.run())
            except ServiceError as exc:
                summary.results.append(pipeline.result)
                self._abort(summary, f"Service error while updating {project.name}: {exc}")
                return

    def _abort(self, summary: RunSummary, reason: str) -> None:
        summary.aborted = True
        summary.abort_reason = reason
        self._log.error("run_aborted", reason=reason)
