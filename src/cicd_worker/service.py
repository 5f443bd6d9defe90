"""Stop/start a system service and confirm it reached the requested state.

Convergence is judged only from the text of the status command: the
inactive marker means stopped, the running marker means started.
"""

from __future__ import annotations

from dataclasses import dataclass

from cicd_worker.commands import CommandExecutor
from cicd_worker.constants import (
    DEFAULT_SERVICE_COMMAND,
    SERVICE_INACTIVE_MARKER,
    SERVICE_RUNNING_MARKER,
    SERVICE_STATUS_EXIT_CODES,
)
from cicd_worker.errors import CommandError, ServiceCommandError, ServiceConvergenceTimeout
from cicd_worker.logging import get_logger
from cicd_worker.models import CommandOutcome, PollOutcome, PollPolicy
from cicd_worker.poller import poll_until

log = get_logger("cicd_worker.service")


@dataclass(frozen=True)
class ServiceMarkers:
    """Status-output substrings that identify the service state."""

    inactive: str = SERVICE_INACTIVE_MARKER
    running: str = SERVICE_RUNNING_MARKER


class ServiceController:
    """Drive one service through its service manager (``systemctl`` by default)."""

    def __init__(
        self,
        service_name: str,
        executor: CommandExecutor | None = None,
        policy: PollPolicy | None = None,
        service_command: str = DEFAULT_SERVICE_COMMAND,
        markers: ServiceMarkers | None = None,
        working_directory: str = "/",
    ) -> None:
        self._name = service_name
        self._executor = executor or CommandExecutor()
        self._policy = policy or PollPolicy()
        self._command = service_command
        self._markers = markers or ServiceMarkers()
        self._cwd = working_directory

    async def stop(self) -> CommandOutcome:
        return await self._run("stop")

    async def start(self) -> CommandOutcome:
        return await self._run("start")

    async def status(self) -> CommandOutcome:
        """Query the service; exit code 3 (inactive) is an accepted answer."""
        return await self._run("status", SERVICE_STATUS_EXIT_CODES)

    async def ensure_stopped(self) -> None:
        """Stop the service and wait until status reports it inactive.

        Raises:
            ServiceCommandError: The stop or a status command failed.
            ServiceConvergenceTimeout: The service never reported inactive.
        """
        await self._transition("stop", self._markers.inactive)

    async def ensure_started(self) -> None:
        """Start the service and wait until status reports it running."""
        await self._transition("start", self._markers.running)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, action: str, accepted: tuple[int, ...] = (0,)) -> CommandOutcome:
        return await self._executor.run(
            f"{self._command} {action} {self._name}",
            self._cwd,
            accepted,
        )

    async def _transition(self, action: str, marker: str) -> None:
        log.info("service_transition_started", service=self._name, action=action)
        try:
            (await self._run(action)).unwrap()
        except CommandError as exc:
            raise ServiceCommandError(f"Could not {action} service {self._name}: {exc}") from exc

        async def _reached() -> bool:
            try:
                output = (await self.status()).unwrap()
            except CommandError as exc:
                raise ServiceCommandError(
                    f"Could not query status of service {self._name}: {exc}"
                ) from exc
            return marker in output

        outcome = await poll_until(_reached, self._policy.interval, self._policy.deadline)
        if outcome is PollOutcome.TIMED_OUT:
            raise ServiceConvergenceTimeout(
                f"Service {self._name} did not report {marker!r} within "
                f"{self._policy.deadline} seconds after {action}"
            )
        log.info("service_transition_confirmed", service=self._name, action=action)
