"""Command executor: the single seam through which external commands run.

Commands are plain space-delimited strings.  The first token is the
program, the remaining tokens are passed as positional arguments with no
shell expansion and no quoting support.  All subprocess calls in the
worker are confined to this module.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Collection

import structlog

from cicd_worker.errors import EncodingError, ExecutionError, InvalidCommand
from cicd_worker.logging import get_logger
from cicd_worker.models import CommandOutcome, CommandResult

log = get_logger("cicd_worker.commands")


class CommandExecutor:
    """Runs one external command and classifies it by exit status."""

    def __init__(
        self,
        timeout: float | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._timeout = timeout
        self._log = logger or log

    async def run(
        self,
        command_line: str,
        working_directory: str,
        accepted_exit_codes: Collection[int] = (0,),
        timeout: float | None = None,
    ) -> CommandOutcome:
        """Run ``command_line`` in ``working_directory``.

        Returns a successful outcome iff the exit code is in
        ``accepted_exit_codes``.

        Raises:
            InvalidCommand: The command line is empty.
            ExecutionError: The process could not be started, timed out, or
                ended without a numeric exit code.
            EncodingError: stdout or stderr is not valid UTF-8.
        """
        parts = command_line.split()
        if not parts:
            raise InvalidCommand("Empty command was given")
        program, *args = parts

        self._log.debug("command_started", cmd=command_line, cwd=working_directory)
        try:
            proc = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=working_directory,
            )
        except OSError as exc:
            raise ExecutionError(f"Could not start command {command_line}: {exc}") from exc

        limit = timeout if timeout is not None else self._timeout
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=limit)
        except TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise ExecutionError(f"Command {command_line} timed out after {limit}s") from exc

        try:
            stdout = stdout_bytes.decode("utf-8")
            stderr = stderr_bytes.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EncodingError(f"Command {command_line} produced non UTF-8 output: {exc}") from exc

        # Negative return codes mean the process was killed by a signal.
        exit_code = proc.returncode
        if exit_code is None or exit_code < 0:
            raise ExecutionError(
                f"No exit status for command {command_line} (returncode={exit_code})"
            )

        result = CommandResult(
            command=command_line,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
        )
        if exit_code in accepted_exit_codes:
            self._log.debug("command_succeeded", cmd=command_line, returncode=exit_code)
            return CommandOutcome.success(result)

        self._log.warning(
            "command_failed",
            cmd=command_line,
            returncode=exit_code,
            stderr=stderr[:500],
        )
        return CommandOutcome.failure(result)

