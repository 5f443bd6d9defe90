"""Cross-process installation lock built on a sentinel file.

The lock for a project is the file ``<install_path>/<project>.lock``.
Whoever creates it with an atomic create-if-absent holds the lock; removing
it releases the lock.  The lock is advisory: it only excludes other worker
invocations that follow the same protocol.
"""

from __future__ import annotations

import os
from pathlib import Path

from cicd_worker.constants import LOCK_FILE_SUFFIX
from cicd_worker.errors import LockAcquisitionTimeout, LockError, LockReleaseTimeout
from cicd_worker.logging import get_logger
from cicd_worker.models import LockHandle, PollOutcome, PollPolicy
from cicd_worker.poller import poll_until

log = get_logger("cicd_worker.lock")


def lock_path_for(install_path: str, project: str) -> str:
    """Return the sentinel path guarding ``project``'s binary in ``install_path``."""
    return str(Path(install_path) / f"{project}{LOCK_FILE_SUFFIX}")


def _try_create(path: str, project: str) -> bool:
    """Attempt the atomic create; False means someone else holds the lock."""
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False
    except OSError as exc:
        raise LockError(
            f"Could not create lock file {path} for project {project}: {exc}", project
        ) from exc
    os.close(fd)
    return True


def _try_remove(path: str, project: str) -> bool:
    try:
        os.remove(path)
    except FileNotFoundError:
        log.warning("lock_already_removed", path=path, project=project)
        return True
    except OSError as exc:
        log.debug("lock_remove_retry", path=path, project=project, error=str(exc))
        return False
    return True


async def acquire_lock(
    lock_path: str,
    project: str,
    policy: PollPolicy | None = None,
) -> LockHandle:
    """Acquire the installation lock, retrying the atomic create each cycle.

    Raises:
        LockAcquisitionTimeout: The sentinel still existed at the deadline.
        LockError: The sentinel could not be created for another reason,
            e.g. a missing install directory.
    """
    policy = policy or PollPolicy()

    async def _created() -> bool:
        return _try_create(lock_path, project)

    outcome = await poll_until(_created, policy.interval, policy.deadline)
    if outcome is PollOutcome.TIMED_OUT:
        raise LockAcquisitionTimeout(
            f"Lock file could not be created for project {project} since it is already "
            f"present and did not disappear within {policy.deadline} seconds",
            project,
        )

    log.debug("lock_acquired", path=lock_path, project=project)
    return LockHandle(path=lock_path, project=project)


async def release_lock(handle: LockHandle, policy: PollPolicy | None = None) -> None:
    """Remove the sentinel, retrying failed deletions until the deadline.

    Raises:
        LockReleaseTimeout: The sentinel could not be removed in time.  The
            lock is then stuck and blocks every later deploy of the project.
    """
    policy = policy or PollPolicy()

    async def _removed() -> bool:
        return _try_remove(handle.path, handle.project)

    outcome = await poll_until(_removed, policy.interval, policy.deadline)
    if outcome is PollOutcome.TIMED_OUT:
        raise LockReleaseTimeout(
            f"Lock file {handle.path} could not be released for project "
            f"{handle.project} within {policy.deadline} seconds",
            handle.project,
        )

    log.debug("lock_released", path=handle.path, project=handle.project)
