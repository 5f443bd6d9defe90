"""Main entry point for the CI/CD worker."""

import asyncio
import sys

from cicd_worker import __version__
from cicd_worker.config import get_settings, load_projects
from cicd_worker.constants import EXIT_ABORTED, EXIT_OK, EXIT_PROJECT_FAILED
from cicd_worker.errors import ConfigError
from cicd_worker.logging import get_logger, setup_logging
from cicd_worker.pipeline import UpdateWorker


async def main() -> int:
    """Update every configured project once and return the process exit code."""
    settings = get_settings()

    try:
        projects = load_projects(settings.projects_file)
    except ConfigError as exc:
        setup_logging()
        get_logger("cicd_worker.main").error("project_list_unavailable", error=str(exc))
        return EXIT_ABORTED

    setup_logging(project.name for project in projects)
    log = get_logger("cicd_worker.main")
    log.info(
        "starting_cicd_worker",
        version=__version__,
        environment=settings.environment,
        projects_file=settings.projects_file,
        project_count=len(projects),
        service=settings.service_name,
        service_pause_mode=settings.service_pause_mode,
    )

    worker = UpdateWorker(projects, settings=settings)
    summary = await worker.run_all()

    if summary.aborted:
        return EXIT_ABORTED
    if summary.failed_projects:
        return EXIT_PROJECT_FAILED
    return EXIT_OK


def run() -> None:
    """Run the worker."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
