"""Logging configuration for the CI/CD worker.

All records go to the console and, when file logging is enabled, to
``main.log``.  Each configured project additionally gets its own rotating
``<project>.log`` that only receives records bound to that project
(``log.bind(project=name)``).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from cicd_worker.config import get_settings

# Marks handlers installed here so repeated setup does not stack them.
_HANDLER_MARKER = "_cicd_worker_handler"


class ProjectFilter(logging.Filter):
    """Pass only structlog records bound to one project."""

    def __init__(self, project: str) -> None:
        super().__init__()
        self.project = project

    def filter(self, record: logging.LogRecord) -> bool:
        event = record.msg
        return isinstance(event, dict) and event.get("project") == self.project


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _make_formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _install(root: logging.Logger, handler: logging.Handler) -> None:
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)


def setup_logging(projects: Iterable[str] = ()) -> None:
    """Configure structured logging.

    Args:
        projects: Project names that get a dedicated log file.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARKER, False)]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(log_level)

    console_renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_make_formatter(console_renderer))
    _install(root, console)

    if not settings.log_to_file:
        return

    log_dir = Path(settings.log_directory)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        structlog.get_logger(__name__).warning(
            "log_directory_unavailable", path=str(log_dir), error=str(exc)
        )
        return

    json_formatter = _make_formatter(structlog.processors.JSONRenderer())

    def _file_handler(path: Path) -> RotatingFileHandler | None:
        try:
            handler = RotatingFileHandler(
                path,
                maxBytes=settings.log_file_max_bytes,
                backupCount=settings.log_file_backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            structlog.get_logger(__name__).warning(
                "log_file_unavailable", path=str(path), error=str(exc)
            )
            return None
        handler.setFormatter(json_formatter)
        return handler

    main_handler = _file_handler(Path(settings.log_file_path))
    if main_handler is not None:
        _install(root, main_handler)

    for project in projects:
        project_handler = _file_handler(log_dir / f"{project}.log")
        if project_handler is None:
            continue
        project_handler.addFilter(ProjectFilter(project))
        _install(root, project_handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
