"""Shared utilities: logging setup and background task submission."""

from staffmatch.utils.logging import configure_logging, get_logger, reset_logging
from staffmatch.utils.tasks import TaskFailure, TaskRunner

__all__ = [
    "configure_logging",
    "get_logger",
    "reset_logging",
    "TaskFailure",
    "TaskRunner",
]
