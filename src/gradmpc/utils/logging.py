"""Logging setup for examples, scripts and planner diagnostics."""

from __future__ import annotations

import logging

PACKAGE_LOGGER_NAME = "gradmpc"
DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"


def configure_logging(
    level: int = logging.INFO,
    planner_level: int | None = None,
) -> logging.Logger:
    """Configure root logging and, optionally, the planner logger tree.

    Planning passes log their cost/step summaries at debug level, so
    ``planner_level=logging.DEBUG`` shows them without enabling debug
    output for every other library.

    Args:
        level: Root logger level.
        planner_level: Level of the ``gradmpc`` logger. Inherits ``level``
            when omitted.

    Returns:
        The ``gradmpc`` package logger.
    """
    logging.basicConfig(level=level, format=DEFAULT_LOG_FORMAT)
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.setLevel(logging.NOTSET if planner_level is None else planner_level)
    return package_logger
