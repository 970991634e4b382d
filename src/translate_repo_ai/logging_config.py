"""
Logging setup for translate-repo-ai.

Console output goes through rich; the optional log file rotates by size.
The per-task audit trail is kept separately in the database
(see ``Database.log``).
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.logging import RichHandler

from translate_repo_ai.config import LoggingConfig

LOGGER_NAME = "translate_repo_ai"


def setup_logging(config: LoggingConfig, console: Console | None = None) -> logging.Logger:
    """
    Configure the package logger.

    Safe to call more than once: handlers installed by a previous call are
    replaced.

    Args:
        config: Logging section of the settings.
        console: Rich console for the console handler.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if config.rich_console:
        console_handler = RichHandler(
            console=console,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(console_handler)

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(config.format))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
