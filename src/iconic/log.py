"""Logging setup shared by the CLI and library users."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from iconic.config.models import LoggingSettings

LOG_FILENAME = "iconic.log"
_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    settings: Optional[LoggingSettings] = None,
    log_dir: Optional[Path] = None,
    *,
    verbose: bool = False,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Attach console and rotating-file handlers to the ``iconic`` logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        settings: Level and rotation limits; defaults when omitted.
        log_dir: Directory for ``iconic.log``; no file handler when ``None``.
        verbose: Force ``DEBUG`` on the console regardless of ``settings.level``.
        console: Rich console used for terminal output (stderr by default).

    Returns:
        logging.Logger: The configured package logger.
    """

    settings = settings or LoggingSettings()
    level = logging.DEBUG if verbose else logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    logger = logging.getLogger("iconic")
    for handler in list(logger.handlers):
        if getattr(handler, "_iconic", False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    console_handler._iconic = True
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILENAME,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO if level > logging.INFO else level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler._iconic = True
        logger.addHandler(file_handler)

    logger.setLevel(min(handler.level for handler in logger.handlers))
    logger.propagate = False
    return logger


__all__ = ["LOG_FILENAME", "configure_logging"]
